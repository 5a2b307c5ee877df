from abc import ABC, abstractmethod
from typing import Any, Dict, List, Protocol

from ..core.liquidation.models import AssetHolding


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class HoldingsProvider(Protocol):
    """Supplies balance/price snapshots for a wallet."""

    async def get_holdings(self, address: str) -> List[AssetHolding]:
        ...
