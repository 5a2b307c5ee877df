"""Helius-backed holdings provider for Solana wallets."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.liquidation.constants import NATIVE_SOL_MINT
from ..core.liquidation.models import AssetHolding, from_raw_amount
from .base import Provider

logger = logging.getLogger(__name__)


def _decimal_or_none(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (ValueError, TypeError, ArithmeticError):
        return None


class HeliusHoldingsProvider(Provider):
    """Fetch balance and price snapshots via the Helius balances API."""

    name = "helius"
    timeout_s = 20

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.solana_helius_api_key
        self.base_url = (base_url or settings.solana_balances_base_url or "https://api.helius.xyz").rstrip("/")
        self._client = client

    async def ready(self) -> bool:
        return bool(self.api_key)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "API key not configured"}
        return {"status": "configured"}

    async def _fetch_balances(self, address: str) -> Dict[str, Any]:
        if not await self.ready():
            raise RuntimeError("Helius holdings provider not configured")

        url = f"{self.base_url}/v0/addresses/{address}/balances"
        params = {"api-key": self.api_key}
        headers = {"accept": "application/json"}

        if self._client is not None:
            response = await self._client.get(url, params=params, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                response = await client.get(url, params=params, headers=headers)
        response.raise_for_status()
        payload = response.json()

        if not isinstance(payload, dict):
            raise ValueError("Unexpected response from Helius balances API")
        return payload

    async def get_holdings(self, address: str) -> List[AssetHolding]:
        """Return native SOL plus every SPL token balance with its price when known."""
        data = await self._fetch_balances(address)
        holdings: List[AssetHolding] = []

        native = data.get("nativeBalance") or {}
        lamports = _decimal_or_none(native.get("lamports") or native.get("balance")) or Decimal(0)
        sol_amount = _decimal_or_none(native.get("sol"))
        if sol_amount is None:
            sol_amount = from_raw_amount(int(lamports), 9)
        sol_price = _decimal_or_none(native.get("price") or (native.get("priceInfo") or {}).get("pricePerToken"))
        if sol_amount > 0:
            holdings.append(
                AssetHolding(
                    mint=NATIVE_SOL_MINT,
                    symbol="SOL",
                    decimals=9,
                    quantity=sol_amount,
                    price_usd=sol_price,
                    value_usd=sol_amount * sol_price if sol_price is not None else None,
                )
            )

        for item in data.get("tokens") or data.get("items") or []:
            if not isinstance(item, dict):
                continue
            mint = item.get("mint") or item.get("address")
            # Native SOL sometimes shows up again as a token entry
            if not mint or mint == NATIVE_SOL_MINT:
                continue

            try:
                decimals = int(item.get("decimals") or 0)
            except (ValueError, TypeError):
                decimals = 0

            quantity = _decimal_or_none(item.get("uiAmount"))
            if quantity is None:
                raw = _decimal_or_none(item.get("amount") or item.get("amountRaw") or item.get("balance"))
                quantity = from_raw_amount(int(raw), decimals) if raw is not None else Decimal(0)
            if quantity <= 0:
                continue

            price_info = item.get("priceInfo") or {}
            price = _decimal_or_none(price_info.get("pricePerToken") or price_info.get("price") or item.get("price"))
            value = _decimal_or_none(price_info.get("totalPrice"))
            if value is None and price is not None:
                value = quantity * price

            holdings.append(
                AssetHolding(
                    mint=mint,
                    symbol=item.get("symbol") or item.get("ticker") or "UNKNOWN",
                    decimals=decimals,
                    quantity=quantity,
                    price_usd=price,
                    value_usd=value,
                )
            )

        logger.debug(f"Fetched {len(holdings)} holdings for {address}")
        return holdings
