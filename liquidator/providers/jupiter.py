"""
Jupiter Swap Provider for Solana.

Requests ExactIn quotes and prebuilt swap transactions from the Jupiter
aggregator. Every failure leaves this module as a classified QuoteError or
BuildError; retrying is left to the caller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .base import Provider
from ..config import settings
from ..core.liquidation.constants import SWAP_MODE_EXACT_IN
from ..core.liquidation.errors import (
    BuildError,
    FailureKind,
    PreconditionError,
    QuoteError,
    classify_status_code,
)

logger = logging.getLogger(__name__)


@dataclass
class RoutePlanStep:
    """A single step in the swap route."""
    swap_info: Dict[str, Any]
    percent: int  # Percentage of input going through this route

    @property
    def label(self) -> str:
        return str(self.swap_info.get("label") or "unknown")


@dataclass
class JupiterQuote:
    """Quote response from Jupiter."""
    input_mint: str
    output_mint: str
    in_amount: int                              # Smallest units
    out_amount: int                             # Smallest units
    other_amount_threshold: int                 # Minimum output (with slippage)
    swap_mode: str
    slippage_bps: int
    price_impact_pct: float
    route_plan: List[RoutePlanStep]

    # Sent back verbatim when building the swap transaction
    quote_response: Dict[str, Any] = field(default_factory=dict)

    fetched_at: float = field(default_factory=time.time)

    @property
    def age_seconds(self) -> float:
        return time.time() - self.fetched_at

    def is_fresh(self, max_age_seconds: float) -> bool:
        return self.age_seconds < max_age_seconds

    @property
    def route_labels(self) -> List[str]:
        return [step.label for step in self.route_plan]


@dataclass(frozen=True)
class PriorityFeePolicy:
    """Priority fee cap, urgency tier and compute budget hints for swap builds."""
    max_lamports: int = 1_000_000
    priority_level: str = "veryHigh"            # "low", "medium", "high", "veryHigh"
    dynamic_compute_unit_limit: bool = True
    dynamic_slippage: bool = True

    @classmethod
    def from_settings(cls) -> PriorityFeePolicy:
        return cls(
            max_lamports=settings.priority_fee_max_lamports,
            priority_level=settings.priority_level,
            dynamic_compute_unit_limit=settings.dynamic_compute_unit_limit,
            dynamic_slippage=settings.dynamic_slippage,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "dynamicComputeUnitLimit": self.dynamic_compute_unit_limit,
            "dynamicSlippage": self.dynamic_slippage,
            "prioritizationFeeLamports": {
                "priorityLevelWithMaxLamports": {
                    "maxLamports": self.max_lamports,
                    "priorityLevel": self.priority_level,
                }
            },
        }


@dataclass
class JupiterSwapTransaction:
    """Result of building a swap transaction."""
    swap_transaction: str                       # Base64 encoded, unsigned
    last_valid_block_height: int
    priority_fee_lamports: int
    compute_unit_limit: int


class JupiterSwapProvider(Provider):
    """
    Jupiter quote and swap-build client.

    Usage:
        provider = JupiterSwapProvider()

        quote = await provider.get_swap_quote(
            input_mint=BONK_MINT,
            output_mint=USDC_MINT,
            amount=1_000_000_000,
            slippage_bps=100,
        )

        swap = await provider.build_swap_transaction(
            quote=quote,
            user_public_key="...",
            fee_policy=PriorityFeePolicy(),
        )
    """

    name = "jupiter"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = (base_url or settings.jupiter_api_base_url).rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else settings.jupiter_timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def ready(self) -> bool:
        """Jupiter's lite API requires no authentication."""
        return bool(self._base_url)

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "configured", "base_url": self._base_url}

    async def get_swap_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        swap_mode: str = SWAP_MODE_EXACT_IN,
    ) -> JupiterQuote:
        """
        Get a swap quote from Jupiter.

        Args:
            input_mint: Input token mint address
            output_mint: Output token mint address
            amount: Amount in smallest units; must be positive
            slippage_bps: Slippage tolerance in basis points (100 = 1%)
            swap_mode: "ExactIn" or "ExactOut"

        Returns:
            JupiterQuote with route and amounts

        Raises:
            PreconditionError: amount is not positive (no request is made)
            QuoteError: classified as rate_limited, invalid_request,
                service_error or malformed_response
        """
        if amount <= 0:
            raise PreconditionError(
                f"invalid amount for {input_mint}: {amount}",
                details={"input_mint": input_mint, "amount": amount},
            )

        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
            "swapMode": swap_mode,
        }

        client = await self._get_client()
        try:
            response = await client.get(f"{self._base_url}/quote", params=params, timeout=self.timeout_s)
        except httpx.TimeoutException as e:
            raise QuoteError(f"quote request timed out: {e}", FailureKind.SERVICE_ERROR)
        except httpx.HTTPError as e:
            raise QuoteError(f"quote request failed: {e}", FailureKind.SERVICE_ERROR)

        if response.status_code >= 400:
            kind = classify_status_code(response.status_code)
            reason = _error_reason(response)
            if kind == FailureKind.RATE_LIMITED:
                message = "rate limited by aggregator"
            elif kind == FailureKind.INVALID_REQUEST:
                message = f"invalid quote request: {reason}"
            else:
                message = f"quote failed: {response.status_code} {reason}"
            raise QuoteError(message, kind, details={"status_code": response.status_code})

        try:
            data = response.json()
        except ValueError:
            raise QuoteError("quote response is not JSON", FailureKind.MALFORMED_RESPONSE)

        if isinstance(data, dict) and data.get("error"):
            raise QuoteError(f"Jupiter quote error: {data['error']}", FailureKind.INVALID_REQUEST)

        if not isinstance(data, dict) or not data.get("outAmount"):
            raise QuoteError("quote response has no outAmount", FailureKind.MALFORMED_RESPONSE)

        try:
            route_plan = [
                RoutePlanStep(
                    swap_info=step.get("swapInfo", {}),
                    percent=step.get("percent", 100),
                )
                for step in data.get("routePlan", [])
            ]
            out_amount = int(data["outAmount"])
            quote = JupiterQuote(
                input_mint=data.get("inputMint", input_mint),
                output_mint=data.get("outputMint", output_mint),
                in_amount=int(data.get("inAmount", amount)),
                out_amount=out_amount,
                other_amount_threshold=int(data.get("otherAmountThreshold", out_amount)),
                swap_mode=data.get("swapMode", swap_mode),
                slippage_bps=int(data.get("slippageBps", slippage_bps)),
                price_impact_pct=float(data.get("priceImpactPct", 0) or 0),
                route_plan=route_plan,
                quote_response=data,
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise QuoteError(f"unparseable quote response: {e}", FailureKind.MALFORMED_RESPONSE)

        logger.debug(
            f"Jupiter quote {input_mint} -> {output_mint}: "
            f"in={quote.in_amount} out={quote.out_amount} hops={len(route_plan)}"
        )
        return quote

    async def build_swap_transaction(
        self,
        quote: JupiterQuote,
        user_public_key: str,
        fee_policy: Optional[PriorityFeePolicy] = None,
        wrap_and_unwrap_sol: bool = True,
        use_shared_accounts: bool = True,
    ) -> JupiterSwapTransaction:
        """
        Build an unsigned versioned swap transaction from a quote.

        Raises:
            BuildError: no transaction payload could be obtained
        """
        if not quote.quote_response:
            raise BuildError("quote response required for swap transaction")

        policy = fee_policy or PriorityFeePolicy()
        payload: Dict[str, Any] = {
            "quoteResponse": quote.quote_response,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": wrap_and_unwrap_sol,
            "useSharedAccounts": use_shared_accounts,
            "asLegacyTransaction": False,
            **policy.to_payload(),
        }

        client = await self._get_client()
        try:
            response = await client.post(f"{self._base_url}/swap", json=payload, timeout=self.timeout_s)
        except httpx.TimeoutException as e:
            raise BuildError(f"swap build timed out: {e}", FailureKind.SERVICE_ERROR)
        except httpx.HTTPError as e:
            raise BuildError(f"swap build request failed: {e}", FailureKind.SERVICE_ERROR)

        if response.status_code >= 400:
            kind = FailureKind.RATE_LIMITED if response.status_code == 429 else FailureKind.BUILD_ERROR
            raise BuildError(
                f"swap build failed: {_error_reason(response)}",
                kind,
                details={"status_code": response.status_code},
            )

        try:
            data = response.json()
        except ValueError:
            raise BuildError("swap build response is not JSON")

        if not isinstance(data, dict) or not data.get("swapTransaction"):
            raise BuildError("no swap transaction returned from jupiter")

        return JupiterSwapTransaction(
            swap_transaction=data["swapTransaction"],
            last_valid_block_height=int(data.get("lastValidBlockHeight") or 0),
            priority_fee_lamports=int(data.get("prioritizationFeeLamports") or 0),
            compute_unit_limit=int(data.get("computeUnitLimit") or 0),
        )


def _error_reason(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or str(response.status_code)
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase or str(response.status_code)


__all__ = [
    "JupiterSwapProvider",
    "JupiterQuote",
    "JupiterSwapTransaction",
    "PriorityFeePolicy",
    "RoutePlanStep",
]
