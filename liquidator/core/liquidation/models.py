"""
Liquidation Models

Data models for turning a percentage-of-portfolio intent into per-asset swaps
and for reporting what each swap attempt did.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_DOWN
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .constants import OUTPUT_TOKENS, SOLSCAN_TX_URL
from .errors import FailureKind


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (ValueError, TypeError, ArithmeticError):
        return None


def to_raw_amount(quantity: Decimal, decimals: int) -> int:
    """Convert a UI quantity to the token's smallest unit, rounding down."""
    scale = Decimal(10) ** Decimal(decimals)
    return int((quantity * scale).to_integral_value(rounding=ROUND_DOWN))


def from_raw_amount(raw_amount: int, decimals: int) -> Decimal:
    return Decimal(raw_amount) / (Decimal(10) ** Decimal(decimals))


@dataclass(frozen=True)
class TokenRef:
    """Identity of an asset: mint, symbol and decimal precision."""
    mint: str
    symbol: str
    decimals: int

    @classmethod
    def from_mint(cls, mint: str) -> TokenRef:
        """Resolve one of the supported output tokens by mint."""
        if mint not in OUTPUT_TOKENS:
            raise ValueError(f"unsupported output token: {mint}")
        symbol, decimals = OUTPUT_TOKENS[mint]
        return cls(mint=mint, symbol=symbol, decimals=decimals)

    @classmethod
    def from_symbol(cls, symbol: str) -> TokenRef:
        wanted = symbol.upper()
        for mint, (known_symbol, decimals) in OUTPUT_TOKENS.items():
            if known_symbol == wanted:
                return cls(mint=mint, symbol=known_symbol, decimals=decimals)
        raise ValueError(f"unsupported output token: {symbol}")


@dataclass(frozen=True)
class AssetHolding:
    """Snapshot of one token balance, as supplied by the holdings collaborator."""
    mint: str
    symbol: str
    decimals: int
    quantity: Decimal                           # UI units on hand
    price_usd: Optional[Decimal] = None
    value_usd: Optional[Decimal] = None

    @property
    def value(self) -> Decimal:
        """USD value, treating an unknown value as zero."""
        if self.value_usd is not None:
            return self.value_usd
        if self.price_usd is not None:
            return self.quantity * self.price_usd
        return Decimal("0")

    @property
    def has_price(self) -> bool:
        return self.price_usd is not None and self.price_usd > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mint": self.mint,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "uiAmount": str(self.quantity),
            "price": str(self.price_usd) if self.price_usd is not None else None,
            "value": str(self.value_usd) if self.value_usd is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AssetHolding:
        quantity = _to_decimal(data.get("uiAmount", data.get("quantity"))) or Decimal("0")
        return cls(
            mint=data["mint"],
            symbol=data.get("symbol") or "UNKNOWN",
            decimals=int(data.get("decimals", 0)),
            quantity=quantity,
            price_usd=_to_decimal(data.get("price", data.get("priceUsd"))),
            value_usd=_to_decimal(data.get("value", data.get("valueUsd"))),
        )


@dataclass(frozen=True)
class LiquidationIntent:
    """What the user asked for: liquidate `percentage` of the selection into `output`."""
    output: TokenRef
    percentage: Decimal                         # 0-100
    slippage_bps: int
    holdings: Tuple[AssetHolding, ...]

    @classmethod
    def from_percent_slippage(
        cls,
        output: TokenRef,
        percentage: Any,
        slippage_pct: Any,
        holdings: List[AssetHolding],
    ) -> LiquidationIntent:
        """Build an intent from a slippage given in percent (1.0 -> 100 bps)."""
        slippage_bps = int((Decimal(str(slippage_pct)) * 100).to_integral_value(rounding=ROUND_DOWN))
        return cls(
            output=output,
            percentage=Decimal(str(percentage)),
            slippage_bps=slippage_bps,
            holdings=tuple(holdings),
        )

    @property
    def candidates(self) -> Tuple[AssetHolding, ...]:
        """Selected holdings excluding the output asset itself."""
        return tuple(h for h in self.holdings if h.mint != self.output.mint)

    @property
    def total_candidate_value(self) -> Decimal:
        return sum((h.value for h in self.candidates), Decimal("0"))


@dataclass(frozen=True)
class SwapPlanItem:
    """One asset's share of a liquidation."""
    holding: AssetHolding
    swap_quantity: Decimal                      # UI units to sell
    weight_pct: Decimal                         # Share of total candidate value, 0-100
    liquidation_value_usd: Decimal
    original_quantity: Decimal

    @property
    def symbol(self) -> str:
        return self.holding.symbol

    @property
    def mint(self) -> str:
        return self.holding.mint

    @property
    def raw_amount(self) -> int:
        """Swap quantity in the token's smallest unit."""
        return to_raw_amount(self.swap_quantity, self.holding.decimals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "mint": self.mint,
            "swapAmount": str(self.swap_quantity),
            "rawAmount": self.raw_amount,
            "percentage": str(self.weight_pct),
            "liquidationAmount": str(self.liquidation_value_usd),
            "originalAmount": str(self.original_quantity),
        }


class AssetState(str, Enum):
    """Per-asset pipeline state."""
    IDLE = "idle"
    QUOTING = "quoting"
    BUILDING = "building"
    SIGNING = "signing"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AssetState.SUCCEEDED, AssetState.FAILED)


@dataclass(frozen=True)
class ProgressEvent:
    """Published after every state transition for display."""
    symbol: str
    state: AssetState
    message: str
    attempt: int = 1
    index: int = 0                              # Position in the plan (0-based)
    total: int = 0


@dataclass
class SwapAttemptResult:
    """Outcome of one asset's pipeline. Finalized exactly once."""
    symbol: str
    mint: str
    value_usd: Decimal
    input_quantity: Decimal
    signature: Optional[str] = None
    output_quantity: Optional[Decimal] = None
    error: Optional[str] = None
    error_kind: Optional[FailureKind] = None
    retry_count: int = 0
    state: AssetState = AssetState.IDLE
    finalized_at: Optional[datetime] = None

    @classmethod
    def for_item(cls, item: SwapPlanItem) -> SwapAttemptResult:
        return cls(
            symbol=item.symbol,
            mint=item.mint,
            value_usd=item.liquidation_value_usd,
            input_quantity=item.swap_quantity,
        )

    @property
    def succeeded(self) -> bool:
        return self.state == AssetState.SUCCEEDED

    @property
    def is_final(self) -> bool:
        return self.finalized_at is not None

    @property
    def explorer_url(self) -> Optional[str]:
        if not self.signature:
            return None
        return SOLSCAN_TX_URL.format(signature=self.signature)

    def mark_succeeded(self, signature: str, output_quantity: Optional[Decimal]) -> None:
        self._finalize(AssetState.SUCCEEDED)
        self.signature = signature
        self.output_quantity = output_quantity

    def mark_failed(self, kind: FailureKind, error: str, signature: Optional[str] = None) -> None:
        self._finalize(AssetState.FAILED)
        self.error_kind = kind
        self.error = error
        if signature:
            self.signature = signature

    def _finalize(self, state: AssetState) -> None:
        if self.is_final:
            raise RuntimeError(f"result for {self.symbol} already finalized as {self.state.value}")
        self.state = state
        self.finalized_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "mint": self.mint,
            "signature": self.signature,
            "amount": str(self.value_usd),
            "inputAmount": str(self.input_quantity),
            "outputAmount": str(self.output_quantity) if self.output_quantity is not None else None,
            "error": self.error,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "retryCount": self.retry_count,
            "state": self.state.value,
        }


class BatchStatus(str, Enum):
    """Aggregate outcome of a run."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class LiquidationReport:
    """Everything a run produced, in completion order."""
    intent: LiquidationIntent
    plan: List[SwapPlanItem]
    results: List[SwapAttemptResult] = field(default_factory=list)
    batch_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    cancelled: bool = False

    @property
    def succeeded(self) -> List[SwapAttemptResult]:
        return [r for r in self.results if r.succeeded]

    @property
    def failed(self) -> List[SwapAttemptResult]:
        return [r for r in self.results if r.state == AssetState.FAILED]

    @property
    def status(self) -> BatchStatus:
        if self.succeeded and not self.failed:
            return BatchStatus.SUCCESS
        if self.succeeded:
            return BatchStatus.PARTIAL
        return BatchStatus.FAILED

    @property
    def total_liquidated_usd(self) -> Decimal:
        return sum((r.value_usd for r in self.succeeded), Decimal("0"))

    @property
    def liquidated_pct_of_selection(self) -> Decimal:
        total = self.intent.total_candidate_value
        if total <= 0:
            return Decimal("0")
        return self.total_liquidated_usd / total * 100

    def failed_items(self) -> List[SwapPlanItem]:
        """Plan items whose result failed, in plan order."""
        failed_mints = {r.mint for r in self.failed}
        return [item for item in self.plan if item.mint in failed_mints]

    def banner(self) -> str:
        ok = len(self.succeeded)
        total = len(self.results)
        status = self.status
        if status == BatchStatus.SUCCESS:
            return (
                f"{ok}/{total} succeeded: liquidated ${self.total_liquidated_usd:.2f} "
                f"({self.liquidated_pct_of_selection:.1f}% of selection)"
            )
        if status == BatchStatus.PARTIAL:
            return (
                f"partial success: {ok}/{total} succeeded, {len(self.failed)} failed; "
                f"liquidated ${self.total_liquidated_usd:.2f}"
            )
        return f"all failed: 0/{total} succeeded"

    def to_batch_record(self, wallet: str) -> Dict[str, Any]:
        """Session summary for an external history store."""
        tokens_in = []
        value_out = Decimal("0")
        for result in self.results:
            entry: Dict[str, Any] = {
                "mint": result.mint,
                "symbol": result.symbol,
                "uiAmount": str(result.input_quantity),
                "valueUsd": str(result.value_usd),
            }
            if result.succeeded:
                entry["signature"] = result.signature
                if result.output_quantity is not None:
                    entry["outputAmount"] = str(result.output_quantity)
                value_out += result.value_usd
            tokens_in.append(entry)

        return {
            "batchId": self.batch_id,
            "wallet": wallet,
            "timestamp": int(self.started_at.timestamp() * 1000),
            "outputToken": {"mint": self.intent.output.mint, "symbol": self.intent.output.symbol},
            "liquidationPct": str(self.intent.percentage),
            "slippageBps": self.intent.slippage_bps,
            "totals": {
                "valueUsdIn": str(sum((r.value_usd for r in self.results), Decimal("0"))),
                "valueUsdOut": str(value_out),
            },
            "tokensIn": tokens_in,
            "status": self.status.value,
        }
