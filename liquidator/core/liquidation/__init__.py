"""
Portfolio Liquidation

Converts a percentage-of-portfolio intent into a per-asset swap plan and
drives each swap through quote, build, sign, submit and confirm.

Usage:
    from liquidator.core.liquidation import LiquidationIntent, TokenRef, plan_for_intent
    from liquidator.core.liquidation.orchestrator import LiquidationOrchestrator

    intent = LiquidationIntent.from_percent_slippage(
        output=TokenRef.from_symbol("USDC"),
        percentage=50,
        slippage_pct=1.0,
        holdings=holdings,
    )
    report = await orchestrator.run(intent)
    print(report.banner())

The orchestrator, builder and signers live in their own modules so that the
providers can import the models here without a cycle.
"""

from .allocator import eligible_items, plan, plan_for_intent, validate_intent
from .constants import DEFAULT_OUTPUT_MINT, NATIVE_SOL_MINT, OUTPUT_TOKENS, USDC_MINT, USDT_MINT
from .errors import (
    BuildError,
    ConfirmError,
    ExecutionFailedError,
    FailureKind,
    IntentError,
    LiquidationCancelled,
    LiquidationError,
    PreconditionError,
    QuoteError,
    RETRYABLE_KINDS,
    SigningError,
    SubmitError,
    UnconfirmedSwapError,
    is_retryable,
)
from .models import (
    AssetHolding,
    AssetState,
    BatchStatus,
    LiquidationIntent,
    LiquidationReport,
    ProgressEvent,
    SwapAttemptResult,
    SwapPlanItem,
    TokenRef,
)

__all__ = [
    # Allocator
    "plan",
    "plan_for_intent",
    "validate_intent",
    "eligible_items",
    # Constants
    "DEFAULT_OUTPUT_MINT",
    "NATIVE_SOL_MINT",
    "OUTPUT_TOKENS",
    "USDC_MINT",
    "USDT_MINT",
    # Errors
    "FailureKind",
    "RETRYABLE_KINDS",
    "is_retryable",
    "LiquidationError",
    "PreconditionError",
    "IntentError",
    "QuoteError",
    "BuildError",
    "SigningError",
    "SubmitError",
    "ConfirmError",
    "ExecutionFailedError",
    "UnconfirmedSwapError",
    "LiquidationCancelled",
    # Models
    "AssetHolding",
    "AssetState",
    "BatchStatus",
    "LiquidationIntent",
    "LiquidationReport",
    "ProgressEvent",
    "SwapAttemptResult",
    "SwapPlanItem",
    "TokenRef",
]
