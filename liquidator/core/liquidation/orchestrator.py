"""
Liquidation Orchestrator

Drives each planned asset through quote, build, sign, submit and confirm, one
asset at a time in plan order. Retryable failures send the asset back to IDLE
(a fresh quote and anchor) after a linear backoff; anything else finalizes it.
No single asset's failure ends the run.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, List, Optional, Protocol

import structlog

from ...providers.jupiter import JupiterQuote
from ...providers.solana_rpc import ConfirmationOutcome, NetworkAnchor
from .allocator import eligible_items, plan_for_intent, validate_intent
from .builder import TransactionBuilder
from .constants import DUST_MIN_QUANTITY, DUST_MIN_VALUE_USD
from .errors import (
    ConfirmError,
    ExecutionFailedError,
    FailureKind,
    IntentError,
    LiquidationCancelled,
    LiquidationError,
    UnconfirmedSwapError,
)
from .models import (
    AssetState,
    LiquidationIntent,
    LiquidationReport,
    ProgressEvent,
    SwapAttemptResult,
    SwapPlanItem,
    from_raw_amount,
)
from .signers import Signer

logger = structlog.stdlib.get_logger(__name__)

ProgressCallback = Callable[[ProgressEvent], Any]
ResultCallback = Callable[[SwapAttemptResult], Any]
CompleteCallback = Callable[[LiquidationReport], Any]


class QuoteSource(Protocol):
    async def get_swap_quote(
        self, input_mint: str, output_mint: str, amount: int, slippage_bps: int
    ) -> JupiterQuote:
        ...


class Network(Protocol):
    async def get_latest_anchor(self) -> NetworkAnchor:
        ...

    async def send_transaction(self, signed_transaction: str) -> str:
        ...

    async def confirm_transaction(self, signature: str, anchor: NetworkAnchor) -> ConfirmationOutcome:
        ...


@dataclass
class OrchestratorConfig:
    """Retry and eligibility settings for a liquidation run."""

    max_retries: int = 2                        # Retries after the first attempt
    base_delay_seconds: float = 1.0             # Wait base * retry_count before retrying
    dust_min_quantity: Decimal = DUST_MIN_QUANTITY
    dust_min_value_usd: Decimal = DUST_MIN_VALUE_USD


async def _notify(callback: Optional[Callable[[Any], Any]], payload: Any) -> None:
    """Invoke a display callback. Its failures are logged and never reach the pipeline."""
    if callback is None:
        return
    try:
        outcome = callback(payload)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:
        logger.exception("callback_failed", callback=getattr(callback, "__name__", repr(callback)))


class LiquidationOrchestrator:
    """
    Sequential per-asset swap pipeline with bounded retry.

    Usage:
        orchestrator = LiquidationOrchestrator(
            quotes=jupiter,
            builder=TransactionBuilder(jupiter),
            signer=SoftwareSigner(keypair),
            network=rpc,
            on_progress=lambda event: print(event.message),
        )
        report = await orchestrator.run(intent)
    """

    def __init__(
        self,
        quotes: QuoteSource,
        builder: TransactionBuilder,
        signer: Signer,
        network: Network,
        config: Optional[OrchestratorConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_result: Optional[ResultCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.quotes = quotes
        self.builder = builder
        self.signer = signer
        self.network = network
        self.config = config or OrchestratorConfig()
        self.on_progress = on_progress
        self.on_result = on_result
        self.on_complete = on_complete
        self._sleep = sleep

    async def run(
        self,
        intent: LiquidationIntent,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> LiquidationReport:
        """
        Plan and execute a liquidation.

        Raises:
            IntentError: the intent is invalid or nothing is eligible; raised
                before any network call
        """
        validate_intent(intent)
        items = eligible_items(
            plan_for_intent(intent),
            min_quantity=self.config.dust_min_quantity,
            min_value_usd=self.config.dust_min_value_usd,
        )
        if not items:
            raise IntentError("no valid tokens with sufficient balance to liquidate")

        return await self._execute(intent, items, cancel_event)

    async def retry_failed(
        self,
        report: LiquidationReport,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> LiquidationReport:
        """Run only the assets that failed in `report`, with their original amounts."""
        items = report.failed_items()
        if not items:
            raise IntentError("no failed swaps to retry")
        return await self._execute(report.intent, items, cancel_event)

    async def _execute(
        self,
        intent: LiquidationIntent,
        items: List[SwapPlanItem],
        cancel_event: Optional[asyncio.Event],
    ) -> LiquidationReport:
        report = LiquidationReport(intent=intent, plan=list(items))
        log = logger.bind(batch_id=report.batch_id)
        log.info(
            "liquidation_started",
            output=intent.output.symbol,
            percentage=str(intent.percentage),
            slippage_bps=intent.slippage_bps,
            assets=[item.symbol for item in items],
        )

        total = len(items)
        for index, item in enumerate(items):
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                result = SwapAttemptResult.for_item(item)
                result.mark_failed(FailureKind.CANCELLED, "liquidation cancelled")
            else:
                result = await self._process_item(intent, item, index, total, cancel_event)
                if result.error_kind == FailureKind.CANCELLED:
                    report.cancelled = True

            report.results.append(result)
            await _notify(self.on_result, result)

        report.completed_at = datetime.now(timezone.utc)
        log.info(
            "liquidation_completed",
            status=report.status.value,
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            liquidated_usd=str(report.total_liquidated_usd),
            cancelled=report.cancelled,
        )
        # Balances only change when something landed
        if report.succeeded:
            await _notify(self.on_complete, report)
        return report

    async def _process_item(
        self,
        intent: LiquidationIntent,
        item: SwapPlanItem,
        index: int,
        total: int,
        cancel_event: Optional[asyncio.Event],
    ) -> SwapAttemptResult:
        """Run one asset to a terminal state."""
        result = SwapAttemptResult.for_item(item)
        log = logger.bind(symbol=item.symbol, mint=item.mint)

        while True:
            attempt = result.retry_count + 1
            try:
                signature, output_quantity = await self._attempt(
                    intent, item, result, attempt, index, total, cancel_event
                )
            except Exception as exc:
                if isinstance(exc, LiquidationError):
                    e = exc
                else:
                    log.exception("asset_attempt_unexpected_error", attempt=attempt)
                    e = LiquidationError(f"unexpected error: {exc}", FailureKind.SERVICE_ERROR)

                if e.kind == FailureKind.CANCELLED:
                    result.mark_failed(e.kind, e.message)
                    await self._emit(result, AssetState.FAILED, "liquidation cancelled", attempt, index, total)
                    return result

                log.warning(
                    "asset_attempt_failed",
                    attempt=attempt,
                    kind=e.kind.value,
                    retryable=e.retryable,
                    error=e.message,
                )
                if e.retryable:
                    result.retry_count += 1
                    if result.retry_count <= self.config.max_retries:
                        delay = self.config.base_delay_seconds * result.retry_count
                        await self._emit(
                            result,
                            AssetState.IDLE,
                            f"retrying {item.symbol} ({result.retry_count}/{self.config.max_retries})...",
                            attempt,
                            index,
                            total,
                        )
                        await self._sleep(delay)
                        continue

                result.mark_failed(e.kind, e.message, signature=e.details.get("signature"))
                log.error("asset_failed", kind=e.kind.value, retry_count=result.retry_count, error=e.message)
                await self._emit(result, AssetState.FAILED, f"{item.symbol} failed: {e.message}", attempt, index, total)
                return result

            result.mark_succeeded(signature, output_quantity)
            log.info("asset_succeeded", signature=signature, retry_count=result.retry_count)
            await self._emit(result, AssetState.SUCCEEDED, f"{item.symbol} swapped", attempt, index, total)
            return result

    async def _attempt(
        self,
        intent: LiquidationIntent,
        item: SwapPlanItem,
        result: SwapAttemptResult,
        attempt: int,
        index: int,
        total: int,
        cancel_event: Optional[asyncio.Event],
    ):
        """One pass from IDLE to CONFIRMING. Returns (signature, output_quantity)."""
        symbol = item.symbol

        async def enter(state: AssetState, message: str) -> None:
            if cancel_event is not None and cancel_event.is_set():
                raise LiquidationCancelled(f"liquidation cancelled before {state.value} {symbol}")
            await self._emit(result, state, message, attempt, index, total)

        await enter(AssetState.QUOTING, f"swapping {symbol} ({item.swap_quantity.normalize():f})...")
        quote = await self.quotes.get_swap_quote(
            input_mint=item.mint,
            output_mint=intent.output.mint,
            amount=item.raw_amount,
            slippage_bps=intent.slippage_bps,
        )

        await enter(AssetState.BUILDING, f"building {symbol} transaction...")
        anchor = await self.network.get_latest_anchor()
        unsigned = await self.builder.build(quote, payer=self.signer.public_key, anchor=anchor, symbol=symbol)

        await enter(AssetState.SIGNING, self.signer.prompt(symbol))
        signed = await self.signer.sign(unsigned, symbol)

        await enter(AssetState.SUBMITTING, f"sending {symbol} transaction...")
        signature = await self.network.send_transaction(signed.payload)

        # Past this point a cancel request no longer stops the asset, and only a
        # confirm or execution failure may send it back for a fresh quote
        await self._emit(result, AssetState.CONFIRMING, f"confirming {symbol} transaction...", attempt, index, total)
        try:
            await self.network.confirm_transaction(signature, unsigned.anchor)
        except (ConfirmError, ExecutionFailedError) as e:
            e.details.setdefault("signature", signature)
            raise
        except Exception as e:
            message = e.message if isinstance(e, LiquidationError) else str(e) or e.__class__.__name__
            raise UnconfirmedSwapError(
                f"{symbol} was sent but its outcome is unknown: {message}",
                details={"signature": signature},
            ) from e

        return signature, from_raw_amount(quote.out_amount, intent.output.decimals)

    async def _emit(
        self,
        result: SwapAttemptResult,
        state: AssetState,
        message: str,
        attempt: int,
        index: int,
        total: int,
    ) -> None:
        if not state.is_terminal:
            result.state = state
        await _notify(
            self.on_progress,
            ProgressEvent(symbol=result.symbol, state=state, message=message, attempt=attempt, index=index, total=total),
        )


__all__ = ["LiquidationOrchestrator", "OrchestratorConfig"]
