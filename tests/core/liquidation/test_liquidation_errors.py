"""
Tests for failure classification and result/report models.
"""

from decimal import Decimal

import pytest

from liquidator.core.liquidation import (
    AssetHolding,
    AssetState,
    BatchStatus,
    BuildError,
    ExecutionFailedError,
    FailureKind,
    LiquidationIntent,
    LiquidationReport,
    PreconditionError,
    QuoteError,
    RETRYABLE_KINDS,
    SigningError,
    SwapAttemptResult,
    TokenRef,
    is_retryable,
    plan_for_intent,
)
from liquidator.core.liquidation.errors import classify_status_code


class TestFailureKinds:
    """Tests for the retry table."""

    @pytest.mark.parametrize(
        "kind",
        [
            FailureKind.RATE_LIMITED,
            FailureKind.SERVICE_ERROR,
            FailureKind.MALFORMED_RESPONSE,
            FailureKind.BUILD_ERROR,
            FailureKind.SUBMIT_ERROR,
            FailureKind.CONFIRM_ERROR,
            FailureKind.SIGNER_TIMEOUT,
            FailureKind.SIGNER_UNAVAILABLE,
            FailureKind.SIGNER_UNKNOWN,
        ],
    )
    def test_transient_kinds_are_retryable(self, kind):
        assert is_retryable(kind)

    @pytest.mark.parametrize(
        "kind",
        [
            FailureKind.PRECONDITION,
            FailureKind.INVALID_REQUEST,
            FailureKind.SIGNER_REJECTED,
            FailureKind.CANCELLED,
            FailureKind.UNCONFIRMED,
        ],
    )
    def test_terminal_kinds_are_not_retryable(self, kind):
        assert kind not in RETRYABLE_KINDS

    def test_status_code_classification(self):
        assert classify_status_code(429) == FailureKind.RATE_LIMITED
        assert classify_status_code(400) == FailureKind.INVALID_REQUEST
        assert classify_status_code(500) == FailureKind.SERVICE_ERROR
        assert classify_status_code(404) == FailureKind.INVALID_REQUEST
        assert classify_status_code(422) == FailureKind.INVALID_REQUEST
        assert classify_status_code(502) == FailureKind.SERVICE_ERROR


class TestLiquidationErrors:
    """Tests for exception defaults."""

    def test_default_kinds(self):
        assert PreconditionError("x").kind == FailureKind.PRECONDITION
        assert BuildError("x").kind == FailureKind.BUILD_ERROR
        assert SigningError("x").kind == FailureKind.SIGNER_UNKNOWN
        assert QuoteError("x").kind == FailureKind.SERVICE_ERROR

    def test_explicit_kind_overrides_default(self):
        error = QuoteError("slow down", FailureKind.RATE_LIMITED)
        assert error.kind == FailureKind.RATE_LIMITED
        assert error.retryable is True

    def test_rejection_is_not_retryable(self):
        assert SigningError("no", FailureKind.SIGNER_REJECTED).retryable is False

    def test_execution_failure_keeps_signature(self):
        error = ExecutionFailedError("failed", signature="sig123", chain_error={"InstructionError": [2, "x"]})
        assert error.details["signature"] == "sig123"
        assert error.to_dict()["kind"] == "execution_failed"


def _intent():
    holdings = (
        AssetHolding("MintA", "A", 6, Decimal("100"), Decimal("1")),
        AssetHolding("MintB", "B", 6, Decimal("100"), Decimal("1")),
    )
    return LiquidationIntent(
        output=TokenRef.from_symbol("USDC"),
        percentage=Decimal("50"),
        slippage_bps=100,
        holdings=holdings,
    )


class TestSwapAttemptResult:
    """Tests for result finalization."""

    def test_finalized_exactly_once(self):
        item = plan_for_intent(_intent())[0]
        result = SwapAttemptResult.for_item(item)
        result.mark_succeeded("sig", Decimal("49.9"))

        assert result.state == AssetState.SUCCEEDED
        assert result.explorer_url == "https://solscan.io/tx/sig"
        with pytest.raises(RuntimeError):
            result.mark_failed(FailureKind.SERVICE_ERROR, "late")

    def test_failed_result_serializes_kind(self):
        item = plan_for_intent(_intent())[0]
        result = SwapAttemptResult.for_item(item)
        result.retry_count = 3
        result.mark_failed(FailureKind.RATE_LIMITED, "rate limited by aggregator")

        data = result.to_dict()
        assert data["errorKind"] == "rate_limited"
        assert data["retryCount"] == 3
        assert data["state"] == "failed"


class TestLiquidationReport:
    """Tests for the aggregate banner and batch record."""

    def _report(self, outcomes):
        intent = _intent()
        items = plan_for_intent(intent)
        report = LiquidationReport(intent=intent, plan=items, batch_id="batch-1")
        for item, ok in zip(items, outcomes):
            result = SwapAttemptResult.for_item(item)
            if ok:
                result.mark_succeeded(f"sig-{item.symbol}", Decimal("50"))
            else:
                result.mark_failed(FailureKind.SUBMIT_ERROR, "failed to send transaction")
            report.results.append(result)
        return report

    def test_all_succeeded_banner(self):
        report = self._report([True, True])
        assert report.status == BatchStatus.SUCCESS
        assert report.total_liquidated_usd == Decimal("100")
        assert report.banner().startswith("2/2 succeeded")
        assert "$100.00" in report.banner()
        assert "50.0% of selection" in report.banner()

    def test_partial_banner(self):
        report = self._report([True, False])
        assert report.status == BatchStatus.PARTIAL
        assert report.banner().startswith("partial success: 1/2")
        assert [i.symbol for i in report.failed_items()] == ["B"]

    def test_all_failed_banner(self):
        report = self._report([False, False])
        assert report.status == BatchStatus.FAILED
        assert report.banner() == "all failed: 0/2 succeeded"

    def test_batch_record_shape(self):
        record = self._report([True, False]).to_batch_record("Wallet111")

        assert record["batchId"] == "batch-1"
        assert record["wallet"] == "Wallet111"
        assert record["status"] == "partial"
        assert record["outputToken"]["symbol"] == "USDC"
        assert record["slippageBps"] == 100
        assert Decimal(record["totals"]["valueUsdOut"]) == Decimal("50")
        assert record["tokensIn"][0]["signature"] == "sig-A"
        assert "signature" not in record["tokensIn"][1]
