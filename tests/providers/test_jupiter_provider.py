"""
Tests for the Jupiter quote and swap-build client.
"""

import json

import httpx
import pytest

from liquidator.core.liquidation.constants import USDC_MINT
from liquidator.core.liquidation.errors import BuildError, FailureKind, PreconditionError, QuoteError
from liquidator.providers.jupiter import JupiterQuote, JupiterSwapProvider, PriorityFeePolicy


BONK = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
BASE_URL = "https://jup.test/swap/v1"

QUOTE_BODY = {
    "inputMint": BONK,
    "outputMint": USDC_MINT,
    "inAmount": "1000000",
    "outAmount": "2500",
    "otherAmountThreshold": "2475",
    "swapMode": "ExactIn",
    "slippageBps": 100,
    "priceImpactPct": "0.001",
    "routePlan": [{"swapInfo": {"label": "Raydium"}, "percent": 100}],
}


def provider_with(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JupiterSwapProvider(base_url=BASE_URL, timeout_s=5, client=client)


class TestGetSwapQuote:
    """Tests for quote requests."""

    @pytest.mark.asyncio
    async def test_successful_quote(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=QUOTE_BODY)

        provider = provider_with(handler)
        quote = await provider.get_swap_quote(BONK, USDC_MINT, 1_000_000, 100)

        assert seen["url"].startswith(f"{BASE_URL}/quote")
        assert seen["params"]["amount"] == "1000000"
        assert seen["params"]["slippageBps"] == "100"
        assert seen["params"]["swapMode"] == "ExactIn"
        assert quote.out_amount == 2500
        assert quote.other_amount_threshold == 2475
        assert quote.route_labels == ["Raydium"]
        assert quote.quote_response == QUOTE_BODY

    @pytest.mark.asyncio
    async def test_non_positive_amount_makes_no_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=QUOTE_BODY)

        provider = provider_with(handler)
        with pytest.raises(PreconditionError):
            await provider.get_swap_quote(BONK, USDC_MINT, 0, 100)
        assert calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, kind",
        [
            (429, FailureKind.RATE_LIMITED),
            (400, FailureKind.INVALID_REQUEST),
            (404, FailureKind.INVALID_REQUEST),
            (500, FailureKind.SERVICE_ERROR),
            (503, FailureKind.SERVICE_ERROR),
        ],
    )
    async def test_status_classification(self, status, kind):
        provider = provider_with(lambda request: httpx.Response(status, json={"error": "nope"}))

        with pytest.raises(QuoteError) as exc_info:
            await provider.get_swap_quote(BONK, USDC_MINT, 1_000_000, 100)

        assert exc_info.value.kind == kind

    @pytest.mark.asyncio
    async def test_rate_limit_message(self):
        provider = provider_with(lambda request: httpx.Response(429))

        with pytest.raises(QuoteError, match="rate limited"):
            await provider.get_swap_quote(BONK, USDC_MINT, 1_000_000, 100)

    @pytest.mark.asyncio
    async def test_missing_out_amount_is_malformed(self):
        body = {k: v for k, v in QUOTE_BODY.items() if k != "outAmount"}
        provider = provider_with(lambda request: httpx.Response(200, json=body))

        with pytest.raises(QuoteError) as exc_info:
            await provider.get_swap_quote(BONK, USDC_MINT, 1_000_000, 100)

        assert exc_info.value.kind == FailureKind.MALFORMED_RESPONSE
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_error_body_is_invalid_request(self):
        provider = provider_with(lambda request: httpx.Response(200, json={"error": "No routes found"}))

        with pytest.raises(QuoteError) as exc_info:
            await provider.get_swap_quote(BONK, USDC_MINT, 1_000_000, 100)

        assert exc_info.value.kind == FailureKind.INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_timeout_is_service_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        provider = provider_with(handler)
        with pytest.raises(QuoteError) as exc_info:
            await provider.get_swap_quote(BONK, USDC_MINT, 1_000_000, 100)

        assert exc_info.value.kind == FailureKind.SERVICE_ERROR


class TestBuildSwapTransaction:
    """Tests for swap builds."""

    def _quote(self):
        return JupiterQuote(
            input_mint=BONK,
            output_mint=USDC_MINT,
            in_amount=1_000_000,
            out_amount=2500,
            other_amount_threshold=2475,
            swap_mode="ExactIn",
            slippage_bps=100,
            price_impact_pct=0.001,
            route_plan=[],
            quote_response=QUOTE_BODY,
        )

    @pytest.mark.asyncio
    async def test_payload_carries_fee_policy(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"swapTransaction": "AQID", "lastValidBlockHeight": 123, "prioritizationFeeLamports": 5000},
            )

        provider = provider_with(handler)
        swap = await provider.build_swap_transaction(self._quote(), "Payer111", PriorityFeePolicy(max_lamports=42))

        body = seen["body"]
        assert seen["url"] == f"{BASE_URL}/swap"
        assert body["userPublicKey"] == "Payer111"
        assert body["quoteResponse"] == QUOTE_BODY
        assert body["asLegacyTransaction"] is False
        assert body["dynamicComputeUnitLimit"] is True
        assert body["prioritizationFeeLamports"]["priorityLevelWithMaxLamports"] == {
            "maxLamports": 42,
            "priorityLevel": "veryHigh",
        }
        assert swap.swap_transaction == "AQID"
        assert swap.last_valid_block_height == 123
        assert swap.priority_fee_lamports == 5000

    @pytest.mark.asyncio
    async def test_missing_transaction_is_build_error(self):
        provider = provider_with(lambda request: httpx.Response(200, json={}))

        with pytest.raises(BuildError, match="no swap transaction"):
            await provider.build_swap_transaction(self._quote(), "Payer111")

    @pytest.mark.asyncio
    async def test_rate_limited_build(self):
        provider = provider_with(lambda request: httpx.Response(429))

        with pytest.raises(BuildError) as exc_info:
            await provider.build_swap_transaction(self._quote(), "Payer111")

        assert exc_info.value.kind == FailureKind.RATE_LIMITED
