"""
Tests for transaction building and re-anchoring.
"""

import base64
import time
from unittest.mock import AsyncMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from liquidator.core.liquidation.builder import TransactionBuilder, UnsignedTransaction, reanchor
from liquidator.core.liquidation.errors import BuildError, FailureKind
from liquidator.providers.jupiter import JupiterQuote, JupiterSwapTransaction, PriorityFeePolicy
from liquidator.providers.solana_rpc import NetworkAnchor


def unsigned_swap(payer: Keypair) -> VersionedTransaction:
    ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1))
    message = MessageV0.try_compile(payer.pubkey(), [ix], [], Hash.default())
    return VersionedTransaction.populate(message, [Signature.default()])


def make_quote(fetched_at=None):
    return JupiterQuote(
        input_mint="MintA",
        output_mint="MintB",
        in_amount=1000,
        out_amount=990,
        other_amount_threshold=980,
        swap_mode="ExactIn",
        slippage_bps=100,
        price_impact_pct=0.0,
        route_plan=[],
        quote_response={"outAmount": "990"},
        fetched_at=fetched_at if fetched_at is not None else time.time(),
    )


@pytest.fixture
def payer():
    return Keypair()


@pytest.fixture
def anchor():
    return NetworkAnchor(blockhash=str(Hash.new_unique()), last_valid_block_height=500)


@pytest.fixture
def swaps(payer):
    encoded = base64.b64encode(bytes(unsigned_swap(payer))).decode()
    provider = AsyncMock()
    provider.build_swap_transaction = AsyncMock(
        return_value=JupiterSwapTransaction(
            swap_transaction=encoded,
            last_valid_block_height=400,
            priority_fee_lamports=1000,
            compute_unit_limit=200_000,
        )
    )
    return provider


class TestReanchor:
    """Tests for replacing the message blockhash."""

    def test_replaces_blockhash_and_keeps_instructions(self, payer, anchor):
        original = unsigned_swap(payer)
        anchored = reanchor(original, anchor)

        assert str(anchored.message.recent_blockhash) == anchor.blockhash
        assert anchored.message.instructions == original.message.instructions
        assert anchored.message.account_keys == original.message.account_keys


class TestTransactionBuilder:
    """Tests for TransactionBuilder.build()."""

    @pytest.mark.asyncio
    async def test_build_uses_fresh_anchor(self, swaps, payer, anchor):
        policy = PriorityFeePolicy(max_lamports=7)
        builder = TransactionBuilder(swaps, fee_policy=policy, quote_max_age_seconds=30)

        unsigned = await builder.build(make_quote(), payer=str(payer.pubkey()), anchor=anchor, symbol="BONK")

        assert isinstance(unsigned, UnsignedTransaction)
        assert unsigned.blockhash == anchor.blockhash
        assert unsigned.anchor is anchor
        assert unsigned.symbol == "BONK"
        kwargs = swaps.build_swap_transaction.call_args.kwargs
        assert kwargs["user_public_key"] == str(payer.pubkey())
        assert kwargs["fee_policy"] is policy

    @pytest.mark.asyncio
    async def test_stale_quote_refused_without_request(self, swaps, payer, anchor):
        builder = TransactionBuilder(swaps, quote_max_age_seconds=30)

        with pytest.raises(BuildError) as exc_info:
            await builder.build(make_quote(fetched_at=time.time() - 60), payer=str(payer.pubkey()), anchor=anchor)

        assert exc_info.value.kind == FailureKind.BUILD_ERROR
        assert exc_info.value.retryable
        swaps.build_swap_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_undecodable_payload_is_build_error(self, swaps, payer, anchor):
        swaps.build_swap_transaction.return_value = JupiterSwapTransaction(
            swap_transaction="not base64!!",
            last_valid_block_height=0,
            priority_fee_lamports=0,
            compute_unit_limit=0,
        )
        builder = TransactionBuilder(swaps, quote_max_age_seconds=30)

        with pytest.raises(BuildError, match="could not decode"):
            await builder.build(make_quote(), payer=str(payer.pubkey()), anchor=anchor)
