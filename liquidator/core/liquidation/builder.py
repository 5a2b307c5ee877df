"""
Transaction Builder

Turns a quote into an unsigned versioned transaction anchored to a freshly
fetched blockhash.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional

from solders.hash import Hash
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from ...config import settings
from ...providers.jupiter import JupiterQuote, JupiterSwapProvider, PriorityFeePolicy
from ...providers.solana_rpc import NetworkAnchor
from .errors import BuildError

logger = logging.getLogger(__name__)


@dataclass
class UnsignedTransaction:
    """A built swap awaiting a signature, plus what it was built from."""
    symbol: str
    transaction: VersionedTransaction
    anchor: NetworkAnchor
    quote: JupiterQuote

    @property
    def blockhash(self) -> str:
        return str(self.transaction.message.recent_blockhash)


def reanchor(transaction: VersionedTransaction, anchor: NetworkAnchor) -> VersionedTransaction:
    """Return an unsigned copy of `transaction` whose message uses the anchor's blockhash."""
    message = transaction.message
    if not isinstance(message, MessageV0):
        raise BuildError("expected a v0 swap transaction")

    try:
        blockhash = Hash.from_string(anchor.blockhash)
    except ValueError as e:
        raise BuildError(f"invalid blockhash {anchor.blockhash}: {e}")

    anchored = MessageV0(
        message.header,
        message.account_keys,
        blockhash,
        message.instructions,
        message.address_table_lookups,
    )
    return VersionedTransaction.populate(anchored, list(transaction.signatures))


class TransactionBuilder:
    """
    Builds swap transactions via Jupiter.

    Usage:
        builder = TransactionBuilder(JupiterSwapProvider())
        anchor = await rpc.get_latest_anchor()
        unsigned = await builder.build(quote, payer=signer.public_key, anchor=anchor, symbol="BONK")
    """

    def __init__(
        self,
        swaps: JupiterSwapProvider,
        fee_policy: Optional[PriorityFeePolicy] = None,
        quote_max_age_seconds: Optional[float] = None,
    ):
        self._swaps = swaps
        self.fee_policy = fee_policy or PriorityFeePolicy.from_settings()
        self.quote_max_age_seconds = (
            quote_max_age_seconds if quote_max_age_seconds is not None else settings.quote_max_age_seconds
        )

    async def build(
        self,
        quote: JupiterQuote,
        payer: str,
        anchor: NetworkAnchor,
        symbol: str = "",
    ) -> UnsignedTransaction:
        """
        Build an unsigned transaction for `quote`, paid for by `payer`.

        Raises:
            BuildError: the quote is stale or no usable transaction came back
        """
        if not quote.is_fresh(self.quote_max_age_seconds):
            raise BuildError(
                f"quote for {symbol or quote.input_mint} is {quote.age_seconds:.1f}s old; re-quote required",
                details={"age_seconds": quote.age_seconds},
            )

        swap = await self._swaps.build_swap_transaction(
            quote=quote,
            user_public_key=payer,
            fee_policy=self.fee_policy,
        )

        try:
            raw = base64.b64decode(swap.swap_transaction, validate=True)
            transaction = VersionedTransaction.from_bytes(raw)
        except (binascii.Error, ValueError) as e:
            raise BuildError(f"could not decode swap transaction: {e}")

        anchored = reanchor(transaction, anchor)
        logger.debug(
            f"Built {symbol or quote.input_mint} swap on {anchor.blockhash} "
            f"(priority fee {swap.priority_fee_lamports} lamports, cu limit {swap.compute_unit_limit})"
        )
        return UnsignedTransaction(symbol=symbol, transaction=anchored, anchor=anchor, quote=quote)


__all__ = ["TransactionBuilder", "UnsignedTransaction", "PriorityFeePolicy", "reanchor"]
