"""
Solana RPC Client.

Fetches network anchors (recent blockhashes), broadcasts signed transactions
and waits for them to confirm against the anchor they were built with.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.liquidation.errors import (
    BuildError,
    ConfirmError,
    ExecutionFailedError,
    FailureKind,
    SubmitError,
)

logger = logging.getLogger(__name__)

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


@dataclass(frozen=True)
class NetworkAnchor:
    """A recent blockhash and the last block height at which it is valid."""
    blockhash: str
    last_valid_block_height: int
    fetched_at: float = field(default_factory=time.time, compare=False)


@dataclass
class ConfirmationOutcome:
    """A signature that reached the requested commitment without error."""
    signature: str
    slot: Optional[int] = None
    confirmation_status: Optional[str] = None


@dataclass
class SolanaRpcConfig:
    """Configuration for Solana RPC connection."""
    rpc_url: str
    commitment: str = "confirmed"
    send_max_retries: int = 3                   # Rebroadcasts performed by the node
    request_attempts: int = 3                   # Our own attempts per JSON-RPC call
    timeout_s: float = 20.0
    confirmation_timeout_s: float = 90.0
    poll_interval_s: float = 1.0

    @classmethod
    def from_settings(cls) -> SolanaRpcConfig:
        return cls(
            rpc_url=settings.resolved_rpc_url,
            commitment=settings.solana_commitment,
            send_max_retries=settings.solana_send_max_retries,
            timeout_s=settings.solana_rpc_timeout_seconds,
            confirmation_timeout_s=settings.confirmation_timeout_seconds,
            poll_interval_s=settings.confirmation_poll_interval_seconds,
        )


class SolanaRpcError(Exception):
    """Error talking to the Solana JSON-RPC endpoint."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class SolanaRpcClient:
    """
    JSON-RPC client for the submit/confirm half of a swap.

    Usage:
        rpc = SolanaRpcClient(SolanaRpcConfig(
            rpc_url="https://api.mainnet-beta.solana.com"
        ))

        anchor = await rpc.get_latest_anchor()
        signature = await rpc.send_transaction(signed_tx_base64)
        await rpc.confirm_transaction(signature, anchor)
    """

    def __init__(self, config: SolanaRpcConfig, client: Optional[httpx.AsyncClient] = None):
        self._config = config
        self._client = client

    @property
    def config(self) -> SolanaRpcConfig:
        return self._config

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call, retrying transport failures a bounded number of times."""
        client = await self._get_client()

        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params,
        }

        attempts = max(self._config.request_attempts, 1)
        for attempt in range(attempts):
            try:
                response = await client.post(
                    self._config.rpc_url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                data = response.json()

                if "error" in data:
                    error = data["error"] or {}
                    raise SolanaRpcError(
                        f"RPC error: {error.get('message', error)}",
                        code=error.get("code"),
                        data=error.get("data"),
                    )

                return data.get("result")

            except SolanaRpcError:
                raise
            except httpx.HTTPStatusError as e:
                if attempt == attempts - 1:
                    raise SolanaRpcError(f"HTTP error: {e.response.status_code}", code=e.response.status_code)
            except (httpx.HTTPError, ValueError) as e:
                if attempt == attempts - 1:
                    raise SolanaRpcError(str(e) or e.__class__.__name__)

            await asyncio.sleep(0.5 * (attempt + 1))

        raise SolanaRpcError("Max retries exceeded")

    async def get_latest_anchor(self) -> NetworkAnchor:
        """
        Fetch a fresh blockhash. Call immediately before every build attempt.

        Raises:
            BuildError: (service_error) when no anchor could be fetched
        """
        try:
            result = await self._rpc_call(
                "getLatestBlockhash",
                [{"commitment": self._config.commitment}],
            )
        except SolanaRpcError as e:
            raise BuildError(f"unable to get fresh blockhash: {e}", FailureKind.SERVICE_ERROR)

        value = (result or {}).get("value") or {}
        blockhash = value.get("blockhash")
        height = value.get("lastValidBlockHeight")
        if not blockhash or height is None:
            raise BuildError("unable to get fresh blockhash: empty response", FailureKind.SERVICE_ERROR)

        anchor = NetworkAnchor(blockhash=blockhash, last_valid_block_height=int(height))
        logger.debug(f"Fetched anchor {anchor.blockhash} valid through height {height}")
        return anchor

    async def get_block_height(self) -> int:
        result = await self._rpc_call("getBlockHeight", [{"commitment": self._config.commitment}])
        return int(result)

    async def send_transaction(
        self,
        signed_transaction: str,
        skip_preflight: bool = True,
        max_retries: Optional[int] = None,
    ) -> str:
        """
        Broadcast a signed, base64-encoded transaction.

        Preflight is skipped by default since the signer has already checked
        the transaction; the node rebroadcasts up to `max_retries` times.

        Returns:
            The transaction signature (base58)

        Raises:
            SubmitError
        """
        options = {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": self._config.commitment,
            "maxRetries": self._config.send_max_retries if max_retries is None else max_retries,
        }

        try:
            signature = await self._rpc_call("sendTransaction", [signed_transaction, options])
        except SolanaRpcError as e:
            raise SubmitError(f"failed to send transaction: {e}", details={"code": e.code})

        if not signature:
            raise SubmitError("failed to send transaction - no signature returned")
        return signature

    async def confirm_transaction(
        self,
        signature: str,
        anchor: NetworkAnchor,
        timeout_s: Optional[float] = None,
    ) -> ConfirmationOutcome:
        """
        Wait until `signature` reaches the configured commitment.

        Confirmation is tied to `anchor`: once the chain passes the anchor's
        last valid block height the transaction can never land, and waiting
        stops with a ConfirmError.

        Raises:
            ExecutionFailedError: the transaction landed with an error
            ConfirmError: the anchor expired or waiting timed out; failed
                status reads are retried until then
        """
        deadline = time.monotonic() + (timeout_s if timeout_s is not None else self._config.confirmation_timeout_s)
        interval = self._config.poll_interval_s
        wanted = _COMMITMENT_RANK.get(self._config.commitment, 1)

        while True:
            try:
                result = await self._rpc_call(
                    "getSignatureStatuses",
                    [[signature], {"searchTransactionHistory": False}],
                )
            except SolanaRpcError as e:
                # The transaction may still land; keep polling inside the anchor window
                logger.warning(f"Status read for {signature} failed, will poll again: {e}")
                result = None

            statuses = (result or {}).get("value") or [None]
            status: Optional[Dict[str, Any]] = statuses[0]

            if status is not None:
                if status.get("err") is not None:
                    raise ExecutionFailedError(
                        f"transaction failed: {status['err']}",
                        signature=signature,
                        chain_error=status["err"],
                    )
                reached = status.get("confirmationStatus")
                if reached is None and status.get("confirmations") is None:
                    reached = "finalized"
                if _COMMITMENT_RANK.get(reached or "processed", 0) >= wanted:
                    return ConfirmationOutcome(
                        signature=signature,
                        slot=status.get("slot"),
                        confirmation_status=reached,
                    )
            else:
                try:
                    height = await self.get_block_height()
                except SolanaRpcError:
                    height = None
                if height is not None and height > anchor.last_valid_block_height:
                    raise ConfirmError(
                        "block height exceeded: transaction anchor expired before confirmation",
                        details={"signature": signature, "blockhash": anchor.blockhash},
                    )

            if time.monotonic() >= deadline:
                raise ConfirmError(
                    "transaction confirmation timed out",
                    details={"signature": signature},
                )

            await asyncio.sleep(interval)
            interval = min(interval * 1.5, 5.0)


__all__ = [
    "SolanaRpcClient",
    "SolanaRpcConfig",
    "SolanaRpcError",
    "NetworkAnchor",
    "ConfirmationOutcome",
]
