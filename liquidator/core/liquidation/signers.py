"""
Signer Adapters

Two variants behind one `sign(unsigned, symbol)` contract:

- SoftwareSigner holds an in-process keypair. Any failure becomes
  SIGNING_FAILED.
- HardwareSigner drives an external device that needs a physical confirmation
  per transaction. Failures are classified from device status codes and
  exception types through lookup tables.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Protocol, Tuple, Type

from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from ...config import settings
from .builder import UnsignedTransaction
from .errors import FailureKind, SigningError

logger = logging.getLogger(__name__)


class SignerKind(str, Enum):
    SOFTWARE = "software"
    HARDWARE = "hardware"


@dataclass
class SignedTransaction:
    """A signed transaction ready for submission."""
    symbol: str
    payload: str                                # Base64 wire encoding
    signature: str                              # Fee payer signature (base58)

    @classmethod
    def from_transaction(cls, symbol: str, transaction: VersionedTransaction) -> SignedTransaction:
        return cls(
            symbol=symbol,
            payload=base64.b64encode(bytes(transaction)).decode("ascii"),
            signature=str(transaction.signatures[0]),
        )


class Signer(Protocol):
    kind: SignerKind

    @property
    def public_key(self) -> str:
        ...

    def prompt(self, symbol: str) -> str:
        ...

    async def sign(self, unsigned: UnsignedTransaction, symbol: str) -> SignedTransaction:
        ...


class SoftwareSigner:
    """Signs with a keypair held in memory."""

    kind = SignerKind.SOFTWARE

    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @classmethod
    def from_secret(cls, secret: str) -> SoftwareSigner:
        """Accept a base58 secret key or a JSON byte array (solana-keygen format)."""
        text = secret.strip()
        try:
            if text.startswith("["):
                return cls(Keypair.from_bytes(bytes(json.loads(text))))
            return cls(Keypair.from_base58_string(text))
        except (ValueError, TypeError) as e:
            raise SigningError(f"invalid keypair: {e}", FailureKind.SIGNING_FAILED)

    @property
    def public_key(self) -> str:
        return str(self._keypair.pubkey())

    def prompt(self, symbol: str) -> str:
        return f"confirm {symbol} swap..."

    async def sign(self, unsigned: UnsignedTransaction, symbol: str) -> SignedTransaction:
        try:
            signed = VersionedTransaction(unsigned.transaction.message, [self._keypair])
        except Exception as e:
            raise SigningError(f"signing failed: {e}", FailureKind.SIGNING_FAILED)
        return SignedTransaction.from_transaction(symbol, signed)


class DeviceError(Exception):
    """Error reported by a signing device, carrying its status word."""

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(message or f"device status 0x{status_code:04x}")
        self.status_code = status_code


class DeviceTransport(Protocol):
    """Transport to a hardware wallet's Solana app."""

    @property
    def public_key(self) -> str:
        ...

    async def sign_message(self, message: bytes) -> bytes:
        """Return the 64-byte ed25519 signature once the user approves on device."""
        ...


# Device status words (APDU SW1SW2)
DEVICE_STATUS_KINDS: Dict[int, FailureKind] = {
    0x6985: FailureKind.SIGNER_REJECTED,       # Conditions not satisfied: user denied
    0x6986: FailureKind.SIGNER_REJECTED,       # Command not allowed: blind signing disabled
    0x5515: FailureKind.SIGNER_UNAVAILABLE,    # Device locked
    0x6511: FailureKind.SIGNER_UNAVAILABLE,    # App not open
    0x6E00: FailureKind.SIGNER_UNAVAILABLE,    # CLA not supported: wrong app open
    0x6E01: FailureKind.SIGNER_UNAVAILABLE,
    0x6D00: FailureKind.SIGNER_UNAVAILABLE,    # INS not supported
}

DEVICE_EXCEPTION_KINDS: Tuple[Tuple[Type[BaseException], FailureKind], ...] = (
    (asyncio.TimeoutError, FailureKind.SIGNER_TIMEOUT),
    (TimeoutError, FailureKind.SIGNER_TIMEOUT),
    (ConnectionError, FailureKind.SIGNER_UNAVAILABLE),
    (OSError, FailureKind.SIGNER_UNAVAILABLE),
)


def classify_device_error(error: BaseException) -> FailureKind:
    """Map a device failure to a FailureKind without looking at its message."""
    if isinstance(error, DeviceError):
        return DEVICE_STATUS_KINDS.get(error.status_code, FailureKind.SIGNER_UNKNOWN)
    for exc_type, kind in DEVICE_EXCEPTION_KINDS:
        if isinstance(error, exc_type):
            return kind
    return FailureKind.SIGNER_UNKNOWN


_DEVICE_MESSAGES = {
    FailureKind.SIGNER_REJECTED: "transaction rejected on ledger device",
    FailureKind.SIGNER_TIMEOUT: "ledger confirmation timed out",
    FailureKind.SIGNER_UNAVAILABLE: "ledger device unavailable: unlock it and open the Solana app",
    FailureKind.SIGNER_UNKNOWN: "ledger signing failed",
}


class HardwareSigner:
    """
    Signs through a hardware wallet.

    The device call is bounded only by `timeout_s`, which should be long
    enough for a person to read and approve the transaction.
    """

    kind = SignerKind.HARDWARE

    def __init__(self, transport: DeviceTransport, timeout_s: Optional[float] = None):
        self._transport = transport
        self.timeout_s = timeout_s if timeout_s is not None else settings.hardware_signer_timeout_seconds

    @property
    def public_key(self) -> str:
        return self._transport.public_key

    def prompt(self, symbol: str) -> str:
        return "please confirm transaction on your ledger device..."

    async def sign(self, unsigned: UnsignedTransaction, symbol: str) -> SignedTransaction:
        message = unsigned.transaction.message
        try:
            raw_signature = await asyncio.wait_for(
                self._transport.sign_message(to_bytes_versioned(message)),
                timeout=self.timeout_s,
            )
            signature = Signature.from_bytes(bytes(raw_signature))
            signed = VersionedTransaction.populate(message, [signature])
        except Exception as e:
            kind = classify_device_error(e)
            logger.warning(f"Hardware signing failed for {symbol} ({kind.value}): {e!r}")
            details = {"status_code": e.status_code} if isinstance(e, DeviceError) else {}
            reason = f"{_DEVICE_MESSAGES[kind]}: {e}" if str(e) else _DEVICE_MESSAGES[kind]
            raise SigningError(reason, kind, details=details)

        return SignedTransaction.from_transaction(symbol, signed)


__all__ = [
    "SignerKind",
    "Signer",
    "SignedTransaction",
    "SoftwareSigner",
    "HardwareSigner",
    "DeviceTransport",
    "DeviceError",
    "DEVICE_STATUS_KINDS",
    "classify_device_error",
]
