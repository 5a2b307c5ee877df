"""
Failure Classification

Every failure inside an asset pipeline is reduced to a FailureKind. Whether a
kind may be retried is decided by RETRYABLE_KINDS, never by inspecting error
message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class FailureKind(str, Enum):
    """Categories of liquidation failures."""

    PRECONDITION = "precondition"              # Computed amount unusable
    RATE_LIMITED = "rate_limited"              # Aggregator throttled us
    INVALID_REQUEST = "invalid_request"        # Aggregator rejected the request shape
    SERVICE_ERROR = "service_error"            # 5xx, timeouts, transport failures
    MALFORMED_RESPONSE = "malformed_response"  # Payload missing required fields
    BUILD_ERROR = "build_error"                # No executable transaction produced
    SIGNER_REJECTED = "signer_rejected"        # User declined on device
    SIGNER_TIMEOUT = "signer_timeout"
    SIGNER_UNAVAILABLE = "signer_unavailable"  # Device locked, unplugged, app closed
    SIGNER_UNKNOWN = "signer_unknown"
    SIGNING_FAILED = "signing_failed"          # Software signer failure
    SUBMIT_ERROR = "submit_error"
    CONFIRM_ERROR = "confirm_error"            # Anchor expired or confirmation timed out
    EXECUTION_FAILED = "execution_failed"      # Landed on-chain with an error
    UNCONFIRMED = "unconfirmed"                # Broadcast, outcome unknown; never re-sent
    CANCELLED = "cancelled"


RETRYABLE_KINDS: FrozenSet[FailureKind] = frozenset(
    {
        FailureKind.RATE_LIMITED,
        FailureKind.SERVICE_ERROR,
        FailureKind.MALFORMED_RESPONSE,
        FailureKind.BUILD_ERROR,
        FailureKind.SIGNER_TIMEOUT,
        FailureKind.SIGNER_UNAVAILABLE,
        FailureKind.SIGNER_UNKNOWN,
        FailureKind.SIGNING_FAILED,
        FailureKind.SUBMIT_ERROR,
        FailureKind.CONFIRM_ERROR,
        FailureKind.EXECUTION_FAILED,
    }
)


def is_retryable(kind: FailureKind) -> bool:
    return kind in RETRYABLE_KINDS


class LiquidationError(Exception):
    """
    Base class for classified liquidation failures.

    Carries the FailureKind so callers can branch on structure rather than
    on the message.
    """

    default_kind: FailureKind = FailureKind.SERVICE_ERROR

    def __init__(
        self,
        message: str,
        kind: Optional[FailureKind] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.details = details or {}

    @property
    def retryable(self) -> bool:
        return is_retryable(self.kind)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class PreconditionError(LiquidationError):
    """Raised before any network call when inputs cannot produce a swap."""

    default_kind = FailureKind.PRECONDITION


class IntentError(PreconditionError):
    """The liquidation intent as a whole is unusable; nothing was attempted."""


class QuoteError(LiquidationError):
    """Failed to get a quote from the aggregator."""


class BuildError(LiquidationError):
    """Failed to build an executable transaction."""

    default_kind = FailureKind.BUILD_ERROR


class SigningError(LiquidationError):
    """The signer capability did not return a signed transaction."""

    default_kind = FailureKind.SIGNER_UNKNOWN


class SubmitError(LiquidationError):
    """The network did not accept the signed transaction."""

    default_kind = FailureKind.SUBMIT_ERROR


class ConfirmError(LiquidationError):
    """The transaction did not confirm within its anchor's validity window."""

    default_kind = FailureKind.CONFIRM_ERROR


class ExecutionFailedError(LiquidationError):
    """The transaction landed but the chain reported an execution error."""

    default_kind = FailureKind.EXECUTION_FAILED

    def __init__(self, message: str, signature: Optional[str] = None, chain_error: Any = None):
        super().__init__(message, details={"signature": signature, "chain_error": chain_error})
        self.signature = signature
        self.chain_error = chain_error


class UnconfirmedSwapError(LiquidationError):
    """Something other than the network failed after the transaction was broadcast."""

    default_kind = FailureKind.UNCONFIRMED


class LiquidationCancelled(LiquidationError):
    """The run was cancelled cooperatively before this stage started."""

    default_kind = FailureKind.CANCELLED


def classify_status_code(status_code: int) -> FailureKind:
    """Map an aggregator HTTP status to a failure kind."""
    if status_code == 429:
        return FailureKind.RATE_LIMITED
    if 400 <= status_code < 500:
        return FailureKind.INVALID_REQUEST
    return FailureKind.SERVICE_ERROR
