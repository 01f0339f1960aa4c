"""Exception hierarchy for the seat purchase flow.

All errors inherit from SeatPurchaseError so callers can map any failure
to a user-visible message from ``error_code`` and ``message`` alone.

Recoverable kinds (``retryable = True``) leave configuration and quote
intact; the caller may re-attempt. ``CapacityAllocationFailed`` is the one
kind that must never be retried automatically: money may have moved
without capacity being granted.
"""
from __future__ import annotations

from typing import Any, Optional


class SeatPurchaseError(Exception):
    """Base exception for the purchase flow.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "SEAT_PURCHASE_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Transport errors
# =============================================================================

class APIError(SeatPurchaseError):
    """Error envelope or non-2xx response from the backend."""

    error_code = "API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, error_code=code, details=details)
        self.status_code = status_code

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500

    @classmethod
    def from_response(cls, status_code: int, body: Any) -> "APIError":
        """Build an APIError from a decoded response body.

        Understands the console envelope ``{success: false, message, code,
        errors}`` as well as FastAPI-style ``{detail: ...}`` bodies.
        """
        if not isinstance(body, dict):
            return cls(message=str(body) or "Unknown error", status_code=status_code)

        detail = body.get("detail")
        if isinstance(detail, list):
            return cls(
                message="Validation Error",
                status_code=status_code,
                code="VALIDATION_ERROR",
                details={"errors": detail},
            )

        message = body.get("message") or (detail if isinstance(detail, str) else None)
        error = body.get("error")
        if isinstance(error, dict):
            message = message or error.get("message")
            code = error.get("code")
        else:
            code = body.get("code") or body.get("error_code")
            if isinstance(error, str):
                message = message or error

        details: dict[str, Any] = {}
        if body.get("errors"):
            details["errors"] = body["errors"]
        if isinstance(body.get("data"), dict):
            details["data"] = body["data"]

        return cls(
            message=message or "Unknown error",
            status_code=status_code,
            code=code,
            details=details,
        )


class AuthenticationError(APIError):
    """Missing or expired console session token."""

    error_code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Invalid or expired session token") -> None:
        super().__init__(message, status_code=401)


# =============================================================================
# Purchase taxonomy
# =============================================================================

class InvalidConfiguration(SeatPurchaseError):
    """The purchase configuration violates a local rule (seat minimum, name)."""

    error_code = "INVALID_CONFIGURATION"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class PricingUnavailable(SeatPurchaseError):
    """The backend could not price the requested combination."""

    error_code = "PRICING_UNAVAILABLE"

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.retryable = retryable


class CredentialsUnavailable(SeatPurchaseError):
    """Stored payment methods could not be loaded."""

    error_code = "CREDENTIALS_UNAVAILABLE"

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.retryable = retryable


class StaleQuote(SeatPurchaseError):
    """The held quote does not match the current configuration or has aged out."""

    error_code = "STALE_QUOTE"
    retryable = True


class NoCredentialSelected(SeatPurchaseError):
    """Stored credentials exist but none was chosen for this purchase."""

    error_code = "NO_CREDENTIAL_SELECTED"
    retryable = True

    def __init__(self, message: str = "Please select a payment method") -> None:
        super().__init__(message)


class TokenizationInitFailed(SeatPurchaseError):
    """The backend could not issue a tokenization session."""

    error_code = "TOKENIZATION_INIT_FAILED"

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.retryable = retryable


class CredentialRejected(SeatPurchaseError):
    """The processor rejected the collected payment details.

    ``session_expired`` is set when the processor reports the client secret
    as consumed or expired; the next collection attempt then needs a new
    tokenization session.
    """

    error_code = "CREDENTIAL_REJECTED"
    retryable = True

    def __init__(
        self,
        message: str,
        decline_code: Optional[str] = None,
        session_expired: bool = False,
    ) -> None:
        details: dict[str, Any] = {"session_expired": session_expired}
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, details=details)
        self.decline_code = decline_code
        self.session_expired = session_expired


class ChargeDeclined(SeatPurchaseError):
    """The backend attempted the charge and it was declined. No seats moved."""

    error_code = "CHARGE_DECLINED"
    retryable = True


class CapacityAllocationFailed(SeatPurchaseError):
    """The charge succeeded but seats could not be allocated.

    Requires manual reconciliation; never retried automatically.
    """

    error_code = "CAPACITY_ALLOCATION_FAILED"
    retryable = False

    def __init__(
        self,
        message: str,
        attempt_id: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        details["attempt_id"] = attempt_id
        super().__init__(message, details=details)
        self.attempt_id = attempt_id

    @property
    def support_message(self) -> str:
        return (
            "Your payment may have been taken but seats were not allocated. "
            f"Please contact support and quote reference {self.attempt_id}."
        )


class BackendUnavailable(SeatPurchaseError):
    """The backend could not be reached or timed out.

    Safe to retry with the same attempt id; the backend deduplicates.
    """

    error_code = "BACKEND_UNAVAILABLE"
    retryable = True


# =============================================================================
# Saga control errors
# =============================================================================

class PurchaseInProgress(SeatPurchaseError):
    """Another purchase attempt is already open for this partner session."""

    error_code = "PURCHASE_IN_PROGRESS"


class InvalidTransition(SeatPurchaseError):
    """The requested operation is not allowed in the current state."""

    error_code = "INVALID_TRANSITION"


class ConfirmationInFlight(SeatPurchaseError):
    """The backend confirmation was sent; the attempt cannot be abandoned."""

    error_code = "CONFIRMATION_IN_FLIGHT"

    def __init__(
        self,
        message: str = "Purchase confirmation is in progress; wait for the result",
    ) -> None:
        super().__init__(message)


class PurchaseCancelled(SeatPurchaseError):
    """The purchase was closed before it reached the backend."""

    error_code = "PURCHASE_CANCELLED"


# =============================================================================
# Idempotency errors
# =============================================================================

class IdempotencyError(SeatPurchaseError):
    """Base exception for idempotency errors."""

    error_code = "IDEMPOTENCY_ERROR"


class IdempotencyKeyConflict(IdempotencyError):
    """An attempt id was reused with a different request body."""

    error_code = "IDEMPOTENCY_KEY_CONFLICT"


class IdempotencyOperationInProgress(IdempotencyError):
    """A submission with the same attempt id is already in flight."""

    error_code = "IDEMPOTENCY_IN_PROGRESS"
