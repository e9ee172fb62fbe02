"""Error taxonomy for the PIX payment core.

Every terminal failure a caller can see is a `PixPayError` subclass carrying one
human-readable `user_message` suitable for a toast/banner.
"""

from typing import Any


class PixPayError(Exception):
    """Base exception for all payment-core errors."""

    user_message = "We could not generate your PIX charge. Please try again."


class ConfigurationError(PixPayError):
    """Raised when provider credentials or endpoints are missing."""

    user_message = "PIX payments are temporarily unavailable."


class ValidationError(PixPayError):
    """Raised before any network call when the payment request is invalid."""

    user_message = "Please check your payment details and try again."

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"invalid field: {field}")


class MissingField(ValidationError):
    """A required field is absent or empty."""

    def __init__(self, field: str) -> None:
        super().__init__(field, f"missing required field: {field}")


class InvalidField(ValidationError):
    """A field is present but malformed."""

    def __init__(self, field: str, reason: str) -> None:
        self.reason = reason
        super().__init__(field, f"invalid field {field}: {reason}")


class AmountBelowMinimum(ValidationError):
    user_message = "The minimum amount for a PIX payment is R$ 1,49."

    def __init__(self, field: str, minimum: Any) -> None:
        self.minimum = minimum
        super().__init__(field, f"{field} below minimum payable amount {minimum}")


class RateLimited(PixPayError):
    """Raised when a caller exceeded its creation attempts for the window."""

    user_message = "Too many payment attempts. Please wait a few minutes and try again."

    def __init__(self, key: str, retry_after: float) -> None:
        self.key = key
        self.retry_after = retry_after
        super().__init__(f"rate limit exceeded for {key}; retry after {retry_after:.0f}s")


class AuthError(PixPayError):
    """Provider rejected our credentials."""

    user_message = "The payment provider is unavailable right now. Please try again later."

    def __init__(self, status_code: int | None, provider_details: Any = None) -> None:
        self.status_code = status_code
        self.provider_details = provider_details
        super().__init__(f"provider authentication failed (status={status_code})")


class GatewayError(PixPayError):
    """Provider failed to create the transaction."""

    user_message = "The payment provider could not create your PIX charge. Please try again."

    def __init__(self, status_code: int | None, provider_details: Any = None, message: str | None = None) -> None:
        self.status_code = status_code
        self.provider_details = provider_details
        super().__init__(message or f"gateway error (status={status_code})")


class PayloadRejected(GatewayError):
    """Provider answered 400: the payload itself was refused."""

    user_message = "The payment provider rejected the payment details. Please review them and try again."

    def __init__(self, provider_details: Any = None) -> None:
        super().__init__(400, provider_details, "provider rejected payload (status=400)")


class IncompleteResponse(PixPayError):
    """Provider accepted the transaction but returned no payment code or image."""

    user_message = "Your PIX charge is not ready yet. Please try again."

    def __init__(self, transaction_id: str | None, raw: Any = None) -> None:
        self.transaction_id = transaction_id
        self.raw = raw
        super().__init__(f"provider response without payment data (transaction_id={transaction_id})")


class TransientNetworkError(PixPayError):
    """Transport-level failure talking to the provider; retryable."""

    user_message = "Network problem while contacting the payment provider. Please try again."


class TimedOut(PixPayError):
    """Polling budget exhausted before the transaction became payable."""

    user_message = "The PIX charge was not generated in time. Please try again."

    def __init__(self, transaction_id: str, attempts: int) -> None:
        self.transaction_id = transaction_id
        self.attempts = attempts
        super().__init__(f"transaction {transaction_id} not payable after {attempts} checks")


class TransactionFailed(PixPayError):
    """Provider reported a definitive failure while polling."""

    user_message = "The payment provider reported a failure for this charge. Please try again."

    def __init__(self, transaction_id: str | None, result: Any = None) -> None:
        self.transaction_id = transaction_id
        self.result = result
        super().__init__(f"transaction {transaction_id} failed at provider")


class PollingAbandoned(PixPayError):
    """The caller stopped waiting for the transaction."""

    user_message = "Payment attempt cancelled."

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"polling abandoned for transaction {transaction_id}")
