"""Pure normalization of heterogeneous provider response bodies.

Provider versions disagree on field names for the same data, so each logical
field is resolved by probing an ordered tuple of candidate keys; the first
non-empty value wins.
"""

from typing import Any, Mapping

from pixpay.common.errors import IncompleteResponse
from pixpay.services.provider_adapter.models import TransactionResult, TransactionStatus

ID_FIELDS = ("idTransaction", "id", "client_id", "transaction_id")
PAYMENT_CODE_FIELDS = ("paymentCode", "pix_code", "pixCode")
PAYMENT_IMAGE_FIELDS = ("paymentCodeBase64", "qr_code_base64", "qrCodeBase64")
STATUS_FIELDS = ("status_transaction", "status")
MESSAGE_FIELDS = ("message",)

COMPLETED_STATUSES = frozenset({"completed", "complete", "paid", "approved", "confirmed"})
WAITING_STATUSES = frozenset({"waiting_for_approval", "waiting_approval", "waiting_payment"})
FAILED_STATUSES = frozenset(
    {"failed", "error", "refused", "denied", "canceled", "cancelled", "expired", "chargeback"}
)


def first_present(data: Mapping[str, Any], candidates: tuple[str, ...]) -> Any | None:
    """Return the first candidate value that is present and non-empty."""

    for key in candidates:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def map_status(raw_status: Any) -> TransactionStatus:
    """Map a provider status string onto the internal enum (unknown -> pending)."""

    if not isinstance(raw_status, str):
        return TransactionStatus.PENDING
    status = raw_status.strip().lower()
    if status in COMPLETED_STATUSES:
        return TransactionStatus.COMPLETED
    if status in WAITING_STATUSES:
        return TransactionStatus.WAITING_APPROVAL
    if status in FAILED_STATUSES:
        return TransactionStatus.FAILED
    return TransactionStatus.PENDING


def provider_error(data: Mapping[str, Any]) -> str | None:
    """Describe an error the provider reported inside a 2xx body, if any."""

    if data.get("errCode") or data.get("error") or data.get("status") == "error":
        detail = data.get("message") or data.get("error") or data.get("errCode") or "unknown"
        return str(detail)
    return None


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


def normalize_transaction(
    data: Mapping[str, Any],
    provider: str = "primary",
    default_status: TransactionStatus = TransactionStatus.WAITING_APPROVAL,
) -> TransactionResult:
    """Normalize a transaction-creation body.

    Raises `IncompleteResponse` when neither the payment code nor its image is
    present, carrying whatever transaction id could be found.
    """

    transaction_id = _as_text(first_present(data, ID_FIELDS))
    payment_code = first_present(data, PAYMENT_CODE_FIELDS)
    payment_code_image = first_present(data, PAYMENT_IMAGE_FIELDS)
    if payment_code is None and payment_code_image is None:
        raise IncompleteResponse(transaction_id, raw=dict(data))

    raw_status = first_present(data, STATUS_FIELDS)
    return TransactionResult(
        transaction_id=transaction_id,
        status=map_status(raw_status) if raw_status is not None else default_status,
        payment_code=_as_text(payment_code),
        payment_code_image=_as_text(payment_code_image),
        message=_as_text(first_present(data, MESSAGE_FIELDS)),
        provider=provider,
        raw=dict(data),
    )


def normalize_status(data: Mapping[str, Any], transaction_id: str) -> TransactionResult:
    """Normalize a status-check body; never raises.

    Both payment fields present means the charge is payable (`completed`) unless
    the provider explicitly reports a failure. The result always carries the
    polled `transaction_id`; ids inside the body are not trusted.
    """

    payment_code = _as_text(first_present(data, PAYMENT_CODE_FIELDS))
    payment_code_image = _as_text(first_present(data, PAYMENT_IMAGE_FIELDS))
    reported = map_status(first_present(data, STATUS_FIELDS))
    if reported is TransactionStatus.FAILED:
        status = TransactionStatus.FAILED
    elif payment_code and payment_code_image:
        status = TransactionStatus.COMPLETED
    else:
        status = TransactionStatus.PENDING
    return TransactionResult(
        transaction_id=transaction_id,
        status=status,
        payment_code=payment_code,
        payment_code_image=payment_code_image,
        message=_as_text(first_present(data, MESSAGE_FIELDS)),
        provider="status",
        raw=dict(data),
    )
