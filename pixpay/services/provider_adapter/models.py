"""Internal shapes for provider results, independent of provider version."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class TransactionStatus(str, Enum):
    PENDING = "pending"
    WAITING_APPROVAL = "waiting_approval"
    COMPLETED = "completed"
    FAILED = "failed"


class AccessToken(BaseModel):
    """Bearer token returned by the provider's auth endpoint."""

    value: str = Field(min_length=1, repr=False)
    token_type: str = "Bearer"
    expires_in: int | None = None

    @field_validator("expires_in", mode="before")
    @classmethod
    def _lenient_expiry(cls, value: Any) -> int | None:
        # Only informational; an unreadable lifetime must not fail the payment.
        if isinstance(value, bool):
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return None

    @property
    def authorization(self) -> str:
        return f"Bearer {self.value}"


class TransactionResult(BaseModel):
    """Normalized view of one provider transaction.

    A `completed` status without both the copy-paste code and the QR image is
    downgraded to `pending`: the charge is not payable until both exist.
    """

    transaction_id: str | None = None
    status: TransactionStatus = TransactionStatus.PENDING
    payment_code: str | None = None
    payment_code_image: str | None = None
    message: str | None = None
    provider: str = "primary"
    raw: dict[str, Any] | None = Field(default=None, exclude=True, repr=False)

    @model_validator(mode="after")
    def _completed_requires_payment_data(self) -> "TransactionResult":
        if self.status is TransactionStatus.COMPLETED and not self.has_payment_data:
            self.status = TransactionStatus.PENDING
        return self

    @property
    def has_payment_data(self) -> bool:
        return bool(self.payment_code) and bool(self.payment_code_image)

    def to_public(self) -> dict[str, Any]:
        """Response shape the UI layer renders (QR + copy-paste code)."""

        return {
            "idTransaction": self.transaction_id,
            "paymentCode": self.payment_code,
            "paymentCodeBase64": self.payment_code_image,
            "status_transaction": self.status.value,
            "message": self.message,
        }
