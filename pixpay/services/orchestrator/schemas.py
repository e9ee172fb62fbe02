"""Payment request schemas (provider wire names as aliases)."""

import time
from decimal import Decimal
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Address(WireModel):
    street: str
    street_number: str = Field(alias="streetNumber")
    neighborhood: str
    city: str
    state: str
    country: str
    zip_code: str = Field(alias="zipCode")
    complement: str | None = None


class Customer(WireModel):
    name: str
    email: str
    cpf: str
    phone: str
    external_ref: str = Field(alias="externaRef")
    address: Address


class Item(WireModel):
    title: str
    quantity: Decimal
    unit_price: Decimal = Field(alias="unitPrice")
    tangible: bool

    @field_serializer("quantity", "unit_price")
    def _as_number(self, value: Decimal) -> float | int:
        return int(value) if value == value.to_integral_value() else float(value)


class PixOptions(WireModel):
    expires_in_days: str = Field(alias="expiresInDays")


class PaymentRequest(WireModel):
    """Validated PIX charge request, owned by the caller for one create call.

    `amount` is not checked against the items' total; the provider does not
    require it.
    """

    ip: str
    amount: Decimal
    customer: Customer
    items: list[Item]
    postback_url: str = Field(alias="postbackUrl")
    pix: PixOptions
    metadata: dict[str, Any] | None = None
    traceable: bool | None = None

    @field_serializer("amount")
    def _amount_as_number(self, value: Decimal) -> float:
        return float(value)

    def to_wire(self) -> dict[str, Any]:
        """JSON body for the provider (wire field names, numbers as numbers)."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def new_external_reference(prefix: str = "ORDER") -> str:
    """Externally visible reference, unique per request."""

    return f"{prefix}_{int(time.time() * 1000)}_{uuid4().hex[:6]}"


class AttemptResponse(BaseModel):
    """Snapshot of a session's latest payment attempt."""

    session_id: str
    state: str
    transaction: dict[str, Any] | None = None
    error: str | None = None
    poll_attempts: int | None = None
