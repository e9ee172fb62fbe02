"""Ordered, short-circuiting validation of inbound PIX payment requests.

Runs before any network call. The first failing check raises, naming the
offending field by its dotted path (e.g. `customer.address.zipCode`).
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

import pydantic

from pixpay.common.errors import AmountBelowMinimum, InvalidField, MissingField
from pixpay.services.orchestrator.schemas import PaymentRequest

DEFAULT_MIN_AMOUNT = Decimal("1.49")
CUSTOMER_FIELDS = ("cpf", "name", "email", "phone", "externaRef", "address")
ADDRESS_FIELDS = ("city", "state", "street", "country", "zipCode", "neighborhood", "streetNumber")

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: Any) -> str:
    return _NON_DIGITS.sub("", str(value))


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _numeric(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _is_iso_date(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


def _check_items(items: Any) -> None:
    if not isinstance(items, list) or not items:
        raise MissingField("items")
    for idx, item in enumerate(items):
        path = f"items[{idx}]"
        if not isinstance(item, Mapping):
            raise MissingField(path)
        if not isinstance(item.get("title"), str) or not item["title"].strip():
            raise MissingField(f"{path}.title")
        if not _numeric(item.get("quantity")):
            raise MissingField(f"{path}.quantity")
        if item["quantity"] <= 0:
            raise InvalidField(f"{path}.quantity", "must be greater than zero")
        if not isinstance(item.get("tangible"), bool):
            raise MissingField(f"{path}.tangible")
        if not _numeric(item.get("unitPrice")):
            raise MissingField(f"{path}.unitPrice")


def _check_amount(amount: Any, min_amount: Decimal) -> Decimal:
    if not _numeric(amount):
        raise MissingField("amount")
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise MissingField("amount") from None
    if not value.is_finite():
        raise InvalidField("amount", "must be a finite number")
    if value < min_amount:
        raise AmountBelowMinimum("amount", min_amount)
    return value


def _check_customer(customer: Any) -> dict[str, Any]:
    if not isinstance(customer, Mapping):
        raise MissingField("customer")
    for key in CUSTOMER_FIELDS:
        if not _present(customer.get(key)):
            raise MissingField(f"customer.{key}")

    cpf = digits_only(customer["cpf"])
    if len(cpf) != 11:
        raise InvalidField("customer.cpf", "must have exactly 11 digits")
    phone = digits_only(customer["phone"])
    if not 10 <= len(phone) <= 11:
        raise InvalidField("customer.phone", "must have 10 or 11 digits")

    address = customer["address"]
    if not isinstance(address, Mapping):
        raise MissingField("customer.address")
    for key in ADDRESS_FIELDS:
        if not _present(address.get(key)):
            raise MissingField(f"customer.address.{key}")
    zip_code = digits_only(address["zipCode"])
    if len(zip_code) < 8:
        raise InvalidField("customer.address.zipCode", "must have at least 8 digits")

    return {
        **customer,
        "cpf": cpf,
        "phone": phone,
        "address": {**address, "zipCode": zip_code, "streetNumber": str(address["streetNumber"])},
    }


def validate_payload(payload: Mapping[str, Any], min_amount: Decimal = DEFAULT_MIN_AMOUNT) -> PaymentRequest:
    """Validate `payload` in a fixed order and return the normalized request."""

    if not isinstance(payload, Mapping):
        raise MissingField("payload")
    if not _present(payload.get("ip")):
        raise MissingField("ip")

    pix = payload.get("pix")
    expires = pix.get("expiresInDays") if isinstance(pix, Mapping) else None
    if not _present(expires):
        raise MissingField("pix.expiresInDays")
    if not _is_iso_date(expires):
        raise InvalidField("pix.expiresInDays", "must be a calendar date string like 2024-12-31")

    _check_items(payload.get("items"))
    amount = _check_amount(payload.get("amount"), min_amount)
    customer = _check_customer(payload.get("customer"))

    postback_url = payload.get("postbackUrl")
    if not isinstance(postback_url, str) or not postback_url.startswith("http"):
        raise MissingField("postbackUrl")

    try:
        return PaymentRequest.model_validate(
            {
                **payload,
                "ip": str(payload["ip"]),
                "amount": amount,
                "customer": customer,
                "pix": {"expiresInDays": expires.strip()},
            }
        )
    except pydantic.ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise InvalidField(field, error["msg"]) from None
