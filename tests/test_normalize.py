"""Tests for provider response normalization."""

import pytest

from pixpay.common.errors import IncompleteResponse
from pixpay.services.provider_adapter.models import TransactionResult, TransactionStatus
from pixpay.services.provider_adapter.normalize import (
    first_present,
    map_status,
    normalize_status,
    normalize_transaction,
    provider_error,
)


def test_current_schema_field_names():
    result = normalize_transaction(
        {
            "idTransaction": "tx-1",
            "paymentCode": "000201pix",
            "paymentCodeBase64": "iVBOR",
            "status_transaction": "WAITING_FOR_APPROVAL",
            "message": "PIX gerado com sucesso",
        }
    )

    assert result.transaction_id == "tx-1"
    assert result.payment_code == "000201pix"
    assert result.payment_code_image == "iVBOR"
    assert result.status is TransactionStatus.WAITING_APPROVAL
    assert result.message == "PIX gerado com sucesso"
    assert result.has_payment_data


def test_legacy_schema_field_names():
    result = normalize_transaction({"transaction_id": 987, "pix_code": "000201pix", "qr_code_base64": "iVBOR"})

    assert result.transaction_id == "987"
    assert result.payment_code == "000201pix"
    assert result.payment_code_image == "iVBOR"


def test_candidates_are_tried_in_priority_order():
    result = normalize_transaction(
        {
            "id": "second",
            "idTransaction": "first",
            "pixCode": "third-choice",
            "pix_code": "second-choice",
            "qrCodeBase64": "img-b",
            "paymentCodeBase64": "img-a",
        }
    )

    assert result.transaction_id == "first"
    assert result.payment_code == "second-choice"
    assert result.payment_code_image == "img-a"


def test_empty_values_fall_through_to_next_candidate():
    assert first_present({"paymentCode": "", "pix_code": None, "pixCode": "abc"}, ("paymentCode", "pix_code", "pixCode")) == "abc"


def test_missing_both_payment_fields_is_incomplete():
    """A 2xx body with no code and no image carries its transaction id in the error."""

    with pytest.raises(IncompleteResponse) as exc_info:
        normalize_transaction({"id": "tx-9", "status": "pending"})
    assert exc_info.value.transaction_id == "tx-9"
    assert exc_info.value.raw == {"id": "tx-9", "status": "pending"}


def test_one_payment_field_is_not_incomplete_but_not_payable():
    result = normalize_transaction({"id": "tx-2", "paymentCode": "000201pix", "status": "completed"})

    assert not result.has_payment_data
    assert result.status is TransactionStatus.PENDING


def test_missing_status_uses_default():
    result = normalize_transaction(
        {"id": "tx-3", "paymentCode": "c", "paymentCodeBase64": "i"},
        provider="fallback",
        default_status=TransactionStatus.PENDING,
    )

    assert result.status is TransactionStatus.PENDING
    assert result.provider == "fallback"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("PAID", TransactionStatus.COMPLETED),
        ("completed", TransactionStatus.COMPLETED),
        ("WAITING_FOR_APPROVAL", TransactionStatus.WAITING_APPROVAL),
        ("expired", TransactionStatus.FAILED),
        ("Cancelled", TransactionStatus.FAILED),
        ("success", TransactionStatus.PENDING),
        ("something-new", TransactionStatus.PENDING),
        (None, TransactionStatus.PENDING),
        (3, TransactionStatus.PENDING),
    ],
)
def test_map_status(raw, expected):
    assert map_status(raw) is expected


@pytest.mark.parametrize(
    "body",
    [{"errCode": "E42", "message": "bad cpf"}, {"error": "invalid"}, {"status": "error", "message": "nope"}],
)
def test_provider_error_in_body(body):
    assert provider_error(body)


def test_no_provider_error_in_normal_body():
    assert provider_error({"status": "success", "paymentCode": "x"}) is None


def test_completed_without_payment_data_is_pending():
    """The model never reports a charge as completed without code and image."""

    result = TransactionResult(transaction_id="tx", status=TransactionStatus.COMPLETED, payment_code="c")

    assert result.status is TransactionStatus.PENDING


def test_status_body_with_both_fields_is_completed():
    result = normalize_status({"pix_code": "000201pix", "qr_code_base64": "iVBOR", "status": "pending"}, "tx-5")

    assert result.status is TransactionStatus.COMPLETED
    assert result.transaction_id == "tx-5"
    assert result.provider == "status"


def test_status_body_without_fields_is_pending():
    assert normalize_status({"status": "processing"}, "tx-6").status is TransactionStatus.PENDING


def test_status_body_reporting_failure():
    assert normalize_status({"status": "expired", "pix_code": "c"}, "tx-7").status is TransactionStatus.FAILED


def test_raw_payload_is_not_serialized():
    result = normalize_transaction({"id": "tx-8", "paymentCode": "c", "paymentCodeBase64": "i", "secret": "s"})

    assert result.raw["secret"] == "s"
    assert "raw" not in result.model_dump()
    assert result.to_public()["paymentCodeBase64"] == "i"


def test_status_keeps_polled_transaction_id():
    """Ids in a status body (including the account's client_id) never replace the polled id."""

    result = normalize_status(
        {"pix_code": "c", "qr_code_base64": "i", "client_id": "acct-42", "id": "other-tx"},
        "tx-9",
    )

    assert result.transaction_id == "tx-9"
    assert result.status is TransactionStatus.COMPLETED
