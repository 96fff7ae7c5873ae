import pytest

from fleetpay.models.payment import TransactionStatus
from fleetpay.utils.decoding import looks_like_base64, parse_json
from fleetpay.utils.vendor_fields import (
    CALLBACK_FIELD_ALIASES, SIGNATURE_HEADER_ALIASES, find_header, first_non_empty,
    map_vendor_status, resolve_fields,
)


def test_first_non_empty_respects_alias_order():
    payload = {"bankRRN": "second", "BankRRN": "first"}
    assert first_non_empty(payload, CALLBACK_FIELD_ALIASES["bank_rrn"]) == "first"


def test_first_non_empty_skips_blank_and_structured_values():
    payload = {"BankRRN": "  ", "bankRRN": {"nested": 1}, "rrn": 123456}
    assert first_non_empty(payload, CALLBACK_FIELD_ALIASES["bank_rrn"]) == "123456"


def test_first_non_empty_non_mapping():
    assert first_non_empty("not a dict", ["a"]) == ""


def test_resolve_fields_legacy_callback_shape():
    payload = {
        "merchantRefNo": "TXN-1",
        "txnStatus": "success",
        "payment_amount": "250.00",
        "PayerVA": "rider@upi",
    }
    fields = resolve_fields(payload, CALLBACK_FIELD_ALIASES)
    assert fields["merchant_tran_id"] == "TXN-1"
    assert fields["status"] == "success"
    assert fields["amount"] == "250.00"
    assert fields["payer_va"] == "rider@upi"
    assert fields["bank_rrn"] == ""


@pytest.mark.parametrize("raw, expected", [
    ("SUCCESS", TransactionStatus.SUCCESS),
    ("completed", TransactionStatus.SUCCESS),
    (" Paid ", TransactionStatus.SUCCESS),
    ("FAILED", TransactionStatus.FAILURE),
    ("declined", TransactionStatus.FAILURE),
    ("PENDING", TransactionStatus.PENDING),
    ("IN_PROGRESS", TransactionStatus.PENDING),
    ("", TransactionStatus.PENDING),
    (None, TransactionStatus.PENDING),
])
def test_map_vendor_status(raw, expected):
    assert map_vendor_status(raw) is expected


def test_find_header_is_case_insensitive():
    headers = {"X-Signature": "abc", "Content-Type": "application/json"}
    assert find_header(headers, SIGNATURE_HEADER_ALIASES) == "abc"
    assert find_header({}, SIGNATURE_HEADER_ALIASES) == ""


def test_parse_json_only_for_object_or_array_literals():
    assert parse_json('{"a": 1}').value == {"a": 1}
    assert parse_json(b"[1, 2]").is_json
    assert not parse_json("42").is_json
    assert not parse_json("{broken").is_json
    assert parse_json("  Invalid request  ").value == "Invalid request"


def test_looks_like_base64():
    assert not looks_like_base64("c2hvcnQ=")
    assert looks_like_base64("QUJDREVGR0hJSktMTU5PUFFSU1RVVg==")
    assert not looks_like_base64("Internal Server Error, try again later")
    assert not looks_like_base64("QUJDREVGR0hJSktMTU5PUFFSU1RVVg", require_block_multiple=True)
