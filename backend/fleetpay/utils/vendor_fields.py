"""
Vendor Field Normalization — Alias tables for gateway payloads.

The gateway's field names have drifted across integration generations
(`BankRRN` / `bankRRN` / `rrn`, `TxnStatus` / `status`, ...). Each logical
field maps to an ordered list of candidate names; the first non-empty value
wins.
"""
from typing import Any, Mapping, Sequence

from fleetpay.models.payment import TransactionStatus


CALLBACK_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "merchant_tran_id": (
        "merchantTranId", "merchantTranID", "merchant_tran_id", "merchantRefNo",
        "merchant_reference_no", "merchantReference", "referenceId", "reference",
    ),
    "bank_rrn": (
        "BankRRN", "bankRRN", "bank_rrn", "rrn", "transactionId", "txnId",
        "transaction_reference",
    ),
    "status": (
        "TxnStatus", "txnStatus", "status", "payment_status", "transactionStatus",
        "responseCode", "result",
    ),
    "status_message": (
        "statusMessage", "status_msg", "responseMessage", "response_message",
        "message", "note", "response_desc",
    ),
    "amount": (
        "PayerAmount", "payerAmount", "amount", "payment_amount", "transaction_amount",
        "txnAmount", "amountPaid", "value", "amt",
    ),
    "payer_name": ("PayerName", "payerName", "payer_name"),
    "payer_mobile": ("PayerMobile", "payerMobile", "payer_mobile"),
    "payer_va": ("PayerVA", "payerVA", "payer_va"),
    "txn_init_date": ("TxnInitDate", "txnInitDate", "txn_init_date"),
    "txn_completion_date": ("TxnCompletionDate", "txnCompletionDate", "txn_completion_date"),
}

STATUS_RESPONSE_ALIASES: dict[str, tuple[str, ...]] = {
    "status": ("status", "Status", "TxnStatus"),
    "bank_rrn": ("OriginalBankRRN", "originalBankRRN", "BankRRN", "bankRRN"),
    "amount": ("amount", "Amount"),
    "message": ("message", "error", "response"),
}

QR_RESPONSE_ALIASES: dict[str, tuple[str, ...]] = {
    "ref_id": ("refId", "refid", "RefId", "refID"),
    "merchant_tran_id": ("merchantTranId", "merchantTranID"),
}

ERROR_MESSAGE_ALIASES: tuple[str, ...] = ("message", "error", "response")

SIGNATURE_HEADER_ALIASES: tuple[str, ...] = ("x-upi-signature", "x-signature", "signature")

SUCCESS_STATUSES = frozenset({"SUCCESS", "SUCCESSFUL", "COMPLETED", "PAID", "APPROVED", "OK"})
FAILURE_STATUSES = frozenset({"FAILURE", "FAILED", "FAIL", "DECLINED", "REJECTED", "ERROR"})


def first_non_empty(payload: Mapping[str, Any], candidates: Sequence[str]) -> str:
    """Value of the first candidate key that is present and non-blank, stripped."""
    if not isinstance(payload, Mapping):
        return ""
    for key in candidates:
        value = payload.get(key)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def resolve_fields(payload: Mapping[str, Any], table: Mapping[str, Sequence[str]]) -> dict[str, str]:
    """Apply `first_non_empty` for every logical field of an alias table."""
    return {field: first_non_empty(payload, aliases) for field, aliases in table.items()}


def map_vendor_status(raw: Any) -> TransactionStatus:
    """Vendor free-text status to the 3-state enum; unknown text stays PENDING."""
    text = str(raw or "").strip().upper()
    if text in SUCCESS_STATUSES:
        return TransactionStatus.SUCCESS
    if text in FAILURE_STATUSES:
        return TransactionStatus.FAILURE
    return TransactionStatus.PENDING


def find_header(headers: Mapping[str, str], names: Sequence[str]) -> str:
    """Case-insensitive header lookup over a list of accepted names."""
    lowered = {str(k).lower(): v for k, v in (headers or {}).items()}
    for name in names:
        value = lowered.get(name.lower())
        if value and str(value).strip():
            return str(value).strip()
    return ""
