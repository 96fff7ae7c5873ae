import pytest

from fleetpay.errors import PaymentRequired
from fleetpay.models.payment import PaymentTransaction
from fleetpay.models.refund import PaymentRefund
from fleetpay.services.verification_gate import DenyReason


def _txn(db, status="SUCCESS", amount=50000, merchant_tran_id="TXN-GATE", transaction_type="RETAIN_RIDER"):
    db.add(PaymentTransaction(
        merchant_tran_id=merchant_tran_id, status=status, amount=amount,
        transaction_type=transaction_type,
    ))
    db.commit()


def test_success_with_matching_amount_is_allowed(services, db, fake_gateway):
    _txn(db)
    decision = services.gate.check(db, "TXN-GATE", 50000)
    assert decision.allowed is True
    assert decision.reason is None
    assert decision.current_status == "SUCCESS"
    assert fake_gateway.requests == []


def test_amount_off_by_one_paisa(services, db):
    _txn(db)
    decision = services.gate.check(db, "TXN-GATE", 49999)
    assert decision.allowed is False
    assert decision.reason is DenyReason.AMOUNT_MISMATCH
    assert decision.expected_amount == 49999
    assert decision.actual_amount == 50000
    assert "₹499.99" in decision.message
    assert "₹500.00" in decision.message


def test_pending_is_not_success(services, db):
    _txn(db, status="PENDING")
    decision = services.gate.check(db, "TXN-GATE", 50000)
    assert decision.reason is DenyReason.NOT_SUCCESS
    assert decision.current_status == "PENDING"
    assert "PENDING" in decision.message


def test_missing_reference(services, db):
    decision = services.gate.check(db, None, 50000)
    assert decision.reason is DenyReason.NOT_FOUND
    assert "₹500.00" in decision.message


def test_transaction_type_must_match(services, db, fake_gateway):
    _txn(db, transaction_type="NEW_RIDER")
    fake_gateway.routes["/api/v1/TransactionStatus3"] = (200, {"status": "SUCCESS", "amount": "500.00"})

    decision = services.gate.check(db, "TXN-GATE", 50000, transaction_type="BATTERY_SWAP")

    assert decision.allowed is False
    assert decision.reason is DenyReason.NOT_FOUND
    assert "BATTERY_SWAP" in decision.message
    assert fake_gateway.requests == []


def test_read_through_allows_settled_payment(services, db, fake_gateway):
    fake_gateway.routes["/api/v1/TransactionStatus3"] = (200, {"status": "SUCCESS", "amount": "500.00"})
    decision = services.gate.check(db, "TXN-REMOTE", 50000)
    assert decision.allowed is True
    assert len(fake_gateway.requests) == 1
    assert fake_gateway.last["payload"]["merchantTranId"] == "TXN-REMOTE"


def test_read_through_unknown_amount_is_mismatch(services, db, fake_gateway):
    fake_gateway.routes["/api/v1/TransactionStatus3"] = (200, {"status": "SUCCESS"})
    decision = services.gate.check(db, "TXN-REMOTE", 50000)
    assert decision.reason is DenyReason.AMOUNT_MISMATCH
    assert decision.actual_amount is None
    assert "unknown" in decision.message


def test_read_through_gateway_error_is_not_found(services, db, fake_gateway):
    fake_gateway.routes["/api/v1/TransactionStatus3"] = (500, {"message": "down"})
    decision = services.gate.check(db, "TXN-REMOTE", 50000)
    assert decision.reason is DenyReason.NOT_FOUND
    assert len(fake_gateway.requests) == 1


def test_no_read_through_when_gateway_unconfigured(make_settings, make_services, db, fake_gateway):
    services = make_services(make_settings(UPI_STATUS_ENDPOINT=""))
    decision = services.gate.check(db, "TXN-REMOTE", 50000)
    assert decision.reason is DenyReason.NOT_FOUND
    assert fake_gateway.requests == []


def test_gate_disabled_allows_everything(make_settings, make_services, db):
    services = make_services(make_settings(PAYMENT_GATE_ENABLED=False))
    assert services.gate.check(db, None, 50000).allowed is True
    assert services.gate.is_required("upi", 50000) is False


@pytest.mark.parametrize("mode, amount, required", [
    ("upi", 50000, True),
    ("CASH", 50000, False),
    ("upi", 0, False),
    (None, 100, True),
])
def test_is_required(services, mode, amount, required):
    assert services.gate.is_required(mode, amount) is required


def test_enforce_rolls_back_callers_pending_writes(services, db):
    db.add(PaymentRefund(merchant_tran_id="PARTIAL", original_merchant_tran_id="X", amount=1))
    db.flush()

    with pytest.raises(PaymentRequired) as excinfo:
        services.gate.enforce(db, None, 50000, transaction_type="BATTERY_SWAP")

    assert db.query(PaymentRefund).count() == 0
    body = excinfo.value.to_dict()
    assert excinfo.value.status_code == 402
    assert body["paymentRequired"] is True
    assert body["reason"] == "NotFound"
    assert body["expectedAmount"] == 50000


def test_enforce_returns_decision_when_allowed(services, db):
    _txn(db)
    decision = services.gate.enforce(db, "TXN-GATE", 50000, transaction_type="RETAIN_RIDER")
    assert decision.allowed is True


def test_enforce_mismatch_body(services, db):
    _txn(db)
    with pytest.raises(PaymentRequired) as excinfo:
        services.gate.enforce(db, "TXN-GATE", 49999)
    body = excinfo.value.to_dict()
    assert body["reason"] == "AmountMismatch"
    assert body["paymentStatus"] == "SUCCESS"
    assert body["actualAmount"] == 50000
    assert body["merchantTranId"] == "TXN-GATE"


def test_enforce_read_through_leaves_callers_writes_uncommitted(services, db, fake_gateway):
    fake_gateway.routes["/api/v1/TransactionStatus3"] = (200, {"status": "PENDING", "amount": "500.00"})
    db.add(PaymentRefund(merchant_tran_id="PARTIAL", original_merchant_tran_id="X", amount=1))
    db.flush()

    with pytest.raises(PaymentRequired) as excinfo:
        services.gate.enforce(db, "TXN-REMOTE", 50000, transaction_type="BATTERY_SWAP")

    assert excinfo.value.to_dict()["reason"] == "NotSuccess"
    assert len(fake_gateway.requests) == 1
    assert db.query(PaymentRefund).count() == 0
    assert db.query(PaymentTransaction).count() == 0


def test_enforce_type_mismatch_rolls_back_without_polling(services, db, fake_gateway):
    _txn(db, status="PENDING", transaction_type="NEW_RIDER")
    fake_gateway.routes["/api/v1/TransactionStatus3"] = (200, {"status": "SUCCESS", "amount": "500.00"})
    db.add(PaymentRefund(merchant_tran_id="PARTIAL", original_merchant_tran_id="X", amount=1))
    db.flush()

    with pytest.raises(PaymentRequired):
        services.gate.enforce(db, "TXN-GATE", 50000, transaction_type="BATTERY_SWAP")

    assert db.query(PaymentRefund).count() == 0
    assert fake_gateway.requests == []
    assert db.query(PaymentTransaction).one().status == "PENDING"
