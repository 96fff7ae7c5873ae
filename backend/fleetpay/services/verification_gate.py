"""
Verification Gate — Blocks business mutations until payment is confirmed.

Rider onboarding, rental retention, battery swaps and vehicle returns call
`enforce` with the same Session they write through; a denial rolls that
Session back before raising PaymentRequired.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from fleetpay.config import Settings
from fleetpay.errors import GatewayError, PaymentRequired
from fleetpay.models.payment import PaymentTransaction, TransactionStatus
from fleetpay.services.transaction_service import TransactionService
from fleetpay.utils.money import format_rupees

logger = logging.getLogger(__name__)


class DenyReason(str, enum.Enum):
    NOT_FOUND = "NotFound"
    NOT_SUCCESS = "NotSuccess"
    AMOUNT_MISMATCH = "AmountMismatch"


@dataclass
class GateDecision:
    allowed: bool
    merchant_tran_id: Optional[str] = None
    reason: Optional[DenyReason] = None
    current_status: Optional[str] = None
    expected_amount: Optional[int] = None
    actual_amount: Optional[int] = None
    transaction: Optional[PaymentTransaction] = None
    detail: str = ""

    @property
    def message(self) -> str:
        if self.allowed:
            return "Payment verified"
        if self.reason == DenyReason.NOT_SUCCESS:
            return (
                f"Payment not completed. Current status: {self.current_status}. "
                "Please complete payment before continuing."
            )
        if self.reason == DenyReason.AMOUNT_MISMATCH:
            actual = format_rupees(self.actual_amount) if self.actual_amount is not None else "unknown"
            return (
                f"Payment amount mismatch. Expected ₹{format_rupees(self.expected_amount or 0)}, "
                f"but payment is ₹{actual}."
            )
        return self.detail or "Payment transaction not found. Please complete payment before continuing."


class VerificationGate:
    """`check` answers Allow/Deny; `enforce` turns a Deny into PaymentRequired."""

    def __init__(self, settings: Settings, transactions: TransactionService):
        self.settings = settings
        self.transactions = transactions

    def is_required(self, payment_mode: Optional[str], amount: Optional[int]) -> bool:
        """Cash payments and zero amounts never need a gateway transaction."""
        if not self.settings.PAYMENT_GATE_ENABLED:
            return False
        if str(payment_mode or "").strip().lower() == "cash":
            return False
        return bool(amount and amount > 0)

    def check(
        self,
        db: Session,
        merchant_tran_id: Optional[str],
        expected_amount: int,
        transaction_type: Optional[str] = None,
    ) -> GateDecision:
        """Decide whether the payment behind `merchant_tran_id` unlocks a mutation.

        Without a local record, one synchronous status query is allowed before
        denying. A record stored under another transaction type is a denial
        and is never looked up remotely.
        """
        if not self.settings.PAYMENT_GATE_ENABLED:
            return GateDecision(allowed=True, merchant_tran_id=merchant_tran_id)

        if not merchant_tran_id:
            return GateDecision(
                allowed=False,
                reason=DenyReason.NOT_FOUND,
                expected_amount=expected_amount,
                detail=f"Payment required (₹{format_rupees(expected_amount)}). "
                       "Please complete payment before continuing.",
            )

        txn = (
            db.query(PaymentTransaction)
            .filter(PaymentTransaction.merchant_tran_id == merchant_tran_id)
            .first()
        )

        if txn is not None and transaction_type and txn.transaction_type != transaction_type:
            logger.warning(
                "Payment gate: %s belongs to %s, not %s",
                merchant_tran_id, txn.transaction_type, transaction_type,
            )
            return GateDecision(
                allowed=False,
                merchant_tran_id=merchant_tran_id,
                reason=DenyReason.NOT_FOUND,
                current_status=txn.status,
                expected_amount=expected_amount,
                transaction=txn,
                detail=f"No {transaction_type} payment found for {merchant_tran_id}. "
                       "Please complete payment before continuing.",
            )

        if txn is not None:
            status, actual = txn.status, txn.amount
        else:
            polled = self._read_through(merchant_tran_id)
            if polled is None:
                return GateDecision(
                    allowed=False,
                    merchant_tran_id=merchant_tran_id,
                    reason=DenyReason.NOT_FOUND,
                    expected_amount=expected_amount,
                )
            status, actual = polled

        if status != TransactionStatus.SUCCESS.value:
            return GateDecision(
                allowed=False,
                merchant_tran_id=merchant_tran_id,
                reason=DenyReason.NOT_SUCCESS,
                current_status=status,
                expected_amount=expected_amount,
                actual_amount=actual,
                transaction=txn,
            )

        if actual is None or actual != expected_amount:
            return GateDecision(
                allowed=False,
                merchant_tran_id=merchant_tran_id,
                reason=DenyReason.AMOUNT_MISMATCH,
                current_status=status,
                expected_amount=expected_amount,
                actual_amount=actual,
                transaction=txn,
            )

        return GateDecision(
            allowed=True,
            merchant_tran_id=merchant_tran_id,
            current_status=status,
            expected_amount=expected_amount,
            actual_amount=actual,
            transaction=txn,
        )

    def enforce(
        self,
        db: Session,
        merchant_tran_id: Optional[str],
        expected_amount: int,
        transaction_type: Optional[str] = None,
    ) -> GateDecision:
        """`check`, rolling back the caller's Session and raising PaymentRequired on Deny."""
        decision = self.check(db, merchant_tran_id, expected_amount, transaction_type)
        if not decision.allowed:
            db.rollback()
            logger.info(
                "Payment gate denied %s: %s (status=%s, expected=%s, actual=%s)",
                merchant_tran_id, decision.reason.value, decision.current_status,
                decision.expected_amount, decision.actual_amount,
            )
            raise PaymentRequired(decision)
        return decision

    def _read_through(self, merchant_tran_id: str) -> Optional[tuple[str, Optional[int]]]:
        """Single status query for a transaction unknown locally; None if unavailable.

        Nothing is written, so the caller's Session stays untouched until
        `enforce` decides whether to roll it back.
        """
        if not self.transactions.gateway.is_configured(self.settings.UPI_STATUS_ENDPOINT):
            return None
        try:
            result = self.transactions.fetch_status(merchant_tran_id)
        except GatewayError as e:
            logger.warning("Payment gate read-through failed for %s: %s", merchant_tran_id, e.message)
            return None
        return result["status"].value, result["amount"]
