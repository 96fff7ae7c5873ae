"""
Transaction Service — Lifecycle of a UPI charge.

Charge (QR) creation, status polling, refunds and read-only verification.
Owns the PaymentTransaction record; the polling path and the callback path
are two unordered writers to the same row, reconciled by `apply_status`.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urlencode

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleetpay.config import Settings
from fleetpay.models.payment import PaymentTransaction, TransactionStatus, TransactionType
from fleetpay.models.refund import PaymentRefund
from fleetpay.services.gateway_client import GatewayClient
from fleetpay.utils.money import format_rupees, parse_amount_paise
from fleetpay.utils.vendor_fields import (
    QR_RESPONSE_ALIASES, STATUS_RESPONSE_ALIASES, map_vendor_status, resolve_fields,
)

logger = logging.getLogger(__name__)


def find_transaction(db: Session, merchant_tran_id: str) -> Optional[PaymentTransaction]:
    return (
        db.query(PaymentTransaction)
        .filter(PaymentTransaction.merchant_tran_id == merchant_tran_id)
        .first()
    )


def apply_status(
    txn: PaymentTransaction,
    status: TransactionStatus,
    allow_downgrade: bool = False,
    now: Optional[datetime] = None,
) -> bool:
    """Move a transaction to `status`, enforcing the SUCCESS monotonic guard.

    `verified_at` is stamped the first time the record reaches SUCCESS and is
    never cleared. Returns False when a downgrade away from SUCCESS was refused.
    """
    now = now or datetime.utcnow()
    if (
        txn.status == TransactionStatus.SUCCESS.value
        and status != TransactionStatus.SUCCESS
        and not allow_downgrade
    ):
        logger.warning(
            "Refusing to move %s from SUCCESS to %s", txn.merchant_tran_id, status.value,
        )
        return False

    txn.status = status.value
    if status == TransactionStatus.SUCCESS and txn.verified_at is None:
        txn.verified_at = now
    return True


class TransactionService:
    """Charge creation, status polling, refunds and verification lookups."""

    def __init__(self, settings: Settings, gateway: GatewayClient):
        self.settings = settings
        self.gateway = gateway

    # ─── Charge / QR ──────────────────────────────────────────────────

    def build_payment_link(self, ref_id: Optional[str], amount: int, terminal_id: str) -> str:
        """UPI deep link: upi://pay?pa=<vpa>&pn=<payee>&tr=<refId>&am=<amount>&cu=INR&mc=<mcc>"""
        params = {
            "pa": self.settings.UPI_MERCHANT_VPA.strip(),
            "pn": self.settings.UPI_PAYEE_NAME.strip(),
            "tr": str(ref_id or "").strip(),
            "am": format_rupees(amount),
            "cu": "INR",
            "mc": terminal_id,
        }
        return f"upi://pay?{urlencode(params)}"

    def create_charge(
        self,
        db: Session,
        amount: int,
        merchant_tran_id: Optional[str] = None,
        bill_number: Optional[str] = None,
        terminal_id: Optional[str] = None,
        transaction_type: TransactionType = TransactionType.NEW_RIDER,
        rental_id: Optional[str] = None,
        battery_swap_id: Optional[str] = None,
        rider_id: Optional[str] = None,
        validate_payer_acc_flag: Optional[str] = None,
        payer_account: Optional[str] = None,
        payer_ifsc: Optional[str] = None,
    ) -> dict:
        """Request a dynamic QR from the gateway and record a PENDING transaction.

        Args:
            db: Database session.
            amount: Charge amount in paise.
            merchant_tran_id: Caller-chosen id; generated when omitted.
            bill_number: Bill reference, also used as id fallback.

        Returns:
            dict with merchantTranId, refId, paymentLink, paymentTransactionId.
        """
        self.gateway.require_configured(self.settings.UPI_QR_ENDPOINT)

        terminal = str(terminal_id or self.settings.UPI_TERMINAL_ID).strip()
        txn_id = (
            str(merchant_tran_id or "").strip()
            or str(bill_number or "").strip()
            or uuid.uuid4().hex[:32]
        )

        payload = {
            "amount": format_rupees(amount),
            "merchantId": self.settings.UPI_MERCHANT_ID,
            "terminalId": terminal,
            "merchantTranId": txn_id,
            "billNumber": str(bill_number or txn_id)[:50],
        }
        if validate_payer_acc_flag:
            flag = "Y" if str(validate_payer_acc_flag).upper() == "Y" else "N"
            payload["validatePayerAccFlag"] = flag
            if flag == "Y":
                if payer_account:
                    payload["payerAccount"] = str(payer_account)
                if payer_ifsc:
                    payload["payerIFSC"] = str(payer_ifsc)

        response = self.gateway.call(
            self.settings.UPI_QR_ENDPOINT, self.settings.UPI_SERVICE_QR, payload,
            request_id=txn_id, action="QR generation",
        )
        upstream = response.as_mapping()
        fields = resolve_fields(upstream, QR_RESPONSE_ALIASES)
        ref_id = fields["ref_id"] or None
        resp_txn_id = fields["merchant_tran_id"] or txn_id

        # The QR is usable even if the local record cannot be written
        payment_transaction_id = None
        try:
            txn = PaymentTransaction(
                merchant_tran_id=resp_txn_id,
                ref_id=ref_id,
                amount=amount,
                status=TransactionStatus.PENDING.value,
                transaction_type=TransactionType(transaction_type).value,
                rental_id=rental_id,
                battery_swap_id=battery_swap_id,
                rider_id=rider_id,
                gateway_response=upstream,
            )
            db.add(txn)
            db.commit()
            db.refresh(txn)
            payment_transaction_id = txn.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Failed to create payment transaction record for %s: %s", resp_txn_id, e)

        logger.info("QR created for %s (refId=%s, amount=%s)", resp_txn_id, ref_id, amount)

        return {
            "merchantId": self.settings.UPI_MERCHANT_ID,
            "terminalId": terminal,
            "merchantTranId": resp_txn_id,
            "refId": ref_id,
            "paymentLink": self.build_payment_link(ref_id, amount, terminal),
            "paymentTransactionId": payment_transaction_id,
            "upstream": response.body,
        }

    # ─── Status polling ───────────────────────────────────────────────

    def fetch_status(
        self,
        merchant_tran_id: str,
        sub_merchant_id: Optional[str] = None,
        terminal_id: Optional[str] = None,
    ) -> dict:
        """Ask the gateway for the current status without touching the database.

        Returns:
            dict with `vendor` (decoded echo), `status` (mapped), `amount`
            (vendor amount in paise or None), `bank_rrn` and `mapping`.
        """
        self.gateway.require_configured(self.settings.UPI_STATUS_ENDPOINT)

        payload = {
            "merchantId": self.settings.UPI_MERCHANT_ID,
            "subMerchantId": str(sub_merchant_id or self.settings.sub_merchant_id).strip(),
            "terminalId": str(terminal_id or self.settings.UPI_TERMINAL_ID).strip(),
            "merchantTranId": str(merchant_tran_id),
        }
        response = self.gateway.call(
            self.settings.UPI_STATUS_ENDPOINT, self.settings.UPI_SERVICE_STATUS, payload,
            action="Status check",
        )
        fields = resolve_fields(response.as_mapping(), STATUS_RESPONSE_ALIASES)
        return {
            "vendor": response.body,
            "status": map_vendor_status(fields["status"] or "PENDING"),
            "amount": parse_amount_paise(fields["amount"] or None),
            "bank_rrn": fields["bank_rrn"],
            "mapping": response.as_mapping(),
        }

    def poll_status(
        self,
        db: Session,
        merchant_tran_id: str,
        sub_merchant_id: Optional[str] = None,
        terminal_id: Optional[str] = None,
    ) -> dict:
        """Ask the gateway for the current status and reconcile the local record.

        Returns:
            dict with `vendor` (decoded echo), `status` (mapped), `amount`
            (vendor amount in paise or None), `transaction` (updated row or None).
        """
        fetched = self.fetch_status(merchant_tran_id, sub_merchant_id, terminal_id)
        status = fetched["status"]

        txn = find_transaction(db, merchant_tran_id)
        if txn is not None:
            try:
                now = datetime.utcnow()
                apply_status(txn, status, self.settings.PAYMENT_ALLOW_STATUS_DOWNGRADE, now)
                if fetched["bank_rrn"] and not txn.bank_rrn:
                    txn.bank_rrn = fetched["bank_rrn"]
                txn.gateway_response = fetched["mapping"]
                txn.last_status_check_at = now
                txn.verification_attempts = (txn.verification_attempts or 0) + 1
                db.commit()
                db.refresh(txn)
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning("Failed to update payment transaction %s: %s", merchant_tran_id, e)

        return {
            "vendor": fetched["vendor"],
            "status": status,
            "amount": fetched["amount"],
            "transaction": txn,
        }

    # ─── Refund ───────────────────────────────────────────────────────

    def refund(
        self,
        db: Session,
        original_bank_rrn: str,
        merchant_tran_id: str,
        original_merchant_tran_id: str,
        refund_amount: int,
        note: str,
        online_refund: str = "Y",
        payee_va: Optional[str] = None,
        sub_merchant_id: Optional[str] = None,
        terminal_id: Optional[str] = None,
    ) -> Any:
        """One-shot refund request; the gateway echo is returned as-is."""
        self.gateway.require_configured(self.settings.UPI_REFUND_ENDPOINT)

        payload = {
            "merchantId": self.settings.UPI_MERCHANT_ID,
            "subMerchantId": str(sub_merchant_id or self.settings.sub_merchant_id).strip(),
            "terminalId": str(terminal_id or self.settings.UPI_TERMINAL_ID).strip(),
            "originalBankRRN": str(original_bank_rrn),
            "merchantTranId": str(merchant_tran_id),
            "originalmerchantTranId": str(original_merchant_tran_id),
            "refundAmount": format_rupees(refund_amount),
            "note": str(note)[:50],
            "onlineRefund": "N" if str(online_refund or "Y").upper() == "N" else "Y",
        }
        if payee_va:
            payload["payeeVA"] = str(payee_va)

        response = self.gateway.call(
            self.settings.UPI_REFUND_ENDPOINT, self.settings.UPI_SERVICE_REFUND, payload,
            action="Refund",
        )
        self._record_refund(db, payload, refund_amount, response.as_mapping())
        return response.body

    def _record_refund(self, db: Session, payload: dict, amount: int, upstream: dict) -> None:
        try:
            original = find_transaction(db, payload["originalmerchantTranId"])
            status = resolve_fields(upstream, STATUS_RESPONSE_ALIASES)["status"]
            db.add(PaymentRefund(
                merchant_tran_id=payload["merchantTranId"],
                original_merchant_tran_id=payload["originalmerchantTranId"],
                original_bank_rrn=payload["originalBankRRN"],
                payment_transaction_id=original.id if original else None,
                amount=amount,
                note=payload["note"],
                status=map_vendor_status(status).value,
                gateway_response=upstream,
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Failed to record refund %s: %s", payload["merchantTranId"], e)

    # ─── Read-only verification ───────────────────────────────────────

    @staticmethod
    def verify(
        db: Session,
        merchant_tran_id: Optional[str] = None,
        rental_id: Optional[str] = None,
        transaction_type: Optional[str] = None,
    ) -> dict:
        """Local lookup only; never calls the gateway.

        Raises:
            ValueError: Neither merchant_tran_id nor rental_id given.
        """
        if not merchant_tran_id and not rental_id:
            raise ValueError("merchantTranId or rentalId is required")

        if merchant_tran_id:
            txn = find_transaction(db, merchant_tran_id)
        else:
            query = db.query(PaymentTransaction).filter(PaymentTransaction.rental_id == rental_id)
            if transaction_type:
                query = query.filter(PaymentTransaction.transaction_type == transaction_type)
            txn = query.order_by(
                PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc()
            ).first()

        if txn is None:
            return {
                "verified": False,
                "exists": False,
                "transaction": None,
                "message": "Payment transaction not found",
            }

        return {
            "verified": txn.is_verified,
            "exists": True,
            "transaction": txn,
            "message": "Payment verified successfully" if txn.is_verified else f"Payment status: {txn.status}",
        }
