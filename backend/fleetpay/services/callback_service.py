"""
Callback Service — Ingestion of gateway push notifications.

Deliveries are asynchronous and unordered with respect to status polling.
Every delivery is written to the audit trail before any transaction row is
touched; interpretation failures after that point are logged and the gateway
still receives a success answer, so it does not retry-storm.
"""
import logging
from datetime import datetime
from typing import Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleetpay.config import Settings
from fleetpay.errors import SignatureInvalid, SignatureMissing
from fleetpay.models.payment import PaymentTransaction, TransactionStatus, TransactionType
from fleetpay.services.audit_service import AuditService
from fleetpay.services.crypto_engine import CryptoEngine
from fleetpay.services.rental_lookup import RentalLookup
from fleetpay.services.transaction_service import apply_status, find_transaction
from fleetpay.utils.decoding import Decoded, parse_json
from fleetpay.utils.hashing import signature_matches
from fleetpay.utils.money import parse_amount_paise
from fleetpay.utils.vendor_fields import (
    CALLBACK_FIELD_ALIASES, SIGNATURE_HEADER_ALIASES, find_header, map_vendor_status, resolve_fields,
)

logger = logging.getLogger(__name__)


class CallbackService:
    """Verify, decode, record and reconcile one callback delivery."""

    def __init__(self, settings: Settings, engine: CryptoEngine, rental_lookup: RentalLookup):
        self.settings = settings
        self.engine = engine
        self.rental_lookup = rental_lookup

    # ─── Steps ────────────────────────────────────────────────────────

    def check_signature(self, raw_body: bytes, headers: Mapping[str, str]) -> tuple[Optional[bool], str]:
        """(verdict, provided signature). Verdict is None when no secret is configured."""
        provided = find_header(headers, SIGNATURE_HEADER_ALIASES).lower()
        secret = self.settings.UPI_CALLBACK_SIGNATURE_SECRET.strip()
        if not secret:
            return None, provided
        if not provided:
            return False, provided
        return signature_matches(secret, raw_body, provided), provided

    def decode_body(self, raw_body: bytes, content_type: str) -> dict:
        """Parsed callback payload; encrypted text/plain bodies are decrypted first."""
        parsed = parse_json(raw_body)
        if parsed.is_json:
            return parsed.as_mapping()

        if "text/plain" in (content_type or "").lower() and parsed.value:
            decrypted: Decoded = self.engine.decrypt_asymmetric(parsed.value)
            if decrypted.is_json and isinstance(decrypted.value, dict):
                return decrypted.value
            if decrypted.is_failed:
                logger.warning(
                    "Callback decryption attempt failed, treating as plain JSON: %s", decrypted.error,
                )
        return {}

    # ─── Entry point ──────────────────────────────────────────────────

    def ingest(self, db: Session, raw_body: bytes, headers: Mapping[str, str], content_type: str = "") -> dict:
        """Process one delivery.

        Raises:
            SignatureMissing / SignatureInvalid: secret configured and the
                signature is absent / wrong (the delivery is still recorded).
            SQLAlchemyError: the audit row could not be written.
        """
        verdict, provided_signature = self.check_signature(raw_body, headers)

        payload: dict = {}
        fields = {name: "" for name in CALLBACK_FIELD_ALIASES}
        try:
            payload = self.decode_body(raw_body, content_type)
            fields = resolve_fields(payload, CALLBACK_FIELD_ALIASES)
        except Exception as e:  # interpretation must never block the audit row
            logger.warning("Callback payload could not be interpreted: %s", e)

        merchant_tran_id = fields["merchant_tran_id"] or None
        raw_status = fields["status"].upper() or None
        amount = parse_amount_paise(fields["amount"] or None)
        status = map_vendor_status(raw_status)

        existing = None
        rental_ref = None
        if merchant_tran_id and verdict is not False:
            try:
                existing = find_transaction(db, merchant_tran_id)
                if existing is None:
                    rental_ref = self.rental_lookup.find(db, merchant_tran_id)
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning("Payment transaction lookup failed for %s: %s", merchant_tran_id, e)

        rental_id = existing.rental_id if existing else (rental_ref.rental_id if rental_ref else None)

        notification = AuditService.record_callback(
            db,
            raw_body=raw_body,
            headers=dict(headers),
            payload=payload,
            reference=merchant_tran_id,
            transaction_id=fields["bank_rrn"],
            status=raw_status,
            status_message=fields["status_message"],
            amount=amount,
            payment_method=fields["payer_va"],
            signature=provided_signature,
            signature_verified=verdict,
            rental_id=rental_id,
        )

        if verdict is False:
            logger.warning("Callback signature %s (notification %s)",
                           "missing" if not provided_signature else "mismatch", notification.id)
            if not provided_signature:
                raise SignatureMissing()
            raise SignatureInvalid()

        callback_data = {
            "payerName": fields["payer_name"],
            "payerMobile": fields["payer_mobile"],
            "payerVA": fields["payer_va"],
            "txnInitDate": fields["txn_init_date"],
            "txnCompletionDate": fields["txn_completion_date"],
            "statusMessage": fields["status_message"],
            "callbackReceivedAt": datetime.utcnow().isoformat(),
        }

        txn = None
        try:
            if existing is not None:
                txn = self._update_transaction(db, existing, status, fields["bank_rrn"], callback_data)
            elif merchant_tran_id and rental_ref is not None:
                txn = self._create_transaction(
                    db, merchant_tran_id, status, fields["bank_rrn"], amount, rental_ref, callback_data,
                )
        except SQLAlchemyError as e:
            db.rollback()
            txn = None
            logger.error("Failed to reconcile payment transaction from callback %s: %s", merchant_tran_id, e)

        return {
            "ok": True,
            "recorded": True,
            "notificationId": notification.id,
            "transactionUpdated": txn is not None,
            "merchantTranId": merchant_tran_id,
            "bankRRN": fields["bank_rrn"] or None,
            "status": (txn.status if txn is not None else status.value),
            "statusMessage": fields["status_message"] or None,
            "amount": amount,
            "rentalId": txn.rental_id if txn is not None else rental_id,
            "batterySwapId": txn.battery_swap_id if txn is not None else None,
        }

    # ─── Reconciliation ───────────────────────────────────────────────

    def _update_transaction(
        self,
        db: Session,
        txn: PaymentTransaction,
        status: TransactionStatus,
        bank_rrn: str,
        callback_data: dict,
    ) -> PaymentTransaction:
        apply_status(txn, status, self.settings.PAYMENT_ALLOW_STATUS_DOWNGRADE)
        if bank_rrn:
            txn.bank_rrn = bank_rrn
        txn.callback_data = callback_data
        db.commit()
        db.refresh(txn)
        logger.info("Callback updated %s -> %s", txn.merchant_tran_id, txn.status)
        return txn

    def _create_transaction(
        self,
        db: Session,
        merchant_tran_id: str,
        status: TransactionStatus,
        bank_rrn: str,
        amount: Optional[int],
        rental_ref,
        callback_data: dict,
    ) -> PaymentTransaction:
        txn = PaymentTransaction(
            merchant_tran_id=merchant_tran_id,
            bank_rrn=bank_rrn or None,
            amount=amount,
            status=TransactionStatus.PENDING.value,
            transaction_type=TransactionType.NEW_RIDER.value,
            rental_id=rental_ref.rental_id,
            rider_id=rental_ref.rider_id,
            callback_data=callback_data,
        )
        apply_status(txn, status)
        db.add(txn)
        db.commit()
        db.refresh(txn)
        logger.info("Callback created transaction %s for rental %s", merchant_tran_id, rental_ref.rental_id)
        return txn
