"""
Audit Service — Append-only trail of inbound gateway callbacks.
"""
from typing import Optional, Dict

from sqlalchemy.orm import Session

from fleetpay.models.notification import PaymentNotification
from fleetpay.utils.hashing import generate_hash

SNAPSHOT_HEADERS = (
    "x-upi-signature", "x-signature", "signature", "user-agent", "content-type",
)


def _fit(column: str, value: Optional[str]) -> Optional[str]:
    """Blank to None; longer values cut to the column width."""
    if not value:
        return None
    width = PaymentNotification.__table__.c[column].type.length
    return value[:width] if width else value


def header_snapshot(headers: Dict[str, str]) -> Dict[str, Optional[str]]:
    """The subset of request headers kept alongside each delivery."""
    lowered = {str(k).lower(): v for k, v in (headers or {}).items()}
    return {name: lowered.get(name) for name in SNAPSHOT_HEADERS}


class AuditService:
    """Writes one PaymentNotification per callback delivery; never updates."""

    @staticmethod
    def record_callback(
        db: Session,
        raw_body: bytes,
        headers: Dict[str, str],
        payload: Optional[Dict] = None,
        reference: Optional[str] = None,
        transaction_id: Optional[str] = None,
        status: Optional[str] = None,
        status_message: Optional[str] = None,
        amount: Optional[int] = None,
        payment_method: Optional[str] = None,
        signature: Optional[str] = None,
        signature_verified: Optional[bool] = None,
        rental_id: Optional[str] = None,
    ) -> PaymentNotification:
        """Persist and commit a callback audit row.

        Args:
            db: Database session.
            raw_body: Request body exactly as received.
            headers: Request headers (a snapshot is stored).
            payload: Best-effort parsed payload.
            signature_verified: True/False when a secret is configured, None otherwise.

        Returns:
            The created PaymentNotification.

        Raises:
            SQLAlchemyError: The row could not be stored.
        """
        entry = PaymentNotification(
            reference=_fit("reference", reference),
            transaction_id=_fit("transaction_id", transaction_id),
            status=_fit("status", status),
            status_message=_fit("status_message", status_message),
            amount=amount,
            payment_method=_fit("payment_method", payment_method),
            signature=_fit("signature", signature),
            signature_verified=signature_verified,
            headers=header_snapshot(headers),
            payload=payload or {},
            raw_body=raw_body.decode("utf-8", errors="replace"),
            body_hash=generate_hash(raw_body),
            rental_id=_fit("rental_id", rental_id),
        )

        db.add(entry)
        db.commit()
        db.refresh(entry)

        return entry

    @staticmethod
    def get_trail(db: Session, reference: str) -> list[PaymentNotification]:
        """All deliveries for a merchant transaction id, oldest first."""
        return (
            db.query(PaymentNotification)
            .filter(PaymentNotification.reference == reference)
            .order_by(PaymentNotification.id.asc())
            .all()
        )
