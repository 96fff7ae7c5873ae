"""
Payment Notification Model — Immutable audit trail of gateway callbacks.
One row per inbound delivery, written before the callback is interpreted.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, Text, Boolean, event

from fleetpay.database import Base


class PaymentNotification(Base):
    __tablename__ = "payment_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)

    reference = Column(String(64), index=True)     # merchantTranId, when extractable
    transaction_id = Column(String(64))            # Bank RRN / gateway transaction id
    status = Column(String(32))                    # Raw gateway status text
    status_message = Column(String(256))
    amount = Column(Integer)                       # Paise
    payment_method = Column(String(128))           # Payer VPA

    signature = Column(String(128))
    signature_verified = Column(Boolean, nullable=True)   # None when no secret is configured

    headers = Column(JSON, default=dict)
    payload = Column(JSON, default=dict)
    raw_body = Column(Text)
    body_hash = Column(String(64))                 # SHA-256 of raw_body

    rental_id = Column(String(64))

    received_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "transactionId": self.transaction_id,
            "status": self.status,
            "statusMessage": self.status_message,
            "amount": self.amount,
            "paymentMethod": self.payment_method,
            "signatureVerified": self.signature_verified,
            "bodyHash": self.body_hash,
            "rentalId": self.rental_id,
            "receivedAt": self.received_at,
        }


@event.listens_for(PaymentNotification, "before_update")
def _refuse_notification_update(mapper, connection, target):
    raise ValueError("payment_notifications rows are append-only")
