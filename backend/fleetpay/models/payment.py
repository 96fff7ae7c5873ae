"""
Payment Transaction Model — Authoritative record of one UPI charge attempt.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON

from fleetpay.database import Base


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class TransactionType(str, enum.Enum):
    NEW_RIDER = "NEW_RIDER"
    RETURN_RIDER = "RETURN_RIDER"
    RETAIN_RIDER = "RETAIN_RIDER"
    BATTERY_SWAP = "BATTERY_SWAP"


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    merchant_tran_id = Column(String(64), nullable=False, unique=True, index=True)

    ref_id = Column(String(64))                   # Gateway reference, set on QR response
    bank_rrn = Column(String(64))                 # Settlement reference, set once cleared
    amount = Column(Integer)                      # Amount in paise

    status = Column(String(16), nullable=False, default=TransactionStatus.PENDING.value)
    transaction_type = Column(String(32), nullable=False, default=TransactionType.NEW_RIDER.value)

    # Lookup-only links into the rental CRUD layer (not owned here)
    rental_id = Column(String(64), index=True)
    battery_swap_id = Column(String(64))
    rider_id = Column(String(64))

    gateway_response = Column(JSON, default=dict)
    callback_data = Column(JSON, default=dict)

    verified_at = Column(DateTime, nullable=True)
    verification_attempts = Column(Integer, nullable=False, default=0)
    last_status_check_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_verified(self) -> bool:
        return self.status == TransactionStatus.SUCCESS.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchantTranId": self.merchant_tran_id,
            "refId": self.ref_id,
            "bankRRN": self.bank_rrn,
            "amount": self.amount,
            "status": self.status,
            "transactionType": self.transaction_type,
            "rentalId": self.rental_id,
            "batterySwapId": self.battery_swap_id,
            "riderId": self.rider_id,
            "verifiedAt": self.verified_at,
            "verificationAttempts": self.verification_attempts,
            "lastStatusCheckAt": self.last_status_check_at,
            "createdAt": self.created_at,
        }
