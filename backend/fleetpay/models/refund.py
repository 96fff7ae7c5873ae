"""
Payment Refund Model — Ledger of refund requests sent to the gateway,
linked back to the originating charge when it is known locally.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey

from fleetpay.database import Base


class PaymentRefund(Base):
    __tablename__ = "payment_refunds"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    merchant_tran_id = Column(String(64), nullable=False, index=True)   # Refund request id

    original_merchant_tran_id = Column(String(64), nullable=False, index=True)
    original_bank_rrn = Column(String(64))
    payment_transaction_id = Column(Integer, ForeignKey("payment_transactions.id"), nullable=True)

    amount = Column(Integer, nullable=False)       # Paise
    note = Column(String(50))
    status = Column(String(16))                    # Mapped gateway status
    gateway_response = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)
