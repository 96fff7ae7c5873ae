from fleetpay.models.payment import PaymentTransaction, TransactionStatus, TransactionType
from fleetpay.models.notification import PaymentNotification
from fleetpay.models.refund import PaymentRefund

__all__ = [
    "PaymentTransaction", "TransactionStatus", "TransactionType",
    "PaymentNotification", "PaymentRefund",
]
