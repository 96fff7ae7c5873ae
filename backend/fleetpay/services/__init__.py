from fleetpay.services.key_store import KeyStore
from fleetpay.services.crypto_engine import CryptoEngine
from fleetpay.services.gateway_client import GatewayClient
from fleetpay.services.transaction_service import TransactionService
from fleetpay.services.callback_service import CallbackService
from fleetpay.services.verification_gate import VerificationGate
from fleetpay.services.audit_service import AuditService

__all__ = [
    "KeyStore", "CryptoEngine", "GatewayClient", "TransactionService",
    "CallbackService", "VerificationGate", "AuditService",
]
