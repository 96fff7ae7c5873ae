"""
Service Wiring — FastAPI dependency providers for the payment core.

Each provider is cached so the whole process shares one KeyStore, one HTTP
client and one set of services. Tests swap them via `app.dependency_overrides`.
"""
from functools import lru_cache

from fleetpay.config import get_settings
from fleetpay.services.callback_service import CallbackService
from fleetpay.services.crypto_engine import CryptoEngine
from fleetpay.services.gateway_client import GatewayClient
from fleetpay.services.key_store import KeyStore
from fleetpay.services.rental_lookup import SqlRentalLookup
from fleetpay.services.transaction_service import TransactionService
from fleetpay.services.verification_gate import VerificationGate


@lru_cache()
def get_key_store() -> KeyStore:
    return KeyStore(get_settings())


@lru_cache()
def get_crypto_engine() -> CryptoEngine:
    settings = get_settings()
    return CryptoEngine(get_key_store(), session_key_length=settings.UPI_SESSION_KEY_LENGTH)


@lru_cache()
def get_gateway_client() -> GatewayClient:
    return GatewayClient(get_settings(), get_crypto_engine())


@lru_cache()
def get_transaction_service() -> TransactionService:
    return TransactionService(get_settings(), get_gateway_client())


@lru_cache()
def get_rental_lookup() -> SqlRentalLookup:
    return SqlRentalLookup()


@lru_cache()
def get_callback_service() -> CallbackService:
    return CallbackService(get_settings(), get_crypto_engine(), get_rental_lookup())


@lru_cache()
def get_verification_gate() -> VerificationGate:
    return VerificationGate(get_settings(), get_transaction_service())


def reset_dependencies() -> None:
    """Forget cached services (and their keys / HTTP client)."""
    if get_gateway_client.cache_info().currsize:
        get_gateway_client().close()
    for provider in (
        get_verification_gate, get_callback_service, get_rental_lookup,
        get_transaction_service, get_gateway_client, get_crypto_engine, get_key_store,
    ):
        provider.cache_clear()
