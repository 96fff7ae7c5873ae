"""
Shared fixtures: in-memory database, RSA key pairs, a fake UPI gateway behind
httpx.MockTransport, and the FastAPI app with its dependencies overridden.

Two key pairs mirror production: the bank's pair (we hold its public half)
and the merchant's client pair (we hold its private half).
"""
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fleetpay import models  # noqa: F401  (registers tables on Base.metadata)
from fleetpay.config import Settings
from fleetpay.database import Base
from fleetpay.services.callback_service import CallbackService
from fleetpay.services.crypto_engine import CryptoEngine
from fleetpay.services.gateway_client import GatewayClient
from fleetpay.services.key_store import KeyStore
from fleetpay.services.rental_lookup import SqlRentalLookup
from fleetpay.services.transaction_service import TransactionService
from fleetpay.services.verification_gate import VerificationGate
from fleetpay.utils.decoding import b64decode, b64encode


# ─── Key material ─────────────────────────────────────────────────────

def _new_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def private_pem(key) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


def public_pem(key) -> str:
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


@pytest.fixture(scope="session")
def bank_key():
    return _new_key()


@pytest.fixture(scope="session")
def client_key():
    return _new_key()


# ─── Vendor-side crypto helpers ───────────────────────────────────────

def rsa_encrypt_b64(public_key, data: bytes) -> str:
    return b64encode(public_key.encrypt(data, padding.PKCS1v15()))


def hybrid_encrypt(public_key, data: bytes, key_length: int = 16) -> dict:
    session_key = os.urandom(key_length)
    iv = os.urandom(16)
    padder = sym_padding.PKCS7(128).padder()
    padded = padder.update(data) + padder.finalize()
    encryptor = Cipher(algorithms.AES(session_key), modes.CBC(iv)).encryptor()
    return {
        "encryptedKey": rsa_encrypt_b64(public_key, session_key),
        "iv": b64encode(iv),
        "encryptedData": b64encode(encryptor.update(padded) + encryptor.finalize()),
        "oaepHashingAlgorithm": "NONE",
    }


def _hybrid_decrypt(private_key, envelope: dict) -> bytes:
    session_key = private_key.decrypt(b64decode(envelope["encryptedKey"]), padding.PKCS1v15())
    decryptor = Cipher(algorithms.AES(session_key), modes.CBC(b64decode(envelope["iv"]))).decryptor()
    padded = decryptor.update(b64decode(envelope["encryptedData"])) + decryptor.finalize()
    unpadder = sym_padding.PKCS7(128).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


# ─── Fake gateway ─────────────────────────────────────────────────────

class FakeGateway:
    """Decrypts inbound requests with the bank key and answers from a script.

    `routes[path]` is a (status_code, body) pair or a list of them consumed in
    order. Dict bodies are sent as JSON, or RSA-encrypted for the client when
    `encrypt_responses` is set; str bodies are sent verbatim.
    """

    def __init__(self, bank_private_key, client_public_key):
        self.bank_private_key = bank_private_key
        self.client_public_key = client_public_key
        self.routes: dict = {}
        self.requests: list[dict] = []
        self.encrypt_responses = False
        self.fail_transport = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.fail_transport:
            raise httpx.ConnectError("connection refused", request=request)

        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            envelope = json.loads(request.content)
            payload = json.loads(_hybrid_decrypt(self.bank_private_key, envelope))
        else:
            envelope = None
            plain = self.bank_private_key.decrypt(b64decode(request.content.decode()), padding.PKCS1v15())
            payload = json.loads(plain)

        self.requests.append({
            "path": request.url.path,
            "headers": dict(request.headers),
            "envelope": envelope,
            "payload": payload,
        })

        scripted = self.routes.get(request.url.path, (200, {}))
        if isinstance(scripted, list):
            scripted = scripted.pop(0)
        status_code, body = scripted

        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        raw = json.dumps(body).encode("utf-8")
        if self.encrypt_responses:
            return httpx.Response(status_code, text=rsa_encrypt_b64(self.client_public_key, raw))
        return httpx.Response(status_code, content=raw, headers={"content-type": "application/json"})

    @property
    def last(self) -> dict:
        return self.requests[-1]


@pytest.fixture
def fake_gateway(bank_key, client_key):
    return FakeGateway(bank_key, client_key.public_key())


# ─── Settings & services ──────────────────────────────────────────────

@pytest.fixture
def make_settings(bank_key, client_key):
    def _make(**overrides) -> Settings:
        values = dict(
            DATABASE_URL="sqlite://",
            UPI_BASE_URL="https://upi.gateway.test/api/v1",
            UPI_API_KEY="test-api-key",
            UPI_MERCHANT_ID="400123",
            UPI_MERCHANT_VPA="evegah@icici",
            UPI_QR_ENDPOINT="/QR3",
            UPI_STATUS_ENDPOINT="/TransactionStatus3",
            UPI_REFUND_ENDPOINT="/Refund",
            UPI_PUBLIC_KEY_PEM=public_pem(bank_key),
            UPI_CLIENT_PRIVATE_KEY_PEM=private_pem(client_key),
            UPI_CALLBACK_SIGNATURE_SECRET="",
        )
        values.update(overrides)
        return Settings(**values)
    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


class Services:
    """Fully wired service graph for one Settings instance."""

    def __init__(self, settings: Settings, fake_gateway: FakeGateway, rental_lookup=None):
        self.settings = settings
        self.key_store = KeyStore(settings)
        self.engine = CryptoEngine(self.key_store, session_key_length=settings.UPI_SESSION_KEY_LENGTH)
        self.gateway = GatewayClient(
            settings, self.engine, http=httpx.Client(transport=httpx.MockTransport(fake_gateway)),
        )
        self.transactions = TransactionService(settings, self.gateway)
        self.callbacks = CallbackService(settings, self.engine, rental_lookup or SqlRentalLookup())
        self.gate = VerificationGate(settings, self.transactions)


@pytest.fixture
def make_services(fake_gateway):
    created = []

    def _make(settings: Settings, rental_lookup=None) -> Services:
        services = Services(settings, fake_gateway, rental_lookup)
        created.append(services)
        return services

    yield _make
    for services in created:
        services.gateway.close()


@pytest.fixture
def services(make_services, settings):
    return make_services(settings)


# ─── Database ─────────────────────────────────────────────────────────

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# ─── API ──────────────────────────────────────────────────────────────

@pytest.fixture
def api(services, session_factory):
    from fleetpay import dependencies
    from fleetpay.config import get_settings
    from fleetpay.database import get_db
    from fleetpay.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides = {
        get_db: _get_db,
        get_settings: lambda: services.settings,
        dependencies.get_crypto_engine: lambda: services.engine,
        dependencies.get_transaction_service: lambda: services.transactions,
        dependencies.get_callback_service: lambda: services.callbacks,
        dependencies.get_verification_gate: lambda: services.gate,
    }
    yield TestClient(app)
    app.dependency_overrides = {}
