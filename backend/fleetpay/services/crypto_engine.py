"""
Crypto Engine — Gateway payload encryption and response decoding.

Outbound, two modes:
- hybrid: AES-CBC body under a random session key, session key wrapped with
  the gateway's RSA public key (PKCS#1 v1.5).
- asymmetric: the whole JSON body RSA-encrypted (PKCS#1 v1.5), bounded by the
  modulus size.

Inbound bodies are decoded into a tagged `Decoded` result.
"""
import json
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from fleetpay.errors import (
    ConfigurationError, DecryptionFailure, PayloadTooLargeError, UnsupportedKeyLengthError,
)
from fleetpay.services.key_store import KeyStore
from fleetpay.utils.decoding import Decoded, b64decode, b64encode, looks_like_base64, parse_json
from fleetpay.utils.pkcs1 import Pkcs1Decryptor, decrypt_with_fallback, default_decryptors

logger = logging.getLogger(__name__)

IV_LENGTH = 16
PKCS1_V15_OVERHEAD = 11


@dataclass(frozen=True)
class CipherSpec:
    name: str
    key_bits: int


_CIPHERS = {
    16: CipherSpec("aes-128-cbc", 128),
    32: CipherSpec("aes-256-cbc", 256),
}


def select_cipher(session_key: bytes) -> CipherSpec:
    """16-byte key -> AES-128-CBC, 32-byte key -> AES-256-CBC."""
    spec = _CIPHERS.get(len(session_key))
    if spec is None:
        raise UnsupportedKeyLengthError(len(session_key))
    return spec


@dataclass(frozen=True)
class HybridCiphertext:
    encrypted_key: str
    iv: str
    encrypted_data: str
    oaep_hashing_algorithm: str = "NONE"

    def as_dict(self) -> dict:
        return {
            "encryptedKey": self.encrypted_key,
            "iv": self.iv,
            "encryptedData": self.encrypted_data,
            "oaepHashingAlgorithm": self.oaep_hashing_algorithm,
        }


def _serialize(payload: Any) -> bytes:
    return json.dumps(payload if payload is not None else {}, separators=(",", ":")).encode("utf-8")


class CryptoEngine:
    """Hybrid / asymmetric encryption over the KeyStore's key material."""

    def __init__(
        self,
        key_store: KeyStore,
        session_key_length: int = 16,
        decryptors: Optional[Sequence[Pkcs1Decryptor]] = None,
    ):
        self.key_store = key_store
        self.session_key_length = session_key_length
        self.decryptors = list(decryptors) if decryptors is not None else default_decryptors()

    # ─── Outbound ─────────────────────────────────────────────────────

    def encrypt_hybrid(self, payload: Any, session_key: Optional[bytes] = None) -> HybridCiphertext:
        session_key = session_key if session_key is not None else os.urandom(self.session_key_length)
        select_cipher(session_key)
        public_key = self.key_store.load_public_key()
        iv = os.urandom(IV_LENGTH)

        padder = sym_padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(_serialize(payload)) + padder.finalize()
        encryptor = Cipher(algorithms.AES(session_key), modes.CBC(iv)).encryptor()
        cipher_text = encryptor.update(padded) + encryptor.finalize()

        encrypted_key = public_key.encrypt(session_key, padding.PKCS1v15())

        return HybridCiphertext(
            encrypted_key=b64encode(encrypted_key),
            iv=b64encode(iv),
            encrypted_data=b64encode(cipher_text),
        )

    def build_hybrid_envelope(self, payload: Any, service: str, request_id: Optional[str] = None) -> dict:
        """Request envelope for hybrid mode, sent as application/json."""
        encrypted = self.encrypt_hybrid(payload)
        return {
            "requestId": str(request_id or "").strip() or str(uuid.uuid4()),
            "service": str(service or "").strip(),
            "encryptedKey": encrypted.encrypted_key,
            "oaepHashingAlgorithm": encrypted.oaep_hashing_algorithm,
            "iv": encrypted.iv,
            "encryptedData": encrypted.encrypted_data,
            "clientInfo": "",
            "optionalParam": "",
        }

    def max_asymmetric_payload(self) -> int:
        public_key = self.key_store.load_public_key()
        return public_key.key_size // 8 - PKCS1_V15_OVERHEAD

    def encrypt_asymmetric(self, payload: Any) -> str:
        """Base64(RSA/ECB/PKCS1Padding(JSON)), sent as text/plain."""
        public_key = self.key_store.load_public_key()
        plaintext = _serialize(payload)
        limit = public_key.key_size // 8 - PKCS1_V15_OVERHEAD
        if len(plaintext) > limit:
            raise PayloadTooLargeError(len(plaintext), limit)
        return b64encode(public_key.encrypt(plaintext, padding.PKCS1v15()))

    # ─── Inbound ──────────────────────────────────────────────────────

    def decrypt_asymmetric(self, cipher_text_b64: str) -> Decoded:
        try:
            private_key = self.key_store.load_private_key()
            cipher_bytes = b64decode(cipher_text_b64)
            plain = decrypt_with_fallback(private_key, cipher_bytes, self.decryptors)
        except (ConfigurationError, DecryptionFailure) as exc:
            return Decoded.failed(exc)
        except ValueError as exc:
            return Decoded.failed(DecryptionFailure({"base64": str(exc)}))
        return self._interpret_plaintext(plain)

    def decrypt_hybrid(self, encrypted_key: str, encrypted_data: str, iv: Optional[str] = None) -> Decoded:
        try:
            private_key = self.key_store.load_private_key()
            session_key = decrypt_with_fallback(
                private_key, b64decode(encrypted_key), self.decryptors,
                context="Session key decryption",
            )
            select_cipher(session_key)

            data = b64decode(encrypted_data)
            iv_bytes = b64decode(iv) if iv else b""
            if len(iv_bytes) == IV_LENGTH:
                actual_iv, cipher_text = iv_bytes, data
            else:
                # No usable IV supplied: the first block carries it
                actual_iv, cipher_text = data[:IV_LENGTH], data[IV_LENGTH:]

            decryptor = Cipher(algorithms.AES(session_key), modes.CBC(actual_iv)).decryptor()
            padded = decryptor.update(cipher_text) + decryptor.finalize()
            unpadder = sym_padding.PKCS7(algorithms.AES.block_size).unpadder()
            plain = unpadder.update(padded) + unpadder.finalize()
        except (ConfigurationError, DecryptionFailure, UnsupportedKeyLengthError) as exc:
            return Decoded.failed(exc)
        except ValueError as exc:
            return Decoded.failed(DecryptionFailure({"aes": str(exc)}))
        return self._interpret_plaintext(plain)

    def decode_response(self, raw_text: Any, mode: str = "asymmetric") -> Decoded:
        """Decode a gateway body that may be JSON, ciphertext or plain text."""
        parsed = parse_json(raw_text)
        if parsed.is_json:
            envelope = parsed.as_mapping()
            if envelope.get("encryptedKey") and envelope.get("encryptedData"):
                return self.decrypt_hybrid(
                    envelope["encryptedKey"], envelope["encryptedData"], envelope.get("iv"),
                )
            return parsed

        trimmed = parsed.value
        if not trimmed:
            return Decoded.text("")

        if not looks_like_base64(trimmed, require_block_multiple=(mode == "hybrid")):
            return parsed

        if not self.key_store.has_private_key():
            return Decoded.failed(ConfigurationError(
                "Gateway response looks encrypted. Configure UPI_CLIENT_PRIVATE_KEY_PATH "
                "(and passphrase) to decrypt response."
            ))
        return self.decrypt_asymmetric(trimmed)

    def _interpret_plaintext(self, plain: bytes) -> Decoded:
        text = plain.decode("utf-8", errors="replace").strip()
        parsed = parse_json(text)
        if parsed.is_json:
            return parsed

        # Some environments wrap the JSON in one more layer of base64
        if looks_like_base64(text):
            try:
                inner = b64decode(text).decode("utf-8").strip()
            except (ValueError, UnicodeDecodeError):
                return Decoded.text(text)
            inner_parsed = parse_json(inner)
            return inner_parsed if inner_parsed.is_json else Decoded.text(inner)
        return Decoded.text(text)

    # ─── Diagnostics ──────────────────────────────────────────────────

    def status(self) -> dict:
        return {
            "hasPublicKey": self.key_store.has_public_key(),
            "hasPrivateKey": self.key_store.has_private_key(),
            "sessionKeyLength": self.session_key_length,
        }
