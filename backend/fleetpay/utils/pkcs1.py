"""
PKCS#1 v1.5 Decryption — Two independent implementations tried in order.

Newer native crypto stacks are phasing out *decryption* under the legacy
PKCS#1 v1.5 padding, which the gateway still requires. The pure-Python `rsa`
package is tried first; the `cryptography` primitive is the fallback.
"""
from typing import Protocol, Sequence

import rsa
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from fleetpay.errors import DecryptionFailure


class Pkcs1Decryptor(Protocol):
    name: str

    def decrypt(self, private_key: RSAPrivateKey, ciphertext: bytes) -> bytes:
        ...


class PurePythonPkcs1Decryptor:
    """python-rsa implementation (portable, no OpenSSL padding policy)."""

    name = "pure-python"

    def __init__(self):
        self._source: RSAPrivateKey | None = None
        self._converted: rsa.PrivateKey | None = None

    def _to_rsa_key(self, private_key: RSAPrivateKey) -> rsa.PrivateKey:
        if self._source is not private_key or self._converted is None:
            pem = private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            )
            self._converted = rsa.PrivateKey.load_pkcs1(pem, format="PEM")
            self._source = private_key
        return self._converted

    def decrypt(self, private_key: RSAPrivateKey, ciphertext: bytes) -> bytes:
        return rsa.decrypt(ciphertext, self._to_rsa_key(private_key))


class NativePkcs1Decryptor:
    """`cryptography` (OpenSSL) implementation."""

    name = "native"

    def decrypt(self, private_key: RSAPrivateKey, ciphertext: bytes) -> bytes:
        return private_key.decrypt(ciphertext, padding.PKCS1v15())


def default_decryptors() -> list[Pkcs1Decryptor]:
    return [PurePythonPkcs1Decryptor(), NativePkcs1Decryptor()]


def decrypt_with_fallback(
    private_key: RSAPrivateKey,
    ciphertext: bytes,
    decryptors: Sequence[Pkcs1Decryptor],
    context: str = "Decryption",
) -> bytes:
    """Return the first successful plaintext; raise DecryptionFailure with every error otherwise."""
    errors: dict[str, str] = {}
    for decryptor in decryptors:
        try:
            return decryptor.decrypt(private_key, ciphertext)
        except Exception as exc:  # each implementation raises its own error family
            errors[decryptor.name] = str(exc) or exc.__class__.__name__
    raise DecryptionFailure(errors, context=context)
