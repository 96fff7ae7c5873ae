"""
Key Store — Gateway public key and merchant private key material.

Keys come from an inline PEM setting or from a file path (PEM text, DER
certificate / SPKI, or a PKCS#12 container, optionally passphrase-protected).
They are loaded lazily on first use and cached for the lifetime of the store.
"""
import logging
import threading
from pathlib import Path
from typing import Optional, Sequence, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from cryptography.hazmat.primitives.serialization import pkcs12

from fleetpay.config import BASE_DIR, Settings
from fleetpay.errors import ConfigurationError

logger = logging.getLogger(__name__)

KeyMaterial = Union[str, bytes]


class KeyStore:
    """Explicitly constructed cache of the RSA keys used by the crypto engine."""

    def __init__(self, settings: Settings, base_dirs: Optional[Sequence[Path]] = None):
        self.settings = settings
        self.base_dirs = list(base_dirs) if base_dirs is not None else [
            Path.cwd(),
            Path(__file__).resolve().parent.parent,
            BASE_DIR,
        ]
        self._lock = threading.Lock()
        self._public_key: Optional[RSAPublicKey] = None
        self._private_key: Optional[RSAPrivateKey] = None

    # ─── Lifecycle ────────────────────────────────────────────────────

    def init(self) -> "KeyStore":
        """Eagerly load whatever key material is configured."""
        if self._public_configured():
            self.load_public_key()
        if self._private_configured():
            self.load_private_key()
        return self

    def reset(self) -> None:
        """Drop cached keys; the next load re-reads configuration."""
        with self._lock:
            self._public_key = None
            self._private_key = None

    # ─── Public key ───────────────────────────────────────────────────

    def load_public_key(self) -> RSAPublicKey:
        if self._public_key is not None:
            return self._public_key
        with self._lock:
            if self._public_key is None:
                material = self._read_material(
                    self.settings.UPI_PUBLIC_KEY_PEM, self.settings.UPI_PUBLIC_KEY_PATH,
                    "UPI_PUBLIC_KEY_PATH",
                )
                if material is None:
                    raise ConfigurationError(
                        "Gateway public key not configured. "
                        "Set UPI_PUBLIC_KEY_PATH or UPI_PUBLIC_KEY_PEM."
                    )
                self._public_key = _parse_public_key(material)
                logger.info("Gateway public key loaded (%d-bit)", self._public_key.key_size)
        return self._public_key

    def has_public_key(self) -> bool:
        try:
            self.load_public_key()
            return True
        except ConfigurationError:
            return False

    # ─── Private key ──────────────────────────────────────────────────

    def load_private_key(self) -> RSAPrivateKey:
        if self._private_key is not None:
            return self._private_key
        with self._lock:
            if self._private_key is None:
                material = self._read_material(
                    self.settings.UPI_CLIENT_PRIVATE_KEY_PEM, self.settings.UPI_CLIENT_PRIVATE_KEY_PATH,
                    "UPI_CLIENT_PRIVATE_KEY_PATH",
                )
                if material is None:
                    raise ConfigurationError(
                        "Client private key not configured. Set UPI_CLIENT_PRIVATE_KEY_PATH "
                        "(and passphrase) or UPI_CLIENT_PRIVATE_KEY_PEM."
                    )
                passphrase = self.settings.UPI_CLIENT_PRIVATE_KEY_PASSPHRASE or None
                self._private_key = _parse_private_key(material, passphrase)
                logger.info("Client private key loaded (%d-bit)", self._private_key.key_size)
        return self._private_key

    def has_private_key(self) -> bool:
        try:
            self.load_private_key()
            return True
        except ConfigurationError:
            return False

    # ─── Helpers ──────────────────────────────────────────────────────

    def _public_configured(self) -> bool:
        return bool(self.settings.UPI_PUBLIC_KEY_PEM.strip() or self.settings.UPI_PUBLIC_KEY_PATH.strip())

    def _private_configured(self) -> bool:
        return bool(
            self.settings.UPI_CLIENT_PRIVATE_KEY_PEM.strip()
            or self.settings.UPI_CLIENT_PRIVATE_KEY_PATH.strip()
        )

    def resolve_path(self, raw: str) -> Optional[Path]:
        """Absolute path as-is; relative paths tried against each base directory."""
        path = Path(raw.strip())
        if path.is_absolute():
            return path if path.exists() else None
        for base in self.base_dirs:
            candidate = (Path(base) / path).resolve()
            if candidate.exists():
                return candidate
        return None

    def _read_material(self, pem: str, path: str, setting_name: str) -> Optional[KeyMaterial]:
        pem = (pem or "").strip()
        if pem:
            # Env files commonly carry PEM with escaped newlines
            return pem.replace("\\n", "\n")

        path = (path or "").strip()
        if not path:
            return None

        resolved = self.resolve_path(path)
        if resolved is None:
            raise ConfigurationError(f"{setting_name} points to a missing file: {path}")

        data = resolved.read_bytes()
        if b"-----BEGIN" in data:
            return data.decode("utf-8")
        return data


def _parse_public_key(material: KeyMaterial) -> RSAPublicKey:
    try:
        if isinstance(material, str):
            raw = material.encode("utf-8")
            if b"BEGIN CERTIFICATE" in raw:
                key = x509.load_pem_x509_certificate(raw).public_key()
            else:
                key = serialization.load_pem_public_key(raw)
        else:
            try:
                key = x509.load_der_x509_certificate(material).public_key()
            except ValueError:
                key = serialization.load_der_public_key(material)
    except ValueError as exc:
        raise ConfigurationError(f"Unreadable gateway public key: {exc}") from exc

    if not isinstance(key, RSAPublicKey):
        raise ConfigurationError("Gateway public key is not an RSA key")
    return key


def _parse_private_key(material: KeyMaterial, passphrase: Optional[str]) -> RSAPrivateKey:
    password = passphrase.encode("utf-8") if passphrase else None
    try:
        if isinstance(material, str):
            key = serialization.load_pem_private_key(material.encode("utf-8"), password=password)
        else:
            try:
                key, _cert, _chain = pkcs12.load_key_and_certificates(material, password)
            except ValueError:
                key = serialization.load_der_private_key(material, password=password)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(f"Unreadable client private key: {exc}") from exc

    if key is None:
        raise ConfigurationError("PKCS#12 container holds no private key")
    if not isinstance(key, RSAPrivateKey):
        raise ConfigurationError("Client private key is not an RSA key")
    return key
