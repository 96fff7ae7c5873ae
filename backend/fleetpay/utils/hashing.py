"""
Hashing Utilities — SHA-256 body fingerprints and HMAC callback signatures.
"""
import hashlib
import hmac
import json


def generate_hash(data) -> str:
    """SHA-256 hex digest of raw bytes/str, or of a dict (deterministic, sorted keys)."""
    if isinstance(data, (bytes, bytearray)):
        raw = bytes(data)
    elif isinstance(data, str):
        raw = data.encode("utf-8")
    else:
        raw = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def compute_signature(secret: str, body: bytes) -> str:
    """HMAC-SHA256 of the raw request body, lowercase hex."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def signature_matches(secret: str, body: bytes, provided: str) -> bool:
    """Constant-time comparison of a provided hex signature against the expected one."""
    expected = compute_signature(secret, body)
    return hmac.compare_digest(expected, (provided or "").strip().lower())
