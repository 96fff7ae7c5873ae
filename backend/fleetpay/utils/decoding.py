"""
Decoding Helpers — Tagged results for "JSON, plain text, or failure" decoding.

Gateway bodies arrive as JSON, as base64 ciphertext, or as plain error text
depending on the environment. Callers branch on `Decoded.kind` instead of
catching parse exceptions.
"""
import base64
import binascii
import enum
import json
import re
from dataclasses import dataclass
from typing import Any, Optional

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=\s]+$")

MIN_CIPHERTEXT_LENGTH = 24


class DecodedKind(str, enum.Enum):
    JSON = "json"
    TEXT = "text"
    FAILED = "failed"


@dataclass(frozen=True)
class Decoded:
    kind: DecodedKind
    value: Any = None
    error: Optional[Exception] = None

    @classmethod
    def json(cls, value: Any) -> "Decoded":
        return cls(DecodedKind.JSON, value=value)

    @classmethod
    def text(cls, value: str) -> "Decoded":
        return cls(DecodedKind.TEXT, value=value)

    @classmethod
    def failed(cls, error: Exception) -> "Decoded":
        return cls(DecodedKind.FAILED, error=error)

    @property
    def is_json(self) -> bool:
        return self.kind is DecodedKind.JSON

    @property
    def is_failed(self) -> bool:
        return self.kind is DecodedKind.FAILED

    def as_mapping(self) -> dict:
        """The decoded value when it is a JSON object, else an empty dict."""
        if self.is_json and isinstance(self.value, dict):
            return self.value
        return {}


def parse_json(text: Any) -> Decoded:
    """JSON when the text is an object/array literal that parses, TEXT otherwise."""
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8", errors="replace")
    s = str(text or "").strip()
    if not (s.startswith("{") or s.startswith("[")):
        return Decoded.text(s)
    try:
        return Decoded.json(json.loads(s))
    except ValueError:
        return Decoded.text(s)


def looks_like_base64(text: str, require_block_multiple: bool = False) -> bool:
    """Heuristic: long enough, base64 alphabet only, optionally a multiple of 4."""
    s = str(text or "").strip()
    if len(s) < MIN_CIPHERTEXT_LENGTH:
        return False
    if require_block_multiple and len(re.sub(r"\s", "", s)) % 4 != 0:
        return False
    return bool(_BASE64_RE.match(s))


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    """Lenient base64 decode: ignores whitespace, restores missing padding."""
    s = re.sub(r"\s", "", str(text or ""))
    s += "=" * (-len(s) % 4)
    try:
        return base64.b64decode(s, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid base64: {exc}") from exc
