"""
Gateway Errors — Structured failures raised by the payment core.
Each error carries the HTTP status the API layer should answer with.
"""
from typing import Any, Optional


class GatewayError(Exception):
    """Base class for payment-core failures."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message}


class ConfigurationError(GatewayError):
    """Key material or gateway endpoint configuration is missing or unusable."""

    status_code = 500


class UnsupportedKeyLengthError(GatewayError):
    status_code = 500

    def __init__(self, length: int):
        super().__init__(f"Unsupported session key length {length}. Expected 16 or 32.")
        self.length = length


class PayloadTooLargeError(GatewayError):
    """Plaintext exceeds what a single RSA PKCS#1 v1.5 block can carry."""

    status_code = 422

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Payload of {size} bytes exceeds the {limit}-byte limit for asymmetric encryption"
        )
        self.size = size
        self.limit = limit


class DecryptionFailure(GatewayError):
    """Every PKCS#1 v1.5 implementation failed; keeps each message for diagnosis."""

    status_code = 502

    def __init__(self, errors: dict[str, str], context: str = "Decryption"):
        detail = "; ".join(f"{name}: {msg}" for name, msg in errors.items())
        super().__init__(f"{context} failed ({detail})")
        self.errors = errors

    def to_dict(self) -> dict:
        return {"error": self.message, "causes": self.errors}


class VendorRejected(GatewayError):
    """Gateway answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: str, body: Any = None):
        super().__init__(message, status_code=status_code if status_code >= 400 else 502)
        self.upstream_status = status_code
        self.body = body

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "upstreamStatus": self.upstream_status,
            "upstreamBody": self.body,
        }


class PaymentRequired(GatewayError):
    """Verification gate denial."""

    status_code = 402

    def __init__(self, decision):
        super().__init__(decision.message)
        self.decision = decision

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "paymentRequired": True,
            "reason": self.decision.reason.value if self.decision.reason else None,
            "paymentStatus": self.decision.current_status,
            "expectedAmount": self.decision.expected_amount,
            "actualAmount": self.decision.actual_amount,
            "merchantTranId": self.decision.merchant_tran_id,
        }


class SignatureMissing(GatewayError):
    status_code = 400

    def __init__(self):
        super().__init__("missing signature")


class SignatureInvalid(GatewayError):
    status_code = 401

    def __init__(self):
        super().__init__("invalid signature")
