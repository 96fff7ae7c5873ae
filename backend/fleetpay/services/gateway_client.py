"""
Gateway Client — Sends encrypted requests to the bank's UPI API.

No retries: a failed call surfaces to the caller, who decides whether to poll
again.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from fleetpay.config import Settings
from fleetpay.errors import ConfigurationError, GatewayError, VendorRejected
from fleetpay.services.crypto_engine import CryptoEngine
from fleetpay.utils.vendor_fields import ERROR_MESSAGE_ALIASES, first_non_empty

logger = logging.getLogger(__name__)


@dataclass
class GatewayResponse:
    status_code: int
    body: Any
    raw_text: str

    def as_mapping(self) -> dict:
        return self.body if isinstance(self.body, dict) else {}


class GatewayClient:
    """Thin HTTP layer: encrypt, POST, decode, raise on rejection."""

    def __init__(self, settings: Settings, engine: CryptoEngine, http: Optional[httpx.Client] = None):
        self.settings = settings
        self.engine = engine
        self._http = http

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(timeout=self.settings.UPI_REQUEST_TIMEOUT_SECONDS)
        return self._http

    def close(self) -> None:
        if self._http is not None:
            self._http.close()

    # ─── Configuration ────────────────────────────────────────────────

    def is_configured(self, endpoint: str) -> bool:
        return self.settings.endpoint_configured(endpoint)

    def require_configured(self, endpoint: str) -> None:
        if not self.is_configured(endpoint):
            raise ConfigurationError("UPI payment gateway not configured")

    # ─── Requests ─────────────────────────────────────────────────────

    def call(
        self,
        endpoint: str,
        service: str,
        payload: dict,
        request_id: Optional[str] = None,
        action: str = "Gateway call",
    ) -> GatewayResponse:
        """Encrypt `payload`, POST it to `endpoint` and decode the answer.

        Raises:
            ConfigurationError: Gateway or key material not configured.
            DecryptionFailure: Response looked encrypted but could not be decrypted.
            VendorRejected: Gateway returned a non-success HTTP status.
        """
        self.require_configured(endpoint)
        mode = self.settings.encryption_mode

        headers = {"apikey": self.settings.UPI_API_KEY}
        if mode == "hybrid":
            envelope = self.engine.build_hybrid_envelope(
                payload, service=service, request_id=request_id or str(uuid.uuid4()),
            )
            headers.update({"Content-Type": "application/json", "Accept": "application/json"})
            request_kwargs = {"json": envelope}
        else:
            headers.update({"Content-Type": "text/plain;charset=UTF-8", "Accept": "*/*"})
            request_kwargs = {"content": self.engine.encrypt_asymmetric(payload)}

        url = f"{self.settings.UPI_BASE_URL.rstrip('/')}{endpoint}"
        try:
            response = self.http.post(url, headers=headers, **request_kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s transport error: %s", action, exc)
            raise GatewayError(f"{action} failed: {exc}", status_code=502) from exc

        raw_text = response.text or ""
        decoded = self.engine.decode_response(raw_text, mode=mode)

        if not response.is_success:
            body = decoded.value if not decoded.is_failed else raw_text
            message = (
                first_non_empty(body, ERROR_MESSAGE_ALIASES) if isinstance(body, dict) else str(body or "")
            ) or f"{action} failed"
            logger.error("%s rejected by gateway (HTTP %s): %s", action, response.status_code, body)
            raise VendorRejected(response.status_code, message, body)

        if decoded.is_failed:
            logger.error("%s response could not be decoded: %s", action, decoded.error)
            raise decoded.error

        return GatewayResponse(status_code=response.status_code, body=decoded.value, raw_text=raw_text)
