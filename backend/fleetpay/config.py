"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from pathlib import Path
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Core ---
    APP_NAME: str = "Fleet Payments Gateway API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'fleetpay.db'}"

    # --- Security ---
    CORS_ORIGINS: list[str] = ["*"]

    # --- Logging ---
    LOG_DIR: str = str(BASE_DIR / "logs")
    LOG_LEVEL: str = "INFO"

    # --- UPI Gateway: endpoints & merchant identity ---
    UPI_BASE_URL: str = ""
    UPI_API_KEY: str = ""
    UPI_MERCHANT_ID: str = ""
    UPI_MERCHANT_VPA: str = ""
    UPI_PAYEE_NAME: str = "Evegah"
    UPI_TERMINAL_ID: str = "5411"          # MCC, echoed as `mc` in the deep link
    UPI_SUB_MERCHANT_ID: str = ""          # falls back to UPI_MERCHANT_ID
    UPI_QR_ENDPOINT: str = ""
    UPI_STATUS_ENDPOINT: str = ""
    UPI_REFUND_ENDPOINT: str = ""
    UPI_REQUEST_TIMEOUT_SECONDS: Optional[float] = None

    # --- UPI Gateway: encryption ---
    UPI_ENCRYPTION_MODE: str = "asymmetric"   # asymmetric | hybrid
    UPI_SESSION_KEY_LENGTH: int = 16
    UPI_SERVICE_QR: str = "QR3"
    UPI_SERVICE_STATUS: str = "TransactionStatus3"
    UPI_SERVICE_REFUND: str = "Refund"

    # --- UPI Gateway: key material ---
    UPI_PUBLIC_KEY_PEM: str = ""
    UPI_PUBLIC_KEY_PATH: str = ""
    UPI_CLIENT_PRIVATE_KEY_PEM: str = ""
    UPI_CLIENT_PRIVATE_KEY_PATH: str = ""
    UPI_CLIENT_PRIVATE_KEY_PASSPHRASE: str = ""

    # --- Callbacks ---
    UPI_CALLBACK_SIGNATURE_SECRET: str = ""

    # --- Verification gate ---
    PAYMENT_GATE_ENABLED: bool = True
    PAYMENT_ALLOW_STATUS_DOWNGRADE: bool = False

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def encryption_mode(self) -> str:
        mode = self.UPI_ENCRYPTION_MODE.strip().lower()
        return "hybrid" if mode == "hybrid" else "asymmetric"

    @property
    def sub_merchant_id(self) -> str:
        return (self.UPI_SUB_MERCHANT_ID or self.UPI_MERCHANT_ID).strip()

    def endpoint_configured(self, endpoint: str) -> bool:
        """True when base URL, api key and the given endpoint are all set."""
        return bool(self.UPI_BASE_URL and self.UPI_API_KEY and endpoint)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
