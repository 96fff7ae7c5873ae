"""
Fleet Payments — FastAPI Application Entry Point

Aggregates the payment and admin routers, configures middleware, maps payment
core errors to JSON responses and initializes the database on startup.
"""
import logging
import time
from datetime import datetime

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from fleetpay.config import Settings, get_settings
from fleetpay.database import SessionLocal, init_db
from fleetpay.dependencies import get_crypto_engine, get_key_store, reset_dependencies
from fleetpay.errors import ConfigurationError, GatewayError
from fleetpay.routes import payment_router, admin_router
from fleetpay.services.crypto_engine import CryptoEngine
from fleetpay.utils.logger import setup_logging

settings = get_settings()
logger = logging.getLogger("fleetpay")

# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "UPI payment-gateway integration and reconciliation for the e-bike rental back office. "
        "Covers dynamic QR charges, status polling, refunds, signed gateway callbacks "
        "and the payment verification gate."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


@app.on_event("startup")
def on_startup():
    """Configure logging, create tables, load key material and log boot info."""
    setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)
    init_db()

    try:
        get_key_store().init()
    except ConfigurationError as e:
        logger.error("Key material could not be loaded: %s", e.message)

    crypto = get_crypto_engine().status()
    boot_msg = (
        f"\n{'='*60}\n"
        f"  {settings.APP_NAME} v{settings.APP_VERSION}\n"
        f"  TIME: {datetime.now().isoformat()}\n"
        f"  GATEWAY: {'[OK] Configured' if settings.endpoint_configured(settings.UPI_QR_ENDPOINT) else '[!] Not configured'}\n"
        f"  ENCRYPTION: {settings.encryption_mode}\n"
        f"  PUBLIC KEY: {'[OK] Loaded' if crypto['hasPublicKey'] else '[!] Missing'}\n"
        f"  PRIVATE KEY: {'[OK] Loaded' if crypto['hasPrivateKey'] else '[!] Missing'}\n"
        f"  CALLBACK SIGNATURE: {'[OK] Enforced' if settings.UPI_CALLBACK_SIGNATURE_SECRET else '[!] Not enforced'}\n"
        f"  DEBUG: {settings.DEBUG}\n"
        f"{'='*60}"
    )
    logger.info(boot_msg)


@app.on_event("shutdown")
def on_shutdown():
    reset_dependencies()


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with timing."""
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)

    if request.url.path.startswith("/api"):
        logger.info("%s %s -> %s (%sms)", request.method, request.url.path, response.status_code, duration)

    return response


# ─── Error Mapping ───────────────────────────────────────────────────
@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(payment_router)
app.include_router(admin_router)


@app.get("/health", tags=["Health"])
def deep_health(
    settings: Settings = Depends(get_settings),
    engine: CryptoEngine = Depends(get_crypto_engine),
):
    """Detailed health check including dependency statuses."""
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError as e:
        logger.warning("Health check database probe failed: %s", e)
    finally:
        db.close()

    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "gateway": "configured" if settings.endpoint_configured(settings.UPI_QR_ENDPOINT) else "unconfigured",
        "crypto": engine.status(),
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
        "version": settings.APP_VERSION,
    }
