"""
Fleet Payments — Development Launcher

Starts uvicorn against fleetpay.main:app. Gateway credentials, key paths and
the callback secret come from backend/.env (see fleetpay/config.py).

    python run.py --reload
    python run.py --port 9000 --log-level debug
"""
import argparse

import uvicorn

from fleetpay.config import get_settings

ROUTES = (
    ("POST", "/api/payments/qr", "dynamic QR charge"),
    ("POST", "/api/payments/status", "status poll"),
    ("POST", "/api/payments/verify", "local verification"),
    ("POST", "/api/payments/refund", "refund"),
    ("POST", "/api/payments/callback", "gateway callback"),
    ("POST", "/api/payments/gate/check", "verification gate"),
    ("GET", "/api/admin/payments/summary", "settlement summary"),
)


def banner(host: str, port: int) -> str:
    settings = get_settings()
    lines = [
        f"{settings.APP_NAME} v{settings.APP_VERSION}",
        f"Listening  http://{host}:{port}  (docs at /docs)",
        f"Gateway    {settings.UPI_BASE_URL or 'not configured'} [{settings.encryption_mode}]",
        "",
    ]
    lines += [f"{method:<5} {path:<34} {label}" for method, path, label in ROUTES]
    rule = "=" * 64
    return "\n".join([rule, *("  " + line for line in lines), rule])


def main():
    parser = argparse.ArgumentParser(description="Fleet Payments UPI gateway backend")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    parser.add_argument("--log-level", default=None, help="uvicorn log level (default: LOG_LEVEL)")
    args = parser.parse_args()

    print(banner(args.host, args.port))

    uvicorn.run(
        "fleetpay.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=(args.log_level or get_settings().LOG_LEVEL).lower(),
    )


if __name__ == "__main__":
    main()
