"""
Logging Setup — Console + rotating file output under LOG_DIR.
"""
import logging.config
import os


def setup_logging(level: str = "INFO", log_dir: str | None = None) -> None:
    """Configure root logging once at startup.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_dir: Directory for `payments.log`; console only when omitted.
    """
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stdout",
        }
    }

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "default",
            "filename": os.path.join(log_dir, "payments.log"),
            "maxBytes": 5 * 1024 * 1024,
            "backupCount": 3,
            "encoding": "utf-8",
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": "%(asctime)s - %(levelname)s [%(name)s]: %(message)s"},
        },
        "handlers": handlers,
        "root": {
            "handlers": list(handlers),
            "level": level.upper(),
        },
    })
