"""
core/logging.py

Centralized logging configuration for the application.
- Uses RotatingFileHandler for file logs (1MB max, 5 backups)
- Logs to both console and logs/app.log
- Separate logs/error.log for ERROR and above
- Colored console logs via `colorlog`
- Log level controlled via LOG_LEVEL, forced to DEBUG in development mode

Should be initialized once early in app startup (e.g., in main.py)
"""

import os
from logging.config import dictConfig
from typing import Any

from doit.core.config import settings

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
LOG_DIR = os.path.join(BASE_DIR, "..", "..", "logs")


def build_logging_config(log_level: str, log_dir: str = LOG_DIR) -> dict[str, Any]:
    """Returns the dictConfig mapping for the given level and log directory."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "[%(asctime)s] %(levelname)s [%(name)s] in %(module)s: %(message)s",
            },
            "color": {
                "()": "colorlog.ColoredFormatter",
                "format": "%(log_color)s[%(asctime)s] %(levelname)s [%(name)s] in %(module)s: %(message)s",
                "log_colors": {
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "bold_red",
                },
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "color",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": os.path.join(log_dir, "app.log"),
                "maxBytes": 1 * 1024 * 1024,  # 1MB
                "backupCount": 5,
                "formatter": "default",
                "encoding": "utf-8",
            },
            "error_file": {
                "class": "logging.FileHandler",
                "filename": os.path.join(log_dir, "error.log"),
                "level": "ERROR",
                "formatter": "default",
                "encoding": "utf-8",
            },
        },
        "loggers": {
            "uvicorn": {"level": "WARNING"},
            "sqlalchemy": {"level": "WARNING"},
            "aiosqlite": {"level": "WARNING"},
            "botocore": {"level": "WARNING"},
            "PIL": {"level": "WARNING"},
        },
        "root": {
            "level": log_level,
            "handlers": ["console", "file", "error_file"],
        },
    }


def init_logging(log_dir: str = LOG_DIR) -> None:
    """Initializes logging using the configured level."""
    os.makedirs(log_dir, exist_ok=True)
    dictConfig(build_logging_config(settings.effective_log_level, log_dir))
