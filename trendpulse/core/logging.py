"""Structured logging configuration using dictConfig.

The API process and every scheduled pass call ``setup_logging`` once with
their own service name (``trendpulse-api``, ``trendpulse-heat``...). In
production each line is a JSON object carrying that name as ``service``;
elsewhere a readable console line is prefixed with it.
"""
import logging
import logging.config
import sys
from typing import Dict, Any, Optional

from .settings import get_settings

settings = get_settings()

# Third-party loggers that only matter when something goes wrong
LIBRARY_LOG_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "httpx": "WARNING",
}

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _logger_entry(level: str) -> Dict[str, Any]:
    return {"level": level, "handlers": ["console"], "propagate": False}


def get_logging_config(service_name: Optional[str] = None, level: Optional[str] = None) -> Dict[str, Any]:
    """
    Get logging configuration dictionary.

    Args:
        service_name: Name of the API process or pass emitting the logs
        level: Level for the ``trendpulse`` loggers (defaults to settings.log_level)
    """
    level = (level or settings.log_level).upper()
    service = service_name or "trendpulse"

    loggers = {name: _logger_entry(lib_level) for name, lib_level in LIBRARY_LOG_LEVELS.items()}
    loggers["trendpulse"] = _logger_entry(level)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                "datefmt": DATE_FORMAT,
                "static_fields": {"service": service},
            },
            "console": {
                "format": f"%(asctime)s [{service}] [%(levelname)s] %(name)s: %(message)s",
                "datefmt": DATE_FORMAT,
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json" if settings.environment == "production" else "console",
                "stream": sys.stdout
            }
        },
        "loggers": loggers,
        "root": {
            "level": settings.log_level,
            "handlers": ["console"]
        }
    }


def setup_logging(service_name: Optional[str] = None, level: Optional[str] = None) -> None:
    """Configure structured logging using dictConfig."""
    logging.config.dictConfig(get_logging_config(service_name, level))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
