"""
Logging configuration for the attendance server.
Console output is colored in development; LOG_FORMAT=json switches to
structured JSON lines and LOG_DIR adds a rotating file handler.
"""

import logging
import logging.config
import os
from datetime import datetime
from typing import Any, Dict

from pythonjsonlogger.json import JsonFormatter

from attendance_server.config import Settings, settings


class CustomJsonFormatter(JsonFormatter):
    """JSON formatter with timestamp, level, logger and environment fields"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["environment"] = settings.ENVIRONMENT

        for key in ("method", "path", "status_code", "duration_ms", "user_id"):
            if hasattr(record, key):
                log_record[key] = getattr(record, key)


def build_logging_config(config: Settings) -> Dict[str, Any]:
    if config.LOG_FORMAT == "json":
        console_formatter = "json"
    elif config.is_development():
        console_formatter = "colored"
    else:
        console_formatter = "standard"

    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "level": "DEBUG" if config.DEBUG else "INFO",
            "class": "logging.StreamHandler",
            "formatter": console_formatter,
        }
    }
    if config.LOG_DIR:
        os.makedirs(config.LOG_DIR, exist_ok=True)
        handlers["file"] = {
            "level": "INFO",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": os.path.join(config.LOG_DIR, "app.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 10,
            "formatter": "json" if config.LOG_FORMAT == "json" else "standard",
            "encoding": "utf8",
        }
    handler_names = list(handlers)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            },
            "json": {
                "()": CustomJsonFormatter,
                "format": "%(timestamp)s %(level)s %(logger)s %(message)s",
            },
            "colored": {
                "()": "colorlog.ColoredFormatter",
                "format": "%(log_color)s%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "log_colors": {
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
            },
        },
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": handler_names,
                "level": config.LOG_LEVEL,
            },
            "attendance_server": {
                "handlers": handler_names,
                "level": config.LOG_LEVEL,
                "propagate": False,
            },
            "uvicorn": {
                "handlers": handler_names,
                "level": "INFO",
                "propagate": False,
            },
            # request logging middleware covers access lines
            "uvicorn.access": {
                "handlers": [],
                "level": "WARNING",
                "propagate": False,
            },
            "pymongo": {
                "handlers": handler_names,
                "level": "WARNING",
                "propagate": False,
            },
        },
    }


def setup_logging(config: Settings = settings) -> logging.Logger:
    """Configure application logging"""
    logging.config.dictConfig(build_logging_config(config))
    logger = logging.getLogger("attendance_server")
    logger.debug("Logging initialized with level %s", config.LOG_LEVEL)
    return logger
