"""Root logging setup for listing processes, driven by environment variables."""

import os
import logging
import sys
from typing import Optional
from pythonjsonlogger import jsonlogger


# Client libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "supabase", "postgrest")

JSON_FIELDS = "%(timestamp)s %(levelname)s %(name)s %(correlation_id)s %(message)s"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LoggingConfig:
    """Logging settings shared by the services and the job entry points."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))

    @classmethod
    def setup_logging(cls, level: Optional[str] = None) -> None:
        """
        Install a single stdout handler on the root logger.

        ``level`` overrides ``LOG_LEVEL`` for this process. JSON output carries
        the correlation id on every line, null outside a correlation context.
        """
        log_level = getattr(logging, (level or cls.LOG_LEVEL).upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)
        if cls.LOG_FORMAT == "json":
            handler.setFormatter(jsonlogger.JsonFormatter(JSON_FIELDS, timestamp=True))
        else:
            handler.setFormatter(logging.Formatter(TEXT_FORMAT))
        root_logger.addHandler(handler)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
