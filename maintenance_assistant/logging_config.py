"""Structured logging setup shared by the server and the scripts."""
import logging

import structlog

from maintenance_assistant import config

_configured = False


def configure_logging(level: str = None) -> None:
    """Configure structlog once per process."""
    global _configured
    if _configured:
        return

    logging.basicConfig(format="%(message)s", level=(level or config.LOG_LEVEL).upper())

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True
