"""Structured logging setup shared by the server and the CLI scripts."""
import logging

import structlog

from taxrag import config


def configure_logging(level: str = None) -> None:
    """Configure structlog to emit JSON lines through stdlib logging."""
    logging.basicConfig(format="%(message)s", level=(level or config.LOG_LEVEL).upper())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
