"""
Logging infrastructure for the memory service.

Configures structlog once for the whole process and hands out
named loggers to the storage, classification, and retrieval modules.
"""

import logging
from typing import Any

import structlog


_configured = False


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure structured logging.

    Safe to call more than once; later calls replace the processor chain
    so tests and the server can pick a renderer.

    Args:
        level: Minimum log level name (e.g. "INFO", "DEBUG")
        json_format: Render events as JSON lines instead of console text
    """
    global _configured

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(message)s")

    renderer = structlog.processors.JSONRenderer(ensure_ascii=False) if json_format else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> Any:
    """Return a structlog logger bound to ``name``, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
