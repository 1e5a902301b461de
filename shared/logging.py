"""
Structured logging shared by all scout components.

Usage:
    from shared.logging import get_logger

    log = get_logger("scout", "fetcher")
    log.info("fetcher.fetch.success", url=url, length=1200)

Events are named "<module>.<noun>.<verb>" and carry keyword fields. The
component and module are bound on every event so log lines can be filtered
per subsystem.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Optional

import structlog

_configured = False


def configure_logging(level: str = "INFO", json: bool = False) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR)
        json: Render events as JSON lines instead of console output
    """
    global _configured

    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    _configured = True


def get_logger(component: str, module: str):
    """
    Get a logger bound to a component and module.

    Args:
        component: Top-level component name (e.g. "scout")
        module: Module within the component (e.g. "orchestrator")
    """
    if not _configured:
        configure_logging()
    # Lazy proxy: picks up a later configure_logging() call
    return structlog.get_logger(component=component, module=module)


@contextmanager
def correlation_context(correlation_id: Optional[str] = None, **fields):
    """
    Bind a correlation id (and extra fields) to every event logged in the block.

    Yields:
        The correlation id in effect
    """
    cid = correlation_id or uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(correlation_id=cid, **fields):
        yield cid
