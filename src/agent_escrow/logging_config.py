"""Structured logging for Agent Escrow, built on structlog.

Production emits JSON lines; development uses the colored console renderer.
Context travels through structlog contextvars:

    request_id   bound per HTTP request by RequestIDMiddleware
    action       bound by EscrowOrchestrator.execute for one transition
    job_id       bound alongside action (None for createJob)

The service holds a custodial signing key, so a redaction processor masks
credential-like fields before anything is rendered.

Usage:
    from agent_escrow.logging_config import setup_logging, get_logger
    setup_logging(log_level="INFO", json_logs=True)
    logger = get_logger(__name__)
    logger.info("orchestrator.submitted", tx_hash="0xabc")
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.types import EventDict, Processor, WrappedLogger

REDACTED = "***"
SECRET_FIELDS = frozenset({"private_key", "signature", "raw_transaction", "authorization"})

# Third-party loggers that are chatty at INFO/DEBUG.
QUIET_LOGGERS = ("uvicorn.access", "web3", "aiohttp", "httpx", "httpcore", "mcp.server.lowlevel")


def redact_secrets(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Mask values of credential-like keys."""
    for key in event_dict.keys() & SECRET_FIELDS:
        if event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False) -> None:
    """Route structlog and stdlib logging through one formatter on stderr.

    stdout stays untouched: the standalone MCP server speaks its stdio
    transport there.

    Args:
        log_level: Root level name (DEBUG, INFO, ...). Unknown names fall back to INFO.
        json_logs: JSON lines when True, colored console output otherwise.
    """
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    renderer: Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
        shared.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_level(log_level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger. Safe to call at import time, before setup_logging."""
    return structlog.get_logger(name)
