"""
structlog setup shared by the API, the reconcile worker and the scripts.

Events are logged as a snake_case name plus keyword fields. Production
renders one JSON object per line; development renders coloured console
lines. An API request or reconcile sweep sets ``trace_id_var`` and the
reconciler sets ``call_id_var`` per call, so both ids land on every event
logged underneath them:

    logger = get_logger(__name__)
    logger.info("call_completed", reason="remote_status")
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any

import structlog

from claimchaser.config import get_settings

trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")
call_id_var: ContextVar[str] = ContextVar("call_id", default="")

# Chatty client libraries, kept at WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "urllib3", "asyncio")


def _add_correlation_ids(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    trace_id = trace_id_var.get("")
    if trace_id:
        event_dict["trace_id"] = trace_id

    # An explicit call_id on the event wins
    call_id = call_id_var.get("")
    if call_id and "call_id" not in event_dict:
        event_dict["call_id"] = call_id

    return event_dict


def generate_trace_id() -> str:
    """12 hex characters, enough to tell one request or sweep from another."""
    return uuid.uuid4().hex[:12]


def _renderer(production: bool) -> structlog.types.Processor:
    if production:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def setup_logging() -> None:
    """
    Point structlog and the stdlib root logger at one stdout handler.

    Records from uvicorn, supabase and other stdlib loggers pass through
    the same pre-chain, so they carry the timestamp, level and
    correlation ids too. Safe to call more than once.
    """
    settings = get_settings()

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_correlation_ids,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings.is_production),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
