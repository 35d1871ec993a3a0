"""
Structured logging configuration using structlog.

The orchestrator binds `route_id` and `step_index` into structlog contextvars
for the duration of an execution, so every record logged while a route runs,
including records from plain `logging` loggers, carries the route position.
JSON output keeps them as fields; console output prefixes the message with
them.
"""

import logging
import sys
from typing import Any, Optional

import structlog

from .config import settings


def prefix_route_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Move the bound route position into the console message."""
    if event_dict.get("route_id") is None:
        return event_dict
    route_id = event_dict.pop("route_id")
    step_index = event_dict.pop("step_index", None)
    where = f"route {route_id}" if step_index is None else f"route {route_id} step {step_index}"
    event_dict["event"] = f"[{where}] {event_dict.get('event', '')}"
    return event_dict


def _use_console(log_format: str, level: int) -> bool:
    if log_format == "console":
        return True
    if log_format == "json":
        return False
    return level == logging.DEBUG or sys.stderr.isatty()


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure structlog for the CLI and library loggers.

    Args:
        log_level: Override log level (default: settings.log_level)
        log_format: json, console or auto (default: settings.log_format)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    console = _use_console((log_format or settings.log_format).lower(), level)

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if console:
        final = [prefix_route_context, structlog.dev.ConsoleRenderer()]
    else:
        final = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *final,
        ],
    )

    # stdout is reserved for the CLI's progress output
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)
