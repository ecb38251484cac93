"""structlog rendering for amo-submit's stdlib log records.

Modules log through ``logging.getLogger(__name__)``; this module installs a
single stderr handler whose formatter runs those records through structlog.
stdout stays free for the CLI's JSON result.
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar

import structlog

stage_ctx: ContextVar[str | None] = ContextVar("submission_stage", default=None)

# Libraries that log each request at INFO; the gateway logs its own.
_NOISY_LOGGERS = ("httpx", "httpcore")

_configured = False


def bind_stage(stage: str | None) -> None:
    """Tag records emitted from this context with the workflow stage."""
    stage_ctx.set(stage)


def _add_stage(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    stage = stage_ctx.get()
    if stage is not None:
        event_dict["stage"] = stage
    return event_dict


def _pre_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        _add_stage,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]


def _renderer(json_output: bool):
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
) -> None:
    """Install the stderr handler once per process.

    ``level`` falls back to LOG_LEVEL (default INFO); ``json_output`` falls
    back to LOG_FORMAT == "json".
    """
    global _configured
    if _configured:
        return
    _configured = True

    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "console") == "json"

    pre_chain = _pre_chain()
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _reset_for_tests() -> None:
    global _configured
    _configured = False
    stage_ctx.set(None)
