"""Log configuration and stage tagging for amo-submit."""

from .logging import bind_stage, configure_logging, stage_ctx

__all__ = [
    "bind_stage",
    "configure_logging",
    "stage_ctx",
]
