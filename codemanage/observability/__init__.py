"""Observability helpers."""

from codemanage.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_scan,
    record_git_command,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_scan",
    "record_git_command",
]
