"""Observability helpers: structured logging with task context."""

from .logging import bind_task_context, clear_task_context, log_task_event, setup_structured_logging

__all__ = [
    "bind_task_context",
    "clear_task_context",
    "log_task_event",
    "setup_structured_logging",
]
