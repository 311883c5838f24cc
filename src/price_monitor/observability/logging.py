"""JSON logs carrying the id of the task being processed.

Both structlog events and plain `logging.getLogger(__name__)` records go
through one JSON formatter on stderr, so module loggers pick up the task id
bound by the orchestrator as well.
"""

import logging
import sys
from typing import Any

import structlog

_configured = False

_shared_processors: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def setup_structured_logging(level: str = "INFO") -> None:
    """Route structlog and stdlib logging through a JSON renderer on stderr.

    Safe to call more than once; only the first call configures anything.
    """
    global _configured
    if _configured:
        return

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )
    # stdout belongs to the MCP stdio transport
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper()))

    _configured = True


def bind_task_context(task_id: str, strategy: str | None = None) -> None:
    """Attach the task id (and strategy once chosen) to every log line in this async context."""
    values: dict[str, Any] = {"task_id": task_id}
    if strategy:
        values["strategy"] = strategy
    structlog.contextvars.bind_contextvars(**values)


def clear_task_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_task_logger(name: str = "price_monitor") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_task_event(event: str, **fields: Any) -> None:
    """Emit a structured event tied to the current task."""
    get_task_logger("price_monitor.tasks").info(event, **fields)
