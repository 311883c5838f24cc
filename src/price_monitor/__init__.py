"""Price monitor: plain-language retail price checks over live web pages."""

from .config import settings
from .exceptions import BrowserError, IntentParseError, LLMProviderError, PlanningServiceError, PriceMonitorError
from .models import ExtractionResult, ParsedTask, Task, TaskResponse, TaskStatus

__all__ = [
    "settings",
    "BrowserError",
    "ExtractionResult",
    "IntentParseError",
    "LLMProviderError",
    "ParsedTask",
    "PlanningServiceError",
    "PriceMonitorError",
    "Task",
    "TaskResponse",
    "TaskStatus",
]
