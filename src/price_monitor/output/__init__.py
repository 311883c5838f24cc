"""Persistence of task results and screenshots."""

from .results import CSV_HEADERS, ResultSink
from .screenshots import ScreenshotManager

__all__ = ["CSV_HEADERS", "ResultSink", "ScreenshotManager"]
