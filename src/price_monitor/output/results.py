"""Durable task records: dated CSV and JSONL files plus a JSON snapshot per task."""

import csv
import json
import logging
import threading
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

from ..config import settings
from ..exceptions import ResultWriteError
from ..models import Task

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "task_id",
    "timestamp",
    "product_name",
    "current_price",
    "currency",
    "availability",
    "size",
    "source_url",
    "meets_criteria",
    "screenshot_path",
]

# Appends to the same dated file are serialized across concurrent tasks
_path_locks: dict[Path, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    with _path_locks_guard:
        lock = _path_locks.get(path)
        if lock is None:
            lock = _path_locks[path] = threading.Lock()
        return lock


class ResultSink:
    """Writes finished tasks in three forms under the results directory."""

    def __init__(self, directory: Path | None = None):
        self.directory = directory or settings.get_results_dir()
        self.directory.mkdir(parents=True, exist_ok=True)

    def _dated(self, suffix: str, day: date | None = None) -> Path:
        day = day or datetime.now(UTC).date()
        return self.directory / f"results_{day.isoformat()}.{suffix}"

    def write_results(self, task: Task) -> dict[str, Path]:
        """Persist a task. Returns the paths written, keyed by format.

        Raises:
            ResultWriteError: If any file cannot be written.
        """
        csv_path = self._dated("csv")
        jsonl_path = self._dated("jsonl")
        snapshot_path = self.directory / f"task_{task.id}.json"

        try:
            self._append_csv(task, csv_path)
            self._append_jsonl(task, jsonl_path)
            self._write_snapshot(task, snapshot_path)
        except OSError as e:
            raise ResultWriteError(f"Failed to write results for task {task.id}: {e}") from e

        logger.info(f"Results for task {task.id} written to {self.directory}")
        return {"csv": csv_path, "jsonl": jsonl_path, "summary": snapshot_path}

    def _append_csv(self, task: Task, path: Path) -> None:
        with _lock_for(path):
            write_header = not path.exists() or path.stat().st_size == 0
            with path.open("a", encoding="utf-8", newline="") as f:
                writer = csv.writer(f)
                if write_header:
                    writer.writerow(CSV_HEADERS)
                for result in task.results:
                    writer.writerow(
                        [
                            task.id,
                            result.timestamp.isoformat(),
                            result.product_name,
                            result.current_price,
                            result.currency,
                            result.availability.value,
                            result.selected_size or "",
                            result.source_url,
                            str(result.meets_criteria).lower(),
                            result.screenshot_path or "",
                        ]
                    )

    def _append_jsonl(self, task: Task, path: Path) -> None:
        parsed = None
        if task.parsed_task:
            parsed = {
                "brand": task.parsed_task.product.brand,
                "model": task.parsed_task.product.model,
                "max_price": task.parsed_task.constraints.max_price,
                "currency": task.parsed_task.constraints.currency,
            }

        lines = []
        for result in task.results:
            record = {
                "task_id": task.id,
                "original_query": task.original_query,
                "status": task.status.value,
                "parsed": parsed,
                "result": {
                    "product_name": result.product_name,
                    "current_price": result.current_price,
                    "currency": result.currency,
                    "store_name": result.store_name,
                    "availability": result.availability.value,
                    "size": result.selected_size,
                    "source_url": result.source_url,
                    "meets_criteria": result.meets_criteria,
                    "screenshot_path": result.screenshot_path,
                },
                "timestamp": result.timestamp.isoformat(),
                "execution_time_ms": task.execution_time_ms,
            }
            lines.append(json.dumps(record) + "\n")

        with _lock_for(path):
            with path.open("a", encoding="utf-8") as f:
                f.writelines(lines)

    def _write_snapshot(self, task: Task, path: Path) -> None:
        data = task.model_dump(mode="json")
        data["results_count"] = len(task.results)
        data["matching_results"] = sum(1 for r in task.results if r.meets_criteria)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def read_results(self, day: str | date) -> list[dict[str, Any]]:
        """Read the JSONL records for one day (YYYY-MM-DD)."""
        if isinstance(day, str):
            day = date.fromisoformat(day)
        path = self._dated("jsonl", day)
        if not path.exists():
            return []
        with path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

    def read_snapshot(self, task_id: str) -> dict[str, Any] | None:
        path = self.directory / f"task_{task_id}.json"
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def list_result_files(self) -> list[dict[str, str]]:
        files = []
        for path in sorted(self.directory.glob("results_*")):
            if path.suffix in (".csv", ".jsonl"):
                files.append({"filename": path.name, "path": str(path), "type": path.suffix.lstrip(".")})
        return files
