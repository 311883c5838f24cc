"""Screenshot file naming, storage and housekeeping."""

import logging
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config import settings

logger = logging.getLogger(__name__)


class ScreenshotManager:
    """Stores screenshots as `<task_id>_<label>_<timestamp>.png` in one directory."""

    def __init__(self, directory: Path | None = None):
        self.directory = directory or settings.get_screenshots_dir()
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, task_id: str, label: str, extension: str = "png") -> Path:
        # Microseconds avoid collisions when several shots share a label
        timestamp = datetime.now().strftime("%Y%m%dT%H%M%S_%f")
        safe_label = re.sub(r"[^a-zA-Z0-9_-]", "_", label).lower()[:40]
        return self.directory / f"{task_id}_{safe_label}_{timestamp}.{extension}"

    def save(self, task_id: str, label: str, data: bytes) -> Path:
        path = self.path_for(task_id, label)
        path.write_bytes(data)
        logger.debug(f"Screenshot saved: {path.name}")
        return path

    def get_task_screenshots(self, task_id: str) -> list[Path]:
        return sorted(p for p in self.directory.glob(f"{task_id}_*") if p.is_file())

    def cleanup(self, max_age_days: int = 7) -> int:
        """Delete screenshots older than `max_age_days`. Returns the number removed."""
        cutoff = time.time() - max_age_days * 24 * 60 * 60
        deleted = 0
        for path in self.directory.iterdir():
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                deleted += 1
        logger.info(f"Screenshot cleanup removed {deleted} files")
        return deleted

    def stats(self) -> dict[str, Any]:
        files = [p for p in self.directory.iterdir() if p.is_file()]
        total = sum(p.stat().st_size for p in files)
        return {"count": len(files), "total_size_bytes": total, "total_size_mb": round(total / (1024 * 1024), 2)}
