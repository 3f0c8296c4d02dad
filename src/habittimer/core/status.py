"""Live status published to a JSON file that other processes can poll."""

from __future__ import annotations

import fcntl
import json
import logging
from pathlib import Path
from typing import Any

from habittimer.core.collaborators import StatusUpdate

logger = logging.getLogger(__name__)

_STATUS_FILE = "status_v1.json"


class StatusFilePublisher:
    """Keeps the latest :class:`StatusUpdate` per habit in one JSON file.

    An unreadable file reads as empty, so the next publish rewrites it.
    Write errors propagate; callers wrap calls in :func:`best_effort`.
    """

    def __init__(self, config_dir: Path) -> None:
        self._path: Path = config_dir / _STATUS_FILE

    def publish(self, update: StatusUpdate) -> None:
        current = self.read()
        current[update.habit_id] = update.to_dict()
        self._write(current)

    def end(self, habit_id: str) -> None:
        current = self.read()
        if current.pop(habit_id, None) is not None:
            self._write(current)
            logger.debug("Ended live status for %s", habit_id)

    def read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                data = json.load(f)
        except ValueError:
            logger.warning("Discarding unreadable %s", self._path, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}

    def updates(self) -> list[StatusUpdate]:
        return [StatusUpdate.from_dict(raw) for raw in self.read().values()]

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            json.dump(data, f, indent=2)
