"""Habit store: habits, the session log and detached runs as JSON blobs."""

from __future__ import annotations

import fcntl
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Optional

from habittimer.core.background import BackgroundSessionManager
from habittimer.core.collaborators import LogStatus
from habittimer.core.normalize import normalize, planned_seconds
from habittimer.core.segments import Habit

logger = logging.getLogger(__name__)

_HABITS_KEY = "habits_v1"
_LOGS_KEY = "logs_v1"
_BACKGROUND_KEY = "background_v1"
_LAST_SEEN_KEY = "last_seen_v1"


class HabitTimerError(Exception):
    """Base class for errors surfaced to the user."""


class HabitNotFoundError(HabitTimerError):
    """Raised when a habit reference matches no stored habit."""


@dataclass(frozen=True)
class TimerLogEntry:
    """One line of the logbook."""

    habit_id: str
    title: str
    date: datetime
    completed: bool
    planned_seconds: int
    elapsed_seconds: int
    status: LogStatus
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "habit_id": self.habit_id,
            "title": self.title,
            "date": self.date.isoformat(),
            # ``completed`` is redundant with ``status`` but kept for older readers.
            "completed": self.completed,
            "planned_seconds": self.planned_seconds,
            "elapsed_seconds": self.elapsed_seconds,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimerLogEntry:
        raw_status = data.get("status")
        if raw_status is not None:
            status = LogStatus(raw_status)
        else:
            status = LogStatus.COMPLETED if data.get("completed") else LogStatus.ABORTED
        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            habit_id=str(data["habit_id"]),
            title=str(data["title"]),
            date=datetime.fromisoformat(data["date"]),
            completed=status is LogStatus.COMPLETED,
            planned_seconds=int(data["planned_seconds"]),
            elapsed_seconds=int(data["elapsed_seconds"]),
            status=status,
        )


class HabitStore:
    """Key-value JSON persistence for habits, logs and background runs.

    Each key lives in ``<config_dir>/<key>.json``, written after every
    mutation with file locking.  Last write wins.  Read or write failures are
    logged and never raised: a broken file loads as empty.
    """

    def __init__(self, config_dir: Path) -> None:
        self._config_dir: Path = config_dir
        self.habits: list[Habit] = []
        self.logs: list[TimerLogEntry] = []
        self._load()

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    # -- habits --------------------------------------------------------------

    def add(self, habit: Habit) -> Habit:
        """Normalize and store a new habit."""
        return self.update(habit)

    def update(self, habit: Habit) -> Habit:
        """Replace the habit with the same id, or append it if it is new."""
        habit.segments = normalize(habit.segments)
        for index, existing in enumerate(self.habits):
            if existing.id == habit.id:
                self.habits[index] = habit
                break
        else:
            self.habits.append(habit)
        self._save_habits()
        return habit

    def get(self, habit_id: str) -> Optional[Habit]:
        for habit in self.habits:
            if habit.id == habit_id:
                return habit
        return None

    def find(self, reference: str) -> Habit:
        """Resolve *reference* as an id, a unique id prefix, or a title.

        Raises :class:`HabitNotFoundError` if nothing (or more than one habit)
        matches.
        """
        exact = self.get(reference)
        if exact is not None:
            return exact
        wanted = reference.strip().casefold()
        by_title = [habit for habit in self.habits if habit.title.casefold() == wanted]
        if len(by_title) == 1:
            return by_title[0]
        by_prefix = [habit for habit in self.habits if habit.id.startswith(reference)]
        if len(by_prefix) == 1 and len(reference) >= 4:
            return by_prefix[0]
        if len(by_title) > 1 or len(by_prefix) > 1:
            raise HabitNotFoundError(f"'{reference}' matches more than one habit")
        raise HabitNotFoundError(f"No habit named '{reference}'")

    def todays_habits(self, today: Optional[date] = None) -> list[Habit]:
        day = today or date.today()
        scheduled = [habit for habit in self.habits if habit.is_scheduled(day)]
        return sorted(scheduled, key=lambda habit: habit.title.casefold())

    # -- logbook -------------------------------------------------------------

    def record(
        self,
        habit_id: str,
        title: str,
        completed: bool,
        planned_seconds: int,
        elapsed_seconds: int,
        status: LogStatus,
    ) -> TimerLogEntry:
        """Insert a log entry at the front (newest first)."""
        planned = max(0, planned_seconds)
        entry = TimerLogEntry(
            habit_id=habit_id,
            title=title,
            date=datetime.now().astimezone(),
            completed=completed,
            planned_seconds=planned,
            elapsed_seconds=max(0, min(elapsed_seconds, planned)),
            status=status,
        )
        self.logs.insert(0, entry)
        logger.info(
            "Logged %s for '%s': %d/%d seconds",
            status.value,
            title,
            entry.elapsed_seconds,
            entry.planned_seconds,
        )
        self._save_logs()
        return entry

    def mark_skipped(self, habit: Habit, day: Optional[date] = None) -> bool:
        """Log *habit* as skipped on *day* (default today).

        Nothing is written if the habit is not due that day or already has an
        entry for it.
        """
        day = day or date.today()
        if not self._insert_skipped(habit, day):
            return False
        logger.info("Marked '%s' skipped on %s", habit.title, day.isoformat())
        self._save_logs()
        return True

    def mark_skipped_yesterday(self, habit: Habit, today: Optional[date] = None) -> bool:
        return self.mark_skipped(habit, (today or date.today()) - timedelta(days=1))

    def backfill_skipped(self, today: Optional[date] = None) -> int:
        """Log every due habit without an entry as skipped, for each day since the last visit.

        The first call only remembers *today*.  Later calls cover the days
        after the remembered one up to yesterday, then remember *today*.
        Returns the number of entries written.
        """
        today = today or date.today()
        last_seen = self._last_seen()
        inserted = 0
        if last_seen is not None and last_seen < today:
            day = last_seen + timedelta(days=1)
            while day < today:
                inserted += sum(self._insert_skipped(habit, day) for habit in self.habits)
                day += timedelta(days=1)
        if inserted:
            logger.info("Backfilled %d skipped entries since %s", inserted, last_seen.isoformat())
            self._save_logs()
        if last_seen is None or last_seen < today:
            self._write(_LAST_SEEN_KEY, {"date": today.isoformat()})
        return inserted

    def logs_for(self, habit_id: str) -> list[TimerLogEntry]:
        return [entry for entry in self.logs if entry.habit_id == habit_id]

    def logs_for_day(self, day: date, habit_id: Optional[str] = None) -> list[TimerLogEntry]:
        return [
            entry
            for entry in self.logs
            if entry.date.date() == day and (habit_id is None or entry.habit_id == habit_id)
        ]

    def clear_logs(self) -> None:
        self.logs = []
        self._save_logs()

    # -- background runs -----------------------------------------------------

    def load_background(self, manager: BackgroundSessionManager, now: Optional[float] = None) -> int:
        """Restore detached runs into *manager* and catch up on missed ticks.

        Whole seconds elapsed since the last save are replayed through the
        shared ticker.  Returns the number of ticks replayed.
        """
        data = self._read(_BACKGROUND_KEY)
        if not isinstance(data, dict):
            return 0
        sessions = data.get("sessions")
        manager.restore(sessions if isinstance(sessions, dict) else {})
        saved_at = data.get("saved_at")
        if not isinstance(saved_at, (int, float)):
            return 0
        now = time.time() if now is None else now
        return manager.catch_up(max(0, int(now - saved_at)))

    def save_background(self, manager: BackgroundSessionManager, now: Optional[float] = None) -> None:
        self._write(
            _BACKGROUND_KEY,
            {
                "saved_at": time.time() if now is None else now,
                "sessions": manager.to_dict(),
            },
        )

    # -- persistence ---------------------------------------------------------

    def _insert_skipped(self, habit: Habit, day: date) -> bool:
        if not habit.is_scheduled(day) or self.logs_for_day(day, habit.id):
            return False
        entry = TimerLogEntry(
            habit_id=habit.id,
            title=habit.title,
            date=datetime.combine(day, datetime.min.time()).astimezone(),
            completed=False,
            planned_seconds=planned_seconds(habit),
            elapsed_seconds=0,
            status=LogStatus.SKIPPED,
        )
        self.logs.insert(0, entry)
        return True

    def _last_seen(self) -> Optional[date]:
        data = self._read(_LAST_SEEN_KEY)
        try:
            return date.fromisoformat(data["date"])
        except (KeyError, TypeError, ValueError):
            return None

    def _save_habits(self) -> None:
        self._write(_HABITS_KEY, [habit.to_dict() for habit in self.habits])

    def _save_logs(self) -> None:
        self._write(_LOGS_KEY, [entry.to_dict() for entry in self.logs])

    def _load(self) -> None:
        raw_habits = self._read(_HABITS_KEY)
        if isinstance(raw_habits, list):
            self.habits = _decode_all(raw_habits, Habit.from_dict, "habit")
        raw_logs = self._read(_LOGS_KEY)
        if isinstance(raw_logs, list):
            self.logs = _decode_all(raw_logs, TimerLogEntry.from_dict, "log entry")
        logger.debug("Loaded %d habits and %d log entries", len(self.habits), len(self.logs))

    def _write(self, key: str, data: Any) -> None:
        """Write *data* to the key's JSON file with file locking."""
        path = self._config_dir / f"{key}.json"
        try:
            self._config_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                json.dump(data, f, indent=2)
        except OSError:
            logger.error("Could not write %s", path, exc_info=True)

    def _read(self, key: str) -> Any:
        """Load the key's JSON file, or ``None`` if it is missing or unreadable."""
        path = self._config_dir / f"{key}.json"
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                return json.load(f)
        except (OSError, ValueError):  # JSONDecodeError, UnicodeDecodeError
            logger.error("Could not read %s; starting from defaults", path, exc_info=True)
            return None


def _decode_all(raw_items: list[Any], decode: Any, what: str) -> list[Any]:
    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            logger.error("Dropping unreadable %s: %r", what, raw)
            continue
        try:
            items.append(decode(raw))
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.error("Dropping unreadable %s: %r", what, raw)
    return items
