"""Interfaces the timer core consumes, and the best-effort call helper."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

STATUS_SCHEMA_VERSION = 1


class LogStatus(Enum):
    """Outcome of a habit session as written to the log."""

    COMPLETED = "completed"
    ABORTED = "aborted"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StatusUpdate:
    """A snapshot pushed to live-status surfaces.

    Phase fields are optional so that a surface which only shows the overall
    countdown can ignore them.  ``phase_index`` is 1-based.
    """

    habit_id: str
    title: str
    remaining_total_seconds: int
    paused: bool
    current_phase_name: Optional[str] = None
    current_phase_remaining: Optional[int] = None
    phase_index: Optional[int] = None
    phase_count: Optional[int] = None
    total_seconds: Optional[int] = None
    schema_version: int = STATUS_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatusUpdate:
        return cls(**data)


class LogSink(Protocol):
    def record(
        self,
        habit_id: str,
        title: str,
        completed: bool,
        planned_seconds: int,
        elapsed_seconds: int,
        status: LogStatus,
    ) -> None: ...


class StatusPublisher(Protocol):
    def publish(self, update: StatusUpdate) -> None: ...

    def end(self, habit_id: str) -> None: ...


class Notifier(Protocol):
    def notify_finished(self, title: str) -> None: ...


class NullLogSink:
    def record(
        self,
        habit_id: str,
        title: str,
        completed: bool,
        planned_seconds: int,
        elapsed_seconds: int,
        status: LogStatus,
    ) -> None:
        pass


class NullStatusPublisher:
    def publish(self, update: StatusUpdate) -> None:
        pass

    def end(self, habit_id: str) -> None:
        pass


class NullNotifier:
    def notify_finished(self, title: str) -> None:
        pass


def best_effort(action: Callable[[], object], description: str) -> bool:
    """Run *action*, logging and swallowing any exception it raises.

    Side effects such as log writes, status pushes and notifications must
    never fail a countdown transition.  Returns ``True`` if *action* succeeded.
    """
    try:
        action()
    except Exception:
        logger.warning("%s failed", description, exc_info=True)
        return False
    return True
