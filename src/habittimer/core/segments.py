"""Segment model: the typed phases a habit session is made of."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Iterable, Sequence

DEFAULT_ACTIVE_SECONDS = 60
DEFAULT_PAUSE_SECONDS = 30


class SegmentKind(Enum):
    """The four kinds of segment a session can contain."""

    START = "start"
    ACTIVE = "active"
    PAUSE = "pause"
    END = "end"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class HabitDay(Enum):
    """Days of the week, numbered like :meth:`datetime.date.weekday`."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def short_label(self) -> str:
        return self.name[:2].capitalize()

    @classmethod
    def parse(cls, text: str) -> HabitDay:
        """Resolve ``"mo"``, ``"Monday"`` or ``"0"`` to a day."""
        value = text.strip().lower()
        if value.isdigit():
            return cls(int(value))
        for day in cls:
            if len(value) >= 2 and day.name.lower().startswith(value):
                return day
        raise ValueError(f"unknown weekday: {text!r}")


def whole_seconds(value: float) -> int:
    """Round *value* to whole seconds, halves away from zero.  Infinity and NaN become 0."""
    if not math.isfinite(value):
        return 0
    rounded = math.floor(abs(value) + 0.5)
    return int(rounded) if value >= 0 else -int(rounded)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Segment:
    """One timed phase of a habit session.

    ``is_stop`` only has meaning for pauses: a stop-pause is a barrier that
    halts the countdown until it is explicitly resumed.
    """

    kind: SegmentKind
    duration: int = 0
    is_stop: bool = False
    id: str = field(default_factory=_new_id)

    @property
    def is_stop_pause(self) -> bool:
        return self.kind is SegmentKind.PAUSE and self.is_stop

    def with_duration(self, duration: int) -> Segment:
        return replace(self, duration=duration)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "duration": self.duration,
            "is_stop": self.is_stop,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Segment:
        """Build a segment from its JSON form.

        Older saves may lack ``id`` or ``is_stop``; those get a fresh id and
        ``False`` respectively.
        """
        return cls(
            kind=SegmentKind(data["kind"]),
            duration=max(0, whole_seconds(float(data.get("duration", 0)))),
            is_stop=bool(data.get("is_stop", False)),
            id=str(data.get("id") or _new_id()),
        )


def total_seconds(segments: Iterable[Segment]) -> int:
    """Sum of all segment durations, never negative."""
    return sum(max(0, segment.duration) for segment in segments)


def segment_label(segments: Sequence[Segment], index: int) -> str:
    """Return the display label for ``segments[index]``.

    Start and End are labelled by kind.  Actives and pauses are numbered among
    their siblings, e.g. ``"Active 2"``.
    """
    if not 0 <= index < len(segments):
        return "-"
    segment = segments[index]
    if segment.kind in (SegmentKind.START, SegmentKind.END):
        return segment.kind.label
    position = sum(1 for other in segments[: index + 1] if other.kind is segment.kind)
    return f"{segment.kind.label} {position}"


def format_seconds(seconds: int) -> str:
    """Format *seconds* as ``MM:SS``, or ``H:MM:SS`` from one hour up."""
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_duration(segment: Segment) -> str:
    """Like :func:`format_seconds`, but stop-pauses read ``"Stop"``."""
    if segment.is_stop_pause:
        return "Stop"
    return format_seconds(segment.duration)


@dataclass
class Habit:
    """A habit: a title, the weekdays it is due and its segment list."""

    title: str
    segments: list[Segment] = field(default_factory=list)
    active_days: frozenset[HabitDay] = field(default_factory=lambda: frozenset(HabitDay))
    id: str = field(default_factory=_new_id)

    def is_scheduled(self, day: date) -> bool:
        """Return whether the habit is due on *day*."""
        return HabitDay(day.weekday()) in self.active_days

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "active_days": sorted(day.value for day in self.active_days),
            "segments": [segment.to_dict() for segment in self.segments],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Habit:
        days = data.get("active_days")
        return cls(
            id=str(data.get("id") or _new_id()),
            title=str(data["title"]),
            segments=[Segment.from_dict(raw) for raw in data.get("segments", [])],
            active_days=frozenset(HabitDay) if days is None else frozenset(HabitDay(d) for d in days),
        )
