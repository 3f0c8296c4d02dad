"""Shared fixtures for the habittimer test suite."""

from __future__ import annotations

from typing import Iterator

import pytest

from habittimer.common.logger import reset_logging
from habittimer.core.collaborators import LogStatus, StatusUpdate
from habittimer.core.segments import Habit, Segment, SegmentKind


class RecordingLogSink:
    """Collects log records as tuples instead of writing them anywhere."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str, bool, int, int, LogStatus]] = []

    def record(
        self,
        habit_id: str,
        title: str,
        completed: bool,
        planned_seconds: int,
        elapsed_seconds: int,
        status: LogStatus,
    ) -> None:
        self.records.append((habit_id, title, completed, planned_seconds, elapsed_seconds, status))


class RecordingPublisher:
    def __init__(self) -> None:
        self.updates: list[StatusUpdate] = []
        self.ended: list[str] = []

    def publish(self, update: StatusUpdate) -> None:
        self.updates.append(update)

    def end(self, habit_id: str) -> None:
        self.ended.append(habit_id)


class RecordingNotifier:
    def __init__(self) -> None:
        self.finished: list[str] = []

    def notify_finished(self, title: str) -> None:
        self.finished.append(title)


def make_habit(*segments: Segment, title: str = "Back exercises") -> Habit:
    return Habit(title=title, segments=list(segments))


def start(duration: int = 0) -> Segment:
    return Segment(SegmentKind.START, duration)


def active(duration: int) -> Segment:
    return Segment(SegmentKind.ACTIVE, duration)


def pause(duration: int) -> Segment:
    return Segment(SegmentKind.PAUSE, duration)


def stop() -> Segment:
    return Segment(SegmentKind.PAUSE, 0, is_stop=True)


def end() -> Segment:
    return Segment(SegmentKind.END, 0)


@pytest.fixture(autouse=True)
def _detach_log_handlers() -> Iterator[None]:
    """CLI tests attach file handlers under tmp dirs; drop them after each test."""
    yield
    reset_logging()


@pytest.fixture()
def log_sink() -> RecordingLogSink:
    return RecordingLogSink()


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
