"""Background session manager: keeps detached countdowns alive on a shared tick."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from habittimer.core.collaborators import (
    LogSink,
    LogStatus,
    Notifier,
    NullLogSink,
    NullNotifier,
    NullStatusPublisher,
    StatusPublisher,
    StatusUpdate,
    best_effort,
)
from habittimer.core.countdown import (
    Step,
    advance_position,
    is_barrier,
    remaining_total,
)
from habittimer.core.normalize import normalize
from habittimer.core.segments import Habit, Segment, segment_label, total_seconds

logger = logging.getLogger(__name__)


class Command(Enum):
    """Commands that external surfaces (deep links, live-status buttons) send."""

    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"

    @classmethod
    def parse(cls, action: str) -> Optional[Command]:
        try:
            return cls(action.strip().lower())
        except ValueError:
            return None


@dataclass
class BackgroundSession:
    """A countdown nobody is looking at, keyed by habit id."""

    habit_id: str
    title: str
    segments: list[Segment]
    current_index: int
    remaining: int
    active: bool

    @property
    def remaining_total(self) -> int:
        return remaining_total(self.segments, self.current_index, self.remaining)

    @property
    def total_seconds(self) -> int:
        return total_seconds(self.segments)

    @property
    def at_barrier(self) -> bool:
        return is_barrier(self.segments, self.current_index)

    def to_dict(self) -> dict[str, Any]:
        return {
            "habit_id": self.habit_id,
            "title": self.title,
            "segments": [segment.to_dict() for segment in self.segments],
            "current_index": self.current_index,
            "remaining": self.remaining,
            "active": self.active,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackgroundSession:
        segments = [Segment.from_dict(raw) for raw in data["segments"]]
        index = min(max(0, int(data.get("current_index", 0))), max(0, len(segments) - 1))
        return cls(
            habit_id=str(data["habit_id"]),
            title=str(data.get("title", "")),
            segments=segments,
            current_index=index,
            remaining=max(0, int(data.get("remaining", 0))),
            # A session resting on a stop-pause is never active.
            active=bool(data.get("active", False)) and not is_barrier(segments, index),
        )


@dataclass(frozen=True)
class BackgroundSnapshot:
    """Badge data for a habit whose countdown runs in the background."""

    habit_id: str
    title: str
    active: bool
    remaining: int
    remaining_total: int
    label: str

    @property
    def badge(self) -> str:
        return "active" if self.active else "paused"


@dataclass
class BackgroundSessionManager:
    """Owns every detached countdown and drives them from one shared ticker.

    There is at most one :class:`BackgroundSession` per habit.  Interactive
    engines hand runs over with :meth:`begin_background_run` and take them
    back (via :meth:`CountdownEngine.appear`) with :meth:`stop_background_run`,
    so a habit never has two owners.
    """

    log_sink: LogSink = field(default_factory=NullLogSink)
    publisher: StatusPublisher = field(default_factory=NullStatusPublisher)
    notifier: Notifier = field(default_factory=NullNotifier)
    _sessions: dict[str, BackgroundSession] = field(default_factory=dict, init=False, repr=False)
    _publishing: bool = field(default=True, init=False, repr=False)

    # -- ownership -----------------------------------------------------------

    def begin_background_run(
        self,
        habit: Habit,
        current_index: int,
        remaining: int,
        active: bool,
    ) -> BackgroundSession:
        """Store (or overwrite) the background run of *habit* and publish it."""
        segments = normalize(habit.segments)
        index = min(max(0, current_index), len(segments) - 1)
        session = BackgroundSession(
            habit_id=habit.id,
            title=habit.title,
            segments=segments,
            current_index=index,
            remaining=max(0, remaining),
            active=active and not is_barrier(segments, index),
        )
        self._sessions[habit.id] = session
        logger.info(
            "Background run of '%s' begins at segment %d with %ds left (%s)",
            habit.title,
            session.current_index,
            session.remaining,
            "active" if session.active else "paused",
        )
        self._publish(session)
        return session

    def stop_background_run(self, habit_id: str) -> bool:
        """Forget the background run of *habit_id* and end its live status.

        Nothing is logged; the new owner records the outcome.
        """
        session = self._sessions.pop(habit_id, None)
        if session is None:
            return False
        logger.info("Background run of '%s' handed back", session.title)
        best_effort(lambda: self.publisher.end(habit_id), "Ending live status")
        return True

    def session_for(self, habit_id: str) -> Optional[BackgroundSession]:
        return self._sessions.get(habit_id)

    def __contains__(self, habit_id: object) -> bool:
        return habit_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def has_active_sessions(self) -> bool:
        return any(session.active for session in self._sessions.values())

    # -- shared ticker -------------------------------------------------------

    def tick(self) -> None:
        """Advance every active background session by one second."""
        for session in list(self._sessions.values()):
            if not session.active:
                continue
            if session.remaining > 1:
                session.remaining -= 1
                self._publish(session)
                continue
            session.remaining = 0
            self._advance(session)

    def catch_up(self, seconds: int) -> int:
        """Run the shared ticker *seconds* times, stopping once nothing is active.

        Status is published once for each surviving session at the end rather
        than on every tick.  Returns the number of ticks actually applied.
        """
        applied = 0
        self._publishing = False
        try:
            while applied < seconds and self.has_active_sessions:
                self.tick()
                applied += 1
        finally:
            self._publishing = True
        if applied:
            for session in list(self._sessions.values()):
                self._publish(session)
        return applied

    # -- commands ------------------------------------------------------------

    def pause_background_run(self, habit_id: str) -> bool:
        session = self._sessions.get(habit_id)
        if session is None or not session.active:
            return False
        session.active = False
        logger.info("Paused background run of '%s'", session.title)
        self._publish(session)
        return True

    def resume_background_run(self, habit_id: str) -> bool:
        """Resume a paused run, stepping past a stop-pause first if needed."""
        session = self._sessions.get(habit_id)
        if session is None or session.active:
            return False
        if session.at_barrier:
            if not self._advance(session) or session.at_barrier:
                return True
        if session.remaining > 0 and not session.at_barrier:
            session.active = True
            logger.info("Resumed background run of '%s'", session.title)
            self._publish(session)
            return True
        return False

    def cancel(self, habit_id: str) -> bool:
        """Abort the background run of *habit_id*, logging the elapsed time."""
        session = self._sessions.pop(habit_id, None)
        if session is None:
            return False
        planned = session.total_seconds
        elapsed = max(0, planned - session.remaining_total)
        logger.info("Cancelled background run of '%s' after %d of %d seconds", session.title, elapsed, planned)
        best_effort(
            lambda: self.log_sink.record(
                session.habit_id, session.title, False, planned, elapsed, LogStatus.ABORTED
            ),
            "Writing abort record",
        )
        best_effort(lambda: self.publisher.end(session.habit_id), "Ending live status")
        return True

    def handle_command(self, action: str, habit_id: str) -> bool:
        """Route a textual command to the matching operation.

        Unknown actions and habits without a background run are ignored and
        reported as unhandled (``False``).
        """
        command = Command.parse(action)
        if command is None:
            logger.debug("Ignoring unknown command %r for %s", action, habit_id)
            return False
        if command is Command.PAUSE:
            return self.pause_background_run(habit_id)
        if command is Command.RESUME:
            return self.resume_background_run(habit_id)
        return self.cancel(habit_id)

    # -- snapshots -----------------------------------------------------------

    def snapshot(self, habit_id: str) -> Optional[BackgroundSnapshot]:
        session = self._sessions.get(habit_id)
        if session is None:
            return None
        return BackgroundSnapshot(
            habit_id=session.habit_id,
            title=session.title,
            active=session.active,
            remaining=session.remaining,
            remaining_total=session.remaining_total,
            label=segment_label(session.segments, session.current_index),
        )

    def snapshots(self) -> list[BackgroundSnapshot]:
        return [snap for snap in map(self.snapshot, list(self._sessions)) if snap is not None]

    def to_dict(self) -> dict[str, Any]:
        return {habit_id: session.to_dict() for habit_id, session in self._sessions.items()}

    def restore(self, data: dict[str, Any]) -> None:
        """Replace the held sessions with ones loaded from :meth:`to_dict` output."""
        self._sessions = {}
        for raw in data.values():
            try:
                session = BackgroundSession.from_dict(raw)
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.error("Dropping unreadable background session %r", raw, exc_info=True)
                continue
            self._sessions[session.habit_id] = session

    # -- private helpers -----------------------------------------------------

    def _advance(self, session: BackgroundSession) -> bool:
        """Apply the engine's advance rules to *session*.

        Returns ``False`` if the session finished and was removed.
        """
        position = advance_position(session.segments, session.current_index)
        session.current_index, session.remaining = position.index, position.remaining
        if position.step is Step.FINISHED:
            self._finish(session)
            return False
        if position.step is Step.BARRIER:
            session.active = False
        self._publish(session)
        return True

    def _finish(self, session: BackgroundSession) -> None:
        planned = session.total_seconds
        self._sessions.pop(session.habit_id, None)
        logger.info("Background run of '%s' completed (%d seconds)", session.title, planned)
        best_effort(
            lambda: self.log_sink.record(
                session.habit_id, session.title, True, planned, planned, LogStatus.COMPLETED
            ),
            "Writing completion record",
        )
        best_effort(lambda: self.publisher.end(session.habit_id), "Ending live status")
        best_effort(lambda: self.notifier.notify_finished(session.title), "Finished notification")

    def _publish(self, session: BackgroundSession) -> None:
        if not self._publishing:
            return
        update = StatusUpdate(
            habit_id=session.habit_id,
            title=session.title,
            remaining_total_seconds=session.remaining_total,
            paused=not session.active,
            current_phase_name=segment_label(session.segments, session.current_index),
            current_phase_remaining=session.remaining,
            phase_index=session.current_index + 1,
            phase_count=len(session.segments),
            total_seconds=session.total_seconds,
        )
        best_effort(lambda: self.publisher.publish(update), "Publishing live status")
