"""Countdown engine: a tick-driven state machine over a segment list."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, NamedTuple, Optional, Sequence

from habittimer.core.collaborators import (
    LogSink,
    LogStatus,
    Notifier,
    NullLogSink,
    NullNotifier,
    best_effort,
)
from habittimer.core.normalize import normalize
from habittimer.core.segments import (
    Habit,
    Segment,
    format_duration,
    segment_label,
    total_seconds,
)

if TYPE_CHECKING:
    from habittimer.core.background import BackgroundSessionManager

logger = logging.getLogger(__name__)


class CountdownState(Enum):
    """Possible states of a countdown."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED_AT_BARRIER = "stopped_at_barrier"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Step(Enum):
    """Where a call to :func:`advance_position` came to rest."""

    PLAYING = "playing"
    BARRIER = "barrier"
    FINISHED = "finished"


class Position(NamedTuple):
    index: int
    remaining: int
    step: Step


@dataclass(frozen=True)
class DisplayState:
    """What a countdown view shows: the current and the next segment."""

    label: str
    remaining: int
    remaining_total: int
    next_label: Optional[str]
    next_duration: Optional[str]


Listener = Callable[["CountdownEngine", CountdownState], None]

# -- position arithmetic shared with the background manager ------------------


def first_playable(segments: Sequence[Segment], start: int = 0) -> tuple[int, int]:
    """Return ``(index, remaining)`` of the first segment with time on it.

    Leading zero-length segments (normally the Start) are skipped, but the
    index never moves past the last segment.
    """
    if not segments:
        return 0, 0
    index = min(max(0, start), len(segments) - 1)
    while segments[index].duration == 0 and index < len(segments) - 1:
        index += 1
    return index, max(0, segments[index].duration)


def advance_position(segments: Sequence[Segment], index: int) -> Position:
    """Step forward from *index* to the next segment that needs attention.

    Zero-length segments are passed over and a stop-pause halts the walk.
    Walking off the last segment yields :attr:`Step.FINISHED`.  The loop is
    bounded by the segment count, so even an all-zero list terminates.
    """
    last = len(segments) - 1
    while index < last:
        index += 1
        segment = segments[index]
        remaining = max(0, segment.duration)
        if segment.is_stop_pause:
            return Position(index, remaining, Step.BARRIER)
        if remaining > 0:
            return Position(index, remaining, Step.PLAYING)
    return Position(max(0, last), 0, Step.FINISHED)


def remaining_total(segments: Sequence[Segment], index: int, remaining: int) -> int:
    """Seconds left in the current segment plus every segment after it."""
    if not 0 <= index < len(segments):
        return 0
    return max(0, remaining) + total_seconds(segments[index + 1 :])


def is_barrier(segments: Sequence[Segment], index: int) -> bool:
    return 0 <= index < len(segments) and segments[index].is_stop_pause


# -- engine ------------------------------------------------------------------


class CountdownEngine:
    """Interactive countdown for one habit.

    The owner calls :meth:`tick` once per second.  Invalid requests (pausing
    an idle countdown, advancing a completed one) are no-ops that return
    ``False`` rather than raising.  Side effects on completion and cancel go
    to the log sink and notifier on a best-effort basis.
    """

    def __init__(
        self,
        habit: Habit,
        log_sink: Optional[LogSink] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._habit_id: str = habit.id
        self._title: str = habit.title
        self._log_sink: LogSink = log_sink if log_sink is not None else NullLogSink()
        self._notifier: Notifier = notifier if notifier is not None else NullNotifier()
        self._listeners: list[Listener] = []
        self._segments: list[Segment] = normalize(habit.segments)
        self._state: CountdownState = CountdownState.IDLE
        self._index: int = 0
        self._remaining: int = 0
        self.jump_to_first_playable()

    # -- read-only view ------------------------------------------------------

    @property
    def habit_id(self) -> str:
        return self._habit_id

    @property
    def title(self) -> str:
        return self._title

    @property
    def state(self) -> CountdownState:
        return self._state

    @property
    def segments(self) -> tuple[Segment, ...]:
        return tuple(self._segments)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def active(self) -> bool:
        return self._state is CountdownState.RUNNING

    @property
    def total_seconds(self) -> int:
        return total_seconds(self._segments)

    @property
    def remaining_total_seconds(self) -> int:
        return remaining_total(self._segments, self._index, self._remaining)

    @property
    def elapsed_seconds(self) -> int:
        return max(0, self.total_seconds - self.remaining_total_seconds)

    def add_listener(self, listener: Listener) -> None:
        """Call *listener* with ``(engine, state)`` after every state change."""
        self._listeners.append(listener)

    def display(self) -> DisplayState:
        next_index = min(self._index + 1, len(self._segments) - 1)
        has_next = next_index != self._index
        return DisplayState(
            label=segment_label(self._segments, self._index),
            remaining=self._remaining,
            remaining_total=self.remaining_total_seconds,
            next_label=segment_label(self._segments, next_index) if has_next else None,
            next_duration=format_duration(self._segments[next_index]) if has_next else None,
        )

    # -- commands ------------------------------------------------------------

    def jump_to_first_playable(self) -> None:
        """Position the countdown on the first segment that has time on it."""
        self._index, self._remaining = first_playable(self._segments, self._index)

    def tick(self) -> bool:
        """Advance the countdown by one second.  Valid only while RUNNING."""
        if self._state is not CountdownState.RUNNING:
            return False
        if self._remaining > 1:
            self._remaining -= 1
        else:
            self._remaining = 0
            self.advance()
        return True

    def advance(self) -> bool:
        """Move to the next segment that needs attention, or complete."""
        if self._state in (CountdownState.COMPLETED, CountdownState.CANCELLED):
            return False
        position = advance_position(self._segments, self._index)
        self._index, self._remaining = position.index, position.remaining
        if position.step is Step.FINISHED:
            self._complete()
        elif position.step is Step.BARRIER:
            self._set_state(CountdownState.STOPPED_AT_BARRIER)
        elif self._state is CountdownState.STOPPED_AT_BARRIER:
            self._set_state(CountdownState.PAUSED)
        return True

    def start_or_resume(self) -> bool:
        """Start, resume, or step past a stop-pause and carry on."""
        if self._state in (CountdownState.COMPLETED, CountdownState.RUNNING):
            return False
        if self._state is CountdownState.STOPPED_AT_BARRIER:
            self.advance()
            if self._state is CountdownState.COMPLETED:
                return True
        if self._remaining > 0 and not is_barrier(self._segments, self._index):
            self._set_state(CountdownState.RUNNING)
            return True
        return False

    def pause(self) -> bool:
        if self._state is not CountdownState.RUNNING:
            return False
        self._set_state(CountdownState.PAUSED)
        return True

    def cancel(self) -> bool:
        """Abort the run, log it, and rewind to the first playable segment."""
        if self._state is CountdownState.COMPLETED:
            return False
        planned = self.total_seconds
        elapsed = self.elapsed_seconds
        logger.info("Cancelled '%s' after %d of %d seconds", self._title, elapsed, planned)
        best_effort(
            lambda: self._log_sink.record(
                self._habit_id, self._title, False, planned, elapsed, LogStatus.ABORTED
            ),
            "Writing abort record",
        )
        self._set_state(CountdownState.CANCELLED)
        self._rewind()
        return True

    def reload(self, habit: Habit) -> None:
        """Apply an edited habit by resetting the countdown onto its segments."""
        self._title = habit.title
        self._segments = normalize(habit.segments)
        self._rewind()

    # -- ownership handoff ---------------------------------------------------

    def appear(self, manager: BackgroundSessionManager) -> bool:
        """Take over a background run of this habit, if there is one.

        The background session's position becomes this engine's, and the
        manager forgets the session so that only one owner remains.
        """
        session = manager.session_for(self._habit_id)
        if session is None:
            return False
        self._segments = list(session.segments)
        self._index = session.current_index
        self._remaining = session.remaining
        manager.stop_background_run(self._habit_id)
        if session.active:
            self._set_state(CountdownState.RUNNING)
        elif is_barrier(self._segments, self._index):
            self._set_state(CountdownState.STOPPED_AT_BARRIER)
        elif self._remaining > 0:
            self._set_state(CountdownState.PAUSED)
        else:
            self._set_state(CountdownState.IDLE)
        logger.info("Adopted background run of '%s' at segment %d", self._title, self._index)
        return True

    def disappear(self, manager: BackgroundSessionManager) -> bool:
        """Hand a run in progress to the background manager.

        Only running, paused (with time left) and barrier-stopped countdowns
        are handed off; anything else has nothing worth keeping.
        """
        paused_mid_run = self._state is CountdownState.PAUSED and self._remaining > 0
        if not (
            self._state is CountdownState.RUNNING
            or paused_mid_run
            or self._state is CountdownState.STOPPED_AT_BARRIER
        ):
            return False
        manager.begin_background_run(
            Habit(id=self._habit_id, title=self._title, segments=list(self._segments)),
            current_index=self._index,
            remaining=self._remaining,
            active=self.active,
        )
        self._rewind()
        return True

    # -- private helpers -----------------------------------------------------

    def _complete(self) -> None:
        planned = self.total_seconds
        self._remaining = 0
        logger.info("Completed '%s' (%d seconds)", self._title, planned)
        best_effort(
            lambda: self._log_sink.record(
                self._habit_id, self._title, True, planned, planned, LogStatus.COMPLETED
            ),
            "Writing completion record",
        )
        self._set_state(CountdownState.COMPLETED)
        best_effort(lambda: self._notifier.notify_finished(self._title), "Finished notification")

    def _rewind(self) -> None:
        self._index = 0
        self._set_state(CountdownState.IDLE)
        self.jump_to_first_playable()

    def _set_state(self, state: CountdownState) -> None:
        if state is self._state:
            return
        logger.debug("'%s': %s -> %s", self._title, self._state.value, state.value)
        self._state = state
        for listener in list(self._listeners):
            best_effort(lambda: listener(self, state), "Countdown listener")
