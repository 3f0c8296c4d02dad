"""Segment normalizer: deterministic repair of raw segment lists."""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from habittimer.core.segments import (
    DEFAULT_ACTIVE_SECONDS,
    DEFAULT_PAUSE_SECONDS,
    Habit,
    Segment,
    SegmentKind,
    total_seconds,
    whole_seconds,
)


class NormalizationProfile(Enum):
    """Which variant of the normalization rules to apply.

    ``EDITOR_BASELINE`` keeps zero-length segments so an editor can show
    them, and pins Start to 0.  ``SAVE`` drops zero-length actives and
    (non-stop) pauses and lets Start keep a lead-in of whole seconds.
    """

    EDITOR_BASELINE = "editor"
    SAVE = "save"


def normalize(
    segments: Iterable[Segment],
    profile: NormalizationProfile = NormalizationProfile.SAVE,
) -> list[Segment]:
    """Return a repaired copy of *segments*.

    The result always starts with exactly one Start, ends with exactly one
    End, contains at least one Active and one Pause, and carries whole-second
    durations.  The input is never mutated, and
    ``normalize(normalize(x, p), p) == normalize(x, p)``.
    """
    result = list(segments)

    _pin_start(result)
    _pin_end(result)
    _drop_extra_starts(result)
    _drop_extra_ends(result)

    if profile is NormalizationProfile.SAVE:
        result = [segment for segment in result if not _is_empty(segment)]

    if not any(segment.kind is SegmentKind.ACTIVE for segment in result):
        result.insert(_interior_position(result), Segment(SegmentKind.ACTIVE, DEFAULT_ACTIVE_SECONDS))
    if not any(segment.kind is SegmentKind.PAUSE for segment in result):
        result.insert(_interior_position(result), Segment(SegmentKind.PAUSE, DEFAULT_PAUSE_SECONDS))

    return [_clamp(segment, profile) for segment in result]


def planned_seconds(habit: Habit) -> int:
    """Total length of *habit*'s session once normalized for playback."""
    return total_seconds(normalize(habit.segments))


# -- private helpers ---------------------------------------------------------


def _pin_start(segments: list[Segment]) -> None:
    """Move the first Start to index 0, inserting one if there is none."""
    index = _first_index(segments, SegmentKind.START)
    if index is None:
        segments.insert(0, Segment(SegmentKind.START, 0))
    elif index != 0:
        segments.insert(0, segments.pop(index))


def _pin_end(segments: list[Segment]) -> None:
    """Move the last End to the last index, appending one if there is none."""
    index = _last_index(segments, SegmentKind.END)
    if index is None:
        segments.append(Segment(SegmentKind.END, 0))
    elif index != len(segments) - 1:
        segments.append(segments.pop(index))


def _drop_extra_starts(segments: list[Segment]) -> None:
    first = _first_index(segments, SegmentKind.START)
    segments[:] = [
        segment
        for index, segment in enumerate(segments)
        if segment.kind is not SegmentKind.START or index == first
    ]


def _drop_extra_ends(segments: list[Segment]) -> None:
    """Keep only the last End.  The final End always survives."""
    last = _last_index(segments, SegmentKind.END)
    segments[:] = [
        segment
        for index, segment in enumerate(segments)
        if segment.kind is not SegmentKind.END or index == last
    ]


def _is_empty(segment: Segment) -> bool:
    if segment.kind is SegmentKind.ACTIVE:
        return whole_seconds(segment.duration) <= 0
    if segment.kind is SegmentKind.PAUSE:
        return whole_seconds(segment.duration) <= 0 and not segment.is_stop
    return False


def _interior_position(segments: list[Segment]) -> int:
    # Never before Start (index 0), never after End (last index).
    return min(max(1, len(segments) - 1), len(segments) - 1)


def _clamp(segment: Segment, profile: NormalizationProfile) -> Segment:
    seconds = whole_seconds(segment.duration)
    if segment.kind is SegmentKind.ACTIVE:
        duration = max(1, seconds)
    elif segment.kind is SegmentKind.PAUSE:
        duration = 0 if segment.is_stop else max(1, seconds)
    elif segment.kind is SegmentKind.START:
        duration = 0 if profile is NormalizationProfile.EDITOR_BASELINE else max(0, seconds)
    else:
        duration = 0
    return segment.with_duration(duration)


def _first_index(segments: list[Segment], kind: SegmentKind) -> int | None:
    for index, segment in enumerate(segments):
        if segment.kind is kind:
            return index
    return None


def _last_index(segments: list[Segment], kind: SegmentKind) -> int | None:
    for index in reversed(range(len(segments))):
        if segments[index].kind is kind:
            return index
    return None
