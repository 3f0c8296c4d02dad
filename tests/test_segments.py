"""Tests for the segment model, labels and formatting."""

from __future__ import annotations

from datetime import date

import pytest

from conftest import active, end, pause, start, stop
from habittimer.core.segments import (
    Habit,
    HabitDay,
    Segment,
    SegmentKind,
    format_duration,
    format_seconds,
    segment_label,
    whole_seconds,
)

# ---------------------------------------------------------------------------
# Time formatting
# ---------------------------------------------------------------------------


class TestFormatting:
    """Durations format as MM:SS, switching to H:MM:SS from an hour up."""

    def test_format_minutes_and_seconds(self) -> None:
        assert format_seconds(454) == "07:34"

    def test_format_under_a_minute(self) -> None:
        assert format_seconds(5) == "00:05"

    def test_format_with_hours(self) -> None:
        assert format_seconds(3 * 3600 + 2 * 60 + 1) == "3:02:01"

    def test_negative_formats_as_zero(self) -> None:
        assert format_seconds(-12) == "00:00"

    def test_stop_pause_formats_as_stop(self) -> None:
        assert format_duration(stop()) == "Stop"

    def test_timed_pause_formats_as_time(self) -> None:
        assert format_duration(pause(90)) == "01:30"


class TestWholeSeconds:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(0.5, 1), (1.5, 2), (2.5, 3), (2.49, 2), (-0.5, -1), (-2.5, -3), (7, 7)],
    )
    def test_rounds_half_away_from_zero(self, value: float, expected: int) -> None:
        assert whole_seconds(value) == expected

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_becomes_zero(self, value: float) -> None:
        assert whole_seconds(value) == 0


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------


class TestSegmentLabel:
    """Actives and pauses are numbered among their own kind."""

    SEGMENTS = [start(), active(10), pause(5), active(10), stop(), end()]

    def test_start_and_end_use_kind_name(self) -> None:
        assert segment_label(self.SEGMENTS, 0) == "Start"
        assert segment_label(self.SEGMENTS, 5) == "End"

    def test_actives_are_numbered(self) -> None:
        assert segment_label(self.SEGMENTS, 1) == "Active 1"
        assert segment_label(self.SEGMENTS, 3) == "Active 2"

    def test_pauses_are_numbered_including_stops(self) -> None:
        assert segment_label(self.SEGMENTS, 2) == "Pause 1"
        assert segment_label(self.SEGMENTS, 4) == "Pause 2"

    def test_out_of_range_index(self) -> None:
        assert segment_label(self.SEGMENTS, 17) == "-"


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


class TestSegmentSerialization:
    def test_missing_id_and_stop_flag_get_defaults(self) -> None:
        segment = Segment.from_dict({"kind": "pause", "duration": 30})
        assert segment.kind is SegmentKind.PAUSE
        assert segment.duration == 30
        assert segment.is_stop is False
        assert segment.id

    def test_ids_survive_a_save(self) -> None:
        original = active(45)
        assert Segment.from_dict(original.to_dict()) == original

    def test_unknown_kind_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            Segment.from_dict({"kind": "warmup", "duration": 30})


class TestHabit:
    def test_defaults_to_every_day(self) -> None:
        habit = Habit(title="Meditate")
        assert all(habit.is_scheduled(date(2026, 10, day)) for day in range(12, 19))

    def test_is_scheduled_on_listed_day_only(self) -> None:
        habit = Habit(title="Run", active_days=frozenset({HabitDay.MONDAY}))
        assert habit.is_scheduled(date(2026, 10, 19))  # a Monday
        assert not habit.is_scheduled(date(2026, 10, 20))

    def test_from_dict_reads_days_and_segments(self) -> None:
        habit = Habit.from_dict(
            {
                "id": "abc",
                "title": "Stretch",
                "active_days": [0, 2],
                "segments": [{"kind": "active", "duration": 60}],
            }
        )
        assert habit.id == "abc"
        assert habit.active_days == frozenset({HabitDay.MONDAY, HabitDay.WEDNESDAY})
        assert habit.segments[0].duration == 60

    @pytest.mark.parametrize(("text", "day"), [("mo", HabitDay.MONDAY), ("Thursday", HabitDay.THURSDAY), ("6", HabitDay.SUNDAY)])
    def test_parse_weekday(self, text: str, day: HabitDay) -> None:
        assert HabitDay.parse(text) is day

    def test_parse_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            HabitDay.parse("x")
