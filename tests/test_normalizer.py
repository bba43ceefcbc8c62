"""
Tests for busy interval normalization.
"""

from datetime import date, datetime

import pendulum
import pytest
from pendulum import DateTime

from availabilityfinder.domain.exceptions import MalformedInterval
from availabilityfinder.domain.models import BusyInterval, TimeRange
from availabilityfinder.domain.normalizer import (
    merge_intervals,
    normalize_day,
    split_by_day,
    validate_interval,
)

TZ = "Europe/Berlin"


def _dt(text: str, tz: str = TZ) -> DateTime:
    return pendulum.parse(text, tz=tz)


def _range(start: str, end: str) -> TimeRange:
    return TimeRange(start=_dt(f"2024-11-25 {start}"), end=_dt(f"2024-11-25 {end}"))


def _busy(start: str, end: str, day: str = "2024-11-25") -> BusyInterval:
    return BusyInterval(start=_dt(f"{day} {start}"), end=_dt(f"{day} {end}"))


class TestMergeIntervals:
    """Tests for merge_intervals."""

    def test_overlapping_ranges_merge(self):
        merged = merge_intervals([_range("10:30", "12:00"), _range("09:00", "11:00")])

        assert merged == [_range("09:00", "12:00")]

    def test_touching_ranges_merge(self):
        merged = merge_intervals([_range("09:00", "10:00"), _range("10:00", "11:00")])

        assert merged == [_range("09:00", "11:00")]

    def test_contained_range_absorbed(self):
        merged = merge_intervals([_range("09:00", "17:00"), _range("10:00", "11:00")])

        assert merged == [_range("09:00", "17:00")]

    def test_disjoint_ranges_sorted(self):
        merged = merge_intervals([_range("14:00", "15:00"), _range("09:00", "10:00")])

        assert merged == [_range("09:00", "10:00"), _range("14:00", "15:00")]

    def test_empty_input(self):
        assert merge_intervals([]) == []

    def test_merge_is_idempotent(self):
        """Normalizing an already-normalized set is a no-op."""
        raw = [
            _range("13:00", "14:00"),
            _range("09:00", "10:00"),
            _range("09:30", "11:00"),
            _range("11:00", "11:15"),
            _range("16:00", "17:00"),
        ]

        once = merge_intervals(raw)
        twice = merge_intervals(once)

        assert once == twice
        assert all(a.end < b.start for a, b in zip(once, once[1:]))


class TestValidateInterval:
    """Tests for validate_interval."""

    def test_zero_duration_rejected(self):
        interval = _busy("10:00", "10:00")

        with pytest.raises(MalformedInterval) as exc_info:
            validate_interval(interval, TZ)

        assert exc_info.value.interval is interval

    def test_inverted_rejected(self):
        with pytest.raises(MalformedInterval):
            validate_interval(_busy("11:00", "10:00"), TZ)

    def test_missing_bound_rejected(self):
        with pytest.raises(MalformedInterval, match="missing a bound"):
            validate_interval(BusyInterval(start=_dt("2024-11-25 10:00"), end=None), TZ)

    def test_converts_to_utc_instants(self):
        time_range = validate_interval(_busy("09:00", "10:00"), TZ)

        assert time_range.start.timezone_name == "UTC"
        assert time_range.start.hour == 8
        assert time_range == TimeRange(start=_dt("2024-11-25 08:00", "UTC"), end=_dt("2024-11-25 09:00", "UTC"))

    def test_naive_values_taken_as_local(self):
        naive = BusyInterval(
            start=datetime(2024, 11, 25, 9, 0),
            end=datetime(2024, 11, 25, 10, 0),
        )

        assert validate_interval(naive, TZ) == _range("09:00", "10:00")


class TestNormalizeDay:
    """Tests for normalize_day."""

    def test_malformed_records_dropped_not_fatal(self):
        normalized = normalize_day(
            [_busy("09:00", "10:00"), _busy("12:00", "11:00"), _busy("09:30", "10:30")],
            TZ,
        )

        assert normalized.ranges == (_range("09:00", "10:30"),)
        assert len(normalized.rejected) == 1
        assert isinstance(normalized.rejected[0], MalformedInterval)

    def test_only_malformed_records_leave_day_free(self):
        normalized = normalize_day([_busy("10:00", "10:00")], TZ)

        assert normalized.ranges == ()
        assert len(normalized.rejected) == 1


class TestSplitByDay:
    """Tests for split_by_day."""

    def test_groups_by_local_date(self):
        buckets = split_by_day(
            [
                _busy("09:00", "10:00", day="2024-11-25"),
                _busy("09:00", "10:00", day="2024-11-26"),
                _busy("14:00", "15:00", day="2024-11-25"),
            ],
            TZ,
        )

        assert sorted(buckets) == [date(2024, 11, 25), date(2024, 11, 26)]
        assert len(buckets[date(2024, 11, 25)]) == 2

    def test_local_date_uses_reference_timezone(self):
        """23:30 UTC on Monday is already Tuesday in Berlin."""
        buckets = split_by_day(
            [BusyInterval(start=_dt("2024-11-25 23:30", "UTC"), end=_dt("2024-11-25 23:45", "UTC"))],
            TZ,
        )

        assert list(buckets) == [date(2024, 11, 26)]

    def test_interval_crossing_midnight_is_split(self):
        interval = BusyInterval(
            start=_dt("2024-11-25 22:00"),
            end=_dt("2024-11-27 10:00"),
            calendar_id="me",
        )

        buckets = split_by_day([interval], TZ)

        assert sorted(buckets) == [date(2024, 11, 25), date(2024, 11, 26), date(2024, 11, 27)]
        monday = buckets[date(2024, 11, 25)][0]
        tuesday = buckets[date(2024, 11, 26)][0]
        wednesday = buckets[date(2024, 11, 27)][0]
        assert (monday.start, monday.end) == (_dt("2024-11-25 22:00"), _dt("2024-11-26 00:00"))
        assert (tuesday.start, tuesday.end) == (_dt("2024-11-26 00:00"), _dt("2024-11-27 00:00"))
        assert (wednesday.start, wednesday.end) == (_dt("2024-11-27 00:00"), _dt("2024-11-27 10:00"))
        assert wednesday.calendar_id == "me"

    def test_malformed_interval_kept_under_start_day(self):
        bad = _busy("12:00", "11:00")

        buckets = split_by_day([bad], TZ)

        assert buckets == {date(2024, 11, 25): [bad]}

    def test_fall_back_day_piece_lasts_25_hours(self):
        interval = BusyInterval(start=_dt("2024-10-26 22:00"), end=_dt("2024-10-28 02:00"))

        buckets = split_by_day([interval], TZ)

        sunday = buckets[date(2024, 10, 27)][0]
        assert sunday.start == _dt("2024-10-27 00:00")
        assert sunday.end == _dt("2024-10-28 00:00")
        assert sunday.end.int_timestamp - sunday.start.int_timestamp == 25 * 3600
