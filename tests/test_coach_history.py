"""Tests for active-coach resolution from assignment history."""

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

from commission_engine.calculators.coach_history import (
    find_overlaps,
    parse_coach_history,
    resolve_active_coach,
)
from tests.factories import history, make_client_snapshot


class TestParseCoachHistory:
    """Test parsing of stored coach_history JSON."""

    def test_parses_open_and_closed_intervals(self):
        first, second = uuid4(), uuid4()
        raw = [
            {"coach_id": str(first), "start_date": "2024-01-01", "end_date": "2024-06-30"},
            {"coach_id": str(second), "start_date": "2024-07-01", "end_date": None},
        ]

        intervals = parse_coach_history(raw)

        assert [i.coach_id for i in intervals] == [first, second]
        assert intervals[0].end_date == date(2024, 6, 30)
        assert intervals[1].end_date is None

    def test_accepts_iso_timestamps(self):
        coach = uuid4()
        raw = [{"coach_id": str(coach), "start_date": "2024-03-01T00:00:00Z"}]

        (interval,) = parse_coach_history(raw)

        assert interval.start_date == date(2024, 3, 1)

    def test_drops_malformed_entries(self):
        coach = uuid4()
        raw = [
            {"start_date": "2024-01-01"},
            {"coach_id": "not-a-uuid", "start_date": "2024-01-01"},
            {"coach_id": str(coach), "start_date": "2024-05-01", "end_date": "2024-04-01"},
            {"coach_id": str(coach), "start_date": "2024-05-01"},
        ]

        intervals = parse_coach_history(raw)

        assert len(intervals) == 1
        assert intervals[0].start_date == date(2024, 5, 1)

    def test_none_is_empty(self):
        assert parse_coach_history(None) == ()


class TestResolveActiveCoach:
    """Test which coach is credited for a payment."""

    def test_payment_during_closed_interval_goes_to_old_coach(self):
        old, new = uuid4(), uuid4()
        client = make_client_snapshot(
            coach_id=new,
            coach_history=history(
                (old, date(2024, 1, 1), date(2024, 6, 30)),
                (new, date(2024, 7, 1), None),
            ),
        )

        assert resolve_active_coach(client, date(2024, 3, 15)) == old
        assert resolve_active_coach(client, date(2024, 8, 1)) == new

    def test_bounds_are_inclusive(self):
        old, new = uuid4(), uuid4()
        client = make_client_snapshot(
            coach_id=new,
            coach_history=history(
                (old, date(2024, 1, 1), date(2024, 6, 30)),
                (new, date(2024, 7, 1), None),
            ),
        )

        assert resolve_active_coach(client, date(2024, 6, 30)) == old
        assert resolve_active_coach(client, date(2024, 7, 1)) == new

    def test_timestamp_is_compared_in_utc(self):
        old, new = uuid4(), uuid4()
        client = make_client_snapshot(
            coach_history=history(
                (old, date(2024, 1, 1), date(2024, 6, 30)),
                (new, date(2024, 7, 1), None),
            ),
        )
        # 2024-06-30 23:30 in UTC-5 is 2024-07-01 in UTC
        moment = datetime(2024, 6, 30, 23, 30, tzinfo=timezone(timedelta(hours=-5)))

        assert resolve_active_coach(client, moment) == new

    def test_falls_back_to_assigned_coach(self):
        old, assigned = uuid4(), uuid4()
        client = make_client_snapshot(
            coach_id=assigned,
            coach_history=history((old, date(2024, 1, 1), date(2024, 6, 30))),
        )

        assert resolve_active_coach(client, date(2023, 12, 1)) == assigned

    def test_empty_history_uses_assigned_coach(self):
        assigned = uuid4()
        client = make_client_snapshot(coach_id=assigned)

        assert resolve_active_coach(client, date(2025, 1, 10)) == assigned

    def test_no_coach_at_all(self):
        client = make_client_snapshot(coach_id=None)

        assert resolve_active_coach(client, date(2025, 1, 10)) is None

    def test_overlap_first_listed_wins(self):
        first, second = uuid4(), uuid4()
        intervals = history(
            (first, date(2024, 1, 1), date(2024, 6, 30)),
            (second, date(2024, 6, 1), None),
        )
        client = make_client_snapshot(coach_history=intervals)

        assert resolve_active_coach(client, date(2024, 6, 15)) == first
        assert len(find_overlaps(intervals)) == 1
