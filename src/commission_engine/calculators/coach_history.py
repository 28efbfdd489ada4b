"""Active-coach resolution from a client's assignment history."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable
from uuid import UUID

from commission_engine.calculators.types import ClientSnapshot, CoachInterval, utc_date

logger = logging.getLogger(__name__)


def parse_coach_history(raw: Iterable[dict[str, Any]] | None) -> tuple[CoachInterval, ...]:
    """Parse stored coach_history JSON into intervals, keeping list order.

    Entries missing a coach or a valid start date are dropped with a warning.
    """
    intervals: list[CoachInterval] = []
    for position, item in enumerate(raw or []):
        try:
            coach_id = UUID(str(item["coach_id"]))
            start = _parse_date(item["start_date"])
            end_raw = item.get("end_date")
            end = _parse_date(end_raw) if end_raw else None
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed coach_history entry %d: %r", position, item)
            continue

        if end is not None and end < start:
            logger.warning(
                "Skipping coach_history entry %d with end %s before start %s",
                position,
                end,
                start,
            )
            continue
        intervals.append(CoachInterval(coach_id=coach_id, start_date=start, end_date=end))

    return tuple(intervals)


def find_overlaps(
    intervals: Iterable[CoachInterval],
) -> list[tuple[CoachInterval, CoachInterval]]:
    """Return every pair of overlapping intervals."""
    items = list(intervals)
    return [
        (first, second)
        for i, first in enumerate(items)
        for second in items[i + 1 :]
        if first.overlaps(second)
    ]


def resolve_active_coach(
    client: ClientSnapshot, payment_timestamp: datetime | date
) -> UUID | None:
    """Return the coach who was active when the payment was made.

    Scans coach_history in list order; the first interval covering the
    payment's UTC date wins. Falls back to the currently assigned coach
    when no interval matches.
    """
    on = utc_date(payment_timestamp)

    if logger.isEnabledFor(logging.DEBUG):
        for first, second in find_overlaps(client.coach_history):
            logger.debug(
                "Client %s has overlapping coach intervals %s and %s; first listed wins",
                client.client_id,
                first,
                second,
            )

    for interval in client.coach_history:
        if interval.contains(on):
            return interval.coach_id

    return client.assigned_coach_id


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return utc_date(value)
    if isinstance(value, date):
        return value
    text = str(value)
    # Accept full ISO timestamps as well as plain dates
    if len(text) > 10:
        return utc_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
    return date.fromisoformat(text)
