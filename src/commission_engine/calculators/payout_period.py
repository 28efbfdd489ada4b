"""Bi-weekly payout period assignment."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from commission_engine.calculators.types import utc_date

# A confirmed period start (Monday). Periods run Monday through the second
# Sunday and are paid the following Friday.
PERIOD_ANCHOR = date(2024, 12, 16)
PERIOD_LENGTH_DAYS = 14
FRIDAY = 4


@dataclass(frozen=True)
class PayoutPeriod:
    """A fixed 14-day commission period."""

    period_start: date
    period_end: date
    payout_date: date

    @property
    def label(self) -> str:
        return (
            f"{self.period_start.strftime('%b')} {self.period_start.day} - "
            f"{self.period_end.strftime('%b')} {self.period_end.day}, "
            f"{self.period_end.year}"
        )

    def contains(self, on: date) -> bool:
        return self.period_start <= on <= self.period_end


def payout_date_for(period_end: date) -> date:
    """First Friday strictly after the period's last day."""
    days_until_friday = (FRIDAY - period_end.weekday()) % 7
    if days_until_friday == 0:
        days_until_friday = 7
    return period_end + timedelta(days=days_until_friday)


def period_for(timestamp: datetime | date, anchor: date = PERIOD_ANCHOR) -> PayoutPeriod:
    """Map a payment timestamp (UTC) to its payout period."""
    on = utc_date(timestamp)
    period_index = (on - anchor).days // PERIOD_LENGTH_DAYS
    start = anchor + timedelta(days=period_index * PERIOD_LENGTH_DAYS)
    end = start + timedelta(days=PERIOD_LENGTH_DAYS - 1)
    return PayoutPeriod(period_start=start, period_end=end, payout_date=payout_date_for(end))


def list_periods(
    around: datetime | date,
    past: int = 12,
    future: int = 4,
    anchor: date = PERIOD_ANCHOR,
) -> list[PayoutPeriod]:
    """Periods from `past` cycles before to `future` cycles after, newest first."""
    if past < 0 or future < 0:
        raise ValueError("past and future must be non-negative")

    current = period_for(around, anchor)
    periods = [
        period_for(
            current.period_start + timedelta(days=offset * PERIOD_LENGTH_DAYS), anchor
        )
        for offset in range(-past, future + 1)
    ]
    return sorted(periods, key=lambda p: p.period_start, reverse=True)
