"""Coach commission rate resolution with an override chain."""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from commission_engine.calculators.types import (
    ClientSnapshot,
    CoachProfile,
    LeadSource,
    RateSettings,
)

logger = logging.getLogger(__name__)

INITIAL_TERM_MONTHS = 6

ZERO = Decimal("0")
ONE = Decimal("1")


class RateSource:
    """Which precedence rule produced a rate."""

    USER_OVERRIDE = "user_override"
    LEAD_SOURCE_OVERRIDE = "lead_source_override"
    RESIGN = "resign"
    TERM_EXPIRED = "term_expired"
    COMPANY_LEAD = "company_lead"
    COACH_LEAD = "coach_lead"


@dataclass(frozen=True)
class RateResolution:
    """A resolved coach rate and the rule that produced it."""

    rate: Decimal
    source: str


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class RateResolver:
    """Resolves the coach's commission rate for a client.

    Rate selection priority (first applicable wins):
    1. Coach's explicit commission_rate, zero included
    2. Coach's commission_config entry for the client's lead source
    3. Re-signed client -> commission_rate_resign
    4. Past the initial six-month term (not re-signed) -> 0
    5. Lead-source default (company lead / coach lead)
    """

    def __init__(self, settings: RateSettings):
        self.settings = settings

    def resolve(
        self,
        coach: CoachProfile | None,
        client: ClientSnapshot,
        as_of: date,
    ) -> RateResolution:
        """Resolve the rate for a coach on a client as of a payment date.

        Never raises; an unknown coach simply has no overrides.
        """
        if coach is not None and coach.commission_rate is not None:
            return RateResolution(
                _clamp(Decimal(str(coach.commission_rate))), RateSource.USER_OVERRIDE
            )

        config_rate = self._config_rate(coach, client.lead_source)
        if config_rate is not None:
            return RateResolution(config_rate, RateSource.LEAD_SOURCE_OVERRIDE)

        if client.is_resign:
            return RateResolution(
                self.settings.commission_rate_resign, RateSource.RESIGN
            )

        if client.start_date is not None:
            term_end = add_months(client.start_date, INITIAL_TERM_MONTHS)
            if as_of > term_end:
                logger.info(
                    "Client %s past initial term (ended %s); coach rate is 0",
                    client.client_id,
                    term_end,
                )
                return RateResolution(ZERO, RateSource.TERM_EXPIRED)

        if client.lead_source == LeadSource.COMPANY_DRIVEN:
            return RateResolution(
                self.settings.commission_rate_company_lead, RateSource.COMPANY_LEAD
            )
        return RateResolution(
            self.settings.commission_rate_coach_lead, RateSource.COACH_LEAD
        )

    def _config_rate(
        self, coach: CoachProfile | None, lead_source: LeadSource
    ) -> Decimal | None:
        """Per-lead-source override from the coach's commission_config."""
        if coach is None or not coach.commission_config:
            return None

        key = (
            "company_lead_rate"
            if lead_source == LeadSource.COMPANY_DRIVEN
            else "self_gen_rate"
        )
        value: Any = coach.commission_config.get(key)
        if value is None:
            return None
        return _clamp(Decimal(str(value)))


def resolve_coach_rate(
    coach: CoachProfile | None,
    client: ClientSnapshot,
    settings: RateSettings,
    as_of: date,
) -> Decimal:
    """Resolve just the rate value (see RateResolver)."""
    return RateResolver(settings).resolve(coach, client, as_of).rate


def _clamp(rate: Decimal) -> Decimal:
    if rate < ZERO or rate > ONE:
        logger.warning("Commission rate %s outside [0, 1]; clamping", rate)
    return min(max(rate, ZERO), ONE)
