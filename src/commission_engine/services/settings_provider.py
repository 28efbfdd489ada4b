"""Commission rate settings lookup with a time-bounded cache."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from commission_engine.calculators.types import DEFAULT_RATE_SETTINGS, RateSettings
from commission_engine.models import CommissionSetting

logger = logging.getLogger(__name__)


class RateSettingsProvider(Protocol):
    """Source of the rate settings used by a calculation batch."""

    def get_settings(self) -> RateSettings:
        ...

    def invalidate(self) -> None:
        ...


class StaticSettingsProvider:
    """Fixed settings, for tests and offline previews."""

    def __init__(self, settings: RateSettings | None = None):
        self.settings = settings or RateSettings()

    def get_settings(self) -> RateSettings:
        return self.settings

    def invalidate(self) -> None:
        pass


class DatabaseSettingsProvider:
    """Reads commission_settings, caching the result for ttl_seconds.

    Missing keys fall back to DEFAULT_RATE_SETTINGS. Callers resolve
    settings once per batch, so a cache refresh never splits a batch.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: RateSettings | None = None
        self._loaded_at = 0.0

    def get_settings(self) -> RateSettings:
        with self._lock:
            now = self._clock()
            if self._cached is not None and now - self._loaded_at < self.ttl_seconds:
                return self._cached

            self._cached = self._load()
            self._loaded_at = now
            return self._cached

    def invalidate(self) -> None:
        """Drop the cached settings so the next call reloads them."""
        with self._lock:
            self._cached = None

    def _load(self) -> RateSettings:
        with self.session_factory() as session:
            rows = session.execute(
                select(CommissionSetting.setting_key, CommissionSetting.setting_value)
            ).all()

        values = {key: value for key, value in rows}
        missing = sorted(set(DEFAULT_RATE_SETTINGS) - set(values))
        if missing:
            logger.info("Commission settings %s not configured; using defaults", missing)
        return RateSettings.from_mapping(values)
