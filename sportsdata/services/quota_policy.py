from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any, Callable

from sportsdata.services.settings import Settings
from sportsdata.services.usage_tracker import UsageTracker


class QuotaLevel(StrEnum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


_SEVERITY = {QuotaLevel.GREEN: 0, QuotaLevel.YELLOW: 1, QuotaLevel.RED: 2}


@dataclass(frozen=True)
class QuotaStatus:
    provider: str
    level: QuotaLevel
    used: int
    limit: int
    percent_used: float

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["level"] = self.level.value
        return payload


class QuotaPolicy:
    """Classifies providers green/yellow/red from today's usage.

    Results are memoized for ``memo_ttl_seconds``; a new call inside the
    window sees the previous classification even if usage moved since.
    """

    def __init__(
        self,
        tracker: UsageTracker,
        settings: Settings,
        memo_ttl_seconds: float | None = None,
        monotonic: Callable[[], float] | None = None,
    ) -> None:
        self.tracker = tracker
        self.settings = settings
        self.memo_ttl_seconds = (
            settings.quota_status_ttl_seconds if memo_ttl_seconds is None else float(memo_ttl_seconds)
        )
        self._monotonic = monotonic or time.monotonic
        self._lock = threading.Lock()
        self._memo: dict[str, tuple[float, QuotaStatus]] = {}

    def _compute(self, provider: str) -> QuotaStatus:
        used = self.tracker.count_for(provider)
        limit = self.settings.limit_for(provider)
        percent_used = (used / limit) * 100 if limit > 0 else 100.0

        if percent_used >= self.settings.emergency_percent:
            level = QuotaLevel.RED
        elif percent_used >= self.settings.warning_percent:
            level = QuotaLevel.YELLOW
        else:
            level = QuotaLevel.GREEN

        return QuotaStatus(
            provider=provider,
            level=level,
            used=used,
            limit=limit,
            percent_used=round(percent_used, 2),
        )

    def status(self, provider: str) -> QuotaStatus:
        now = self._monotonic()
        with self._lock:
            cached = self._memo.get(provider)
            if cached is not None and now - cached[0] < self.memo_ttl_seconds:
                return cached[1]

        computed = self._compute(provider)
        with self._lock:
            self._memo[provider] = (now, computed)
        return computed

    def classify(self, provider: str) -> QuotaLevel:
        return self.status(provider).level

    def is_approaching(self, provider: str) -> bool:
        return self.classify(provider) in (QuotaLevel.YELLOW, QuotaLevel.RED)

    def is_exceeded(self, provider: str) -> bool:
        return self.classify(provider) is QuotaLevel.RED

    def statuses(self) -> dict[str, QuotaStatus]:
        providers = list(self.settings.provider_hosts)
        for provider in self.tracker.usage_for_day():
            if provider not in providers:
                providers.append(provider)
        return {provider: self.status(provider) for provider in providers}

    def overall_level(self) -> QuotaLevel:
        levels = [status.level for status in self.statuses().values()]
        if not levels:
            return QuotaLevel.GREEN
        return max(levels, key=lambda level: _SEVERITY[level])
