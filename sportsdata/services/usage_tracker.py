from __future__ import annotations

import copy
import datetime as dt
import threading
from typing import Any, Callable

from loguru import logger

from sportsdata.services.persistent_store import PersistentStore


def _utc_today() -> dt.date:
    return dt.datetime.now(dt.UTC).date()


class UsageTracker:
    """Per-provider, per-day outbound call counters.

    Counts are keyed by UTC calendar day. Tracking never fails a request:
    load and save errors are logged and the in-memory counters carry on.
    """

    namespace = "api_usage"

    def __init__(
        self,
        store: PersistentStore,
        file_path: str | None = None,
        retention_days: int = 7,
        today: Callable[[], dt.date] | None = None,
    ) -> None:
        self.store = store
        self.file_path = file_path
        self.retention_days = max(1, int(retention_days))
        self._today = today or _utc_today
        self._lock = threading.Lock()
        self._usage: dict[str, dict[str, int]] = {}

        self._load()
        self.purge_older_than(self.retention_days)

    def today_bucket(self) -> str:
        return self._today().isoformat()

    def _load(self) -> None:
        try:
            data = self.store.load_map(self.namespace, file_path=self.file_path)
        except Exception as exc:
            logger.error(f"Error initializing API usage tracking: {exc}")
            return

        usage: dict[str, dict[str, int]] = {}
        for date_text, providers in data.items():
            if not isinstance(providers, dict):
                continue
            bucket: dict[str, int] = {}
            for provider, count in providers.items():
                try:
                    bucket[str(provider)] = max(0, int(count))
                except (TypeError, ValueError):
                    continue
            usage[str(date_text)] = bucket
        self._usage = usage

    def _save(self) -> None:
        try:
            self.store.save_map(self.namespace, self._usage, file_path=self.file_path)
        except Exception as exc:
            logger.warning(f"Failed to persist API usage counters: {exc}")

    def record_call(self, provider: str) -> int:
        today = self.today_bucket()
        with self._lock:
            bucket = self._usage.setdefault(today, {})
            bucket[provider] = bucket.get(provider, 0) + 1
            count = bucket[provider]
            self._save()

        logger.debug(f"API call to {provider}: #{count} today")
        return count

    def purge_older_than(self, days: int = 7) -> int:
        cutoff = self._today() - dt.timedelta(days=int(days))
        removed = 0
        with self._lock:
            for date_text in list(self._usage):
                try:
                    bucket_date = dt.date.fromisoformat(date_text)
                except ValueError:
                    bucket_date = None
                if bucket_date is None or bucket_date < cutoff:
                    del self._usage[date_text]
                    removed += 1
            if removed:
                self._save()

        if removed:
            logger.info(f"Purged {removed} API usage day buckets older than {days} days.")
        return removed

    def count_for(self, provider: str, date_bucket: str | None = None) -> int:
        date_text = date_bucket or self.today_bucket()
        with self._lock:
            return int(self._usage.get(date_text, {}).get(provider, 0))

    def usage_for_day(self, date_bucket: str | None = None) -> dict[str, int]:
        date_text = date_bucket or self.today_bucket()
        with self._lock:
            return dict(self._usage.get(date_text, {}))

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._usage)
