from __future__ import annotations

import copy
import threading
import time
from typing import Any, Callable

from loguru import logger

from sportsdata.services.errors import StorageError, StorageQuotaError
from sportsdata.services.persistent_store import PersistentStore


def _now_ms() -> int:
    return int(time.time() * 1000)


class CacheStore:
    """TTL cache with a never-expiring stale copy per key.

    Entries live in memory and are mirrored to a ``PersistentStore``
    namespace after every mutation. Persistence is best-effort: a failed
    write is logged and the in-memory state keeps serving the process.
    """

    entries_namespace = "cache_entries"
    shadows_namespace = "stale_shadows"

    def __init__(
        self,
        store: PersistentStore,
        entries_path: str | None = None,
        shadows_path: str | None = None,
        evict_batch: int = 10,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.store = store
        self.entries_path = entries_path
        self.shadows_path = shadows_path
        self.evict_batch = max(1, int(evict_batch))
        self._clock = clock or _now_ms
        self._lock = threading.RLock()
        self._entries: dict[str, dict[str, Any]] = {}
        self._shadows: dict[str, dict[str, Any]] = {}
        self._sweeper: threading.Timer | None = None
        self._sweep_interval_seconds = 0.0
        self._shadow_persist_failing = False

        self._load_entries()
        self._load_shadows()

    def _load_entries(self) -> None:
        try:
            data = self.store.load_map(self.entries_namespace, file_path=self.entries_path)
        except Exception as exc:
            logger.warning(f"Failed to load cache entries from persistent store: {exc}")
            return

        entries: dict[str, dict[str, Any]] = {}
        for key, entry in data.items():
            if not isinstance(entry, dict) or "value" not in entry:
                continue
            try:
                created_at = int(entry.get("created_at", 0))
                expires_at = int(entry.get("expires_at", 0))
            except (TypeError, ValueError):
                continue
            if expires_at <= created_at:
                continue
            entries[str(key)] = {
                "value": entry["value"],
                "created_at": created_at,
                "expires_at": expires_at,
            }

        self._entries = entries
        if entries:
            logger.info(f"Loaded {len(entries)} cache entries.")

    def _load_shadows(self) -> None:
        try:
            data = self.store.load_map(self.shadows_namespace, file_path=self.shadows_path)
        except Exception as exc:
            logger.warning(f"Failed to load stale shadows from persistent store: {exc}")
            return

        self._shadows = {
            str(key): shadow
            for key, shadow in data.items()
            if isinstance(shadow, dict) and "value" in shadow
        }
        if self._shadows:
            logger.info(f"Loaded {len(self._shadows)} stale shadow entries.")

    def _persist_entries(self) -> bool:
        try:
            self.store.save_map(self.entries_namespace, self._entries, file_path=self.entries_path)
            return True
        except StorageQuotaError as exc:
            logger.warning(f"Cache store is full ({exc}); evicting {self.evict_batch} oldest entries.")
            self._evict_oldest(self.evict_batch)
        except StorageError as exc:
            logger.warning(f"Could not persist cache entries: {exc}")
            return False

        try:
            self.store.save_map(self.entries_namespace, self._entries, file_path=self.entries_path)
            return True
        except StorageError as exc:
            logger.error(f"Still unable to persist cache after evicting old entries: {exc}")
            return False

    def _persist_shadows(self) -> bool:
        # Shadows are never evicted, so a full store keeps failing until cleared.
        try:
            self.store.save_map(self.shadows_namespace, self._shadows, file_path=self.shadows_path)
        except StorageError as exc:
            if self._shadow_persist_failing:
                logger.debug(f"Stale shadows still not persisted: {exc}")
            else:
                logger.warning(
                    f"Could not persist {len(self._shadows)} stale shadows; "
                    f"they will not survive a restart: {exc}"
                )
            self._shadow_persist_failing = True
            return False

        if self._shadow_persist_failing:
            logger.info("Stale shadow persistence recovered.")
        self._shadow_persist_failing = False
        return True

    def _evict_oldest(self, count: int) -> list[str]:
        oldest = sorted(self._entries.items(), key=lambda item: item[1]["created_at"])
        removed = [key for key, _ in oldest[: max(0, int(count))]]
        for key in removed:
            del self._entries[key]
        return removed

    def _is_expired(self, entry: dict[str, Any], now: int) -> bool:
        return now >= int(entry["expires_at"])

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug(f"Cache miss for: {key}")
                return None

            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                self._persist_entries()
                logger.debug(f"Cache entry expired for: {key}")
                return None

            logger.debug(f"Cache hit for: {key}")
            return copy.deepcopy(entry["value"])

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        now = self._clock()
        expires_at = now + max(1, int(round(ttl_seconds * 1000)))
        with self._lock:
            self._entries[key] = {
                "value": copy.deepcopy(value),
                "created_at": now,
                "expires_at": expires_at,
            }
            self._shadows[key] = {"value": copy.deepcopy(value), "written_at": now}
            self._persist_shadows()
            self._persist_entries()

    def get_stale(self, key: str) -> Any | None:
        with self._lock:
            shadow = self._shadows.get(key)
            if shadow is None:
                return None
            return copy.deepcopy(shadow["value"])

    def sweep_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]
            if expired:
                self._persist_entries()
                logger.info(f"Swept {len(expired)} expired cache entries.")
            return len(expired)

    def clear_oldest(self, count: int) -> list[str]:
        with self._lock:
            removed = self._evict_oldest(count)
            if removed:
                self._persist_entries()
            return removed

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def stale_keys(self) -> list[str]:
        with self._lock:
            return list(self._shadows)

    def clear_all(self) -> None:
        with self._lock:
            self._entries = {}
            self._persist_entries()

    def __len__(self) -> int:
        return len(self._entries)

    def start_sweeper(self, interval_seconds: float = 3600) -> None:
        with self._lock:
            if self._sweeper is not None:
                return
            self._sweep_interval_seconds = float(interval_seconds)
            self._schedule_sweep()

    def _schedule_sweep(self) -> None:
        timer = threading.Timer(self._sweep_interval_seconds, self._run_scheduled_sweep)
        timer.daemon = True
        self._sweeper = timer
        timer.start()

    def _run_scheduled_sweep(self) -> None:
        try:
            self.sweep_expired()
        except Exception as exc:
            logger.warning(f"Scheduled cache sweep failed: {exc}")
        with self._lock:
            if self._sweeper is not None:
                self._schedule_sweep()

    def stop_sweeper(self) -> None:
        with self._lock:
            timer = self._sweeper
            self._sweeper = None
        if timer is not None:
            timer.cancel()
