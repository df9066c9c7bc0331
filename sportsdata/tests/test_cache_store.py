from __future__ import annotations

import json
from pathlib import Path

import pytest

from sportsdata.services.cache_store import CacheStore
from sportsdata.services.errors import StorageError
from sportsdata.services.persistent_store import PersistentStore


class FakeClock:
    def __init__(self, start_ms: int = 1_772_000_000_000) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


def _cache(tmp_path: Path, clock: FakeClock, **kwargs) -> CacheStore:
    store = kwargs.pop("store", None) or PersistentStore()
    return CacheStore(
        store,
        entries_path=str(tmp_path / "cache_entries.json"),
        shadows_path=str(tmp_path / "stale_shadows.json"),
        clock=clock,
        **kwargs,
    )


def test_value_round_trips_until_ttl(tmp_path: Path) -> None:
    clock = FakeClock()
    cache = _cache(tmp_path, clock)

    cache.set("standings_17_2025", {"standings": [{"rows": []}]}, ttl_seconds=60)
    clock.advance(59)

    assert cache.get("standings_17_2025") == {"standings": [{"rows": []}]}


def test_expired_entry_is_gone_but_stale_copy_survives(tmp_path: Path) -> None:
    clock = FakeClock()
    cache = _cache(tmp_path, clock)

    cache.set("news_latest_10", {"articles": ["a"]}, ttl_seconds=60)
    clock.advance(60)

    assert cache.get("news_latest_10") is None
    assert "news_latest_10" not in cache.keys()
    assert cache.get_stale("news_latest_10") == {"articles": ["a"]}


def test_set_rejects_non_positive_ttl(tmp_path: Path) -> None:
    cache = _cache(tmp_path, FakeClock())

    with pytest.raises(ValueError):
        cache.set("team_1", {"team": {}}, ttl_seconds=0)
    assert cache.get("team_1") is None


def test_returned_values_are_copies(tmp_path: Path) -> None:
    cache = _cache(tmp_path, FakeClock())
    value = {"events": [{"id": 1}]}
    cache.set("matches_1_3_2026", value, ttl_seconds=60)

    value["events"].append({"id": 2})
    first = cache.get("matches_1_3_2026")
    first["events"].clear()

    assert cache.get("matches_1_3_2026") == {"events": [{"id": 1}]}


def test_entries_and_shadows_survive_restart(tmp_path: Path) -> None:
    clock = FakeClock()
    cache = _cache(tmp_path, clock)
    cache.set("ufc_events", {"events": [{"name": "UFC 300"}]}, ttl_seconds=3600)

    reopened = _cache(tmp_path, clock)

    assert reopened.get("ufc_events") == {"events": [{"name": "UFC 300"}]}
    assert reopened.get_stale("ufc_events") == {"events": [{"name": "UFC 300"}]}


def test_sweep_removes_only_expired_and_is_idempotent(tmp_path: Path) -> None:
    clock = FakeClock()
    cache = _cache(tmp_path, clock)
    cache.set("short", 1, ttl_seconds=10)
    cache.set("long", 2, ttl_seconds=1000)
    clock.advance(10)

    assert cache.sweep_expired() == 1
    assert cache.sweep_expired() == 0
    assert cache.keys() == ["long"]
    assert cache.get_stale("short") == 1

    on_disk = json.loads((tmp_path / "cache_entries.json").read_text(encoding="utf-8"))
    assert list(on_disk) == ["long"]


def test_full_store_evicts_oldest_and_retries(tmp_path: Path) -> None:
    clock = FakeClock()
    cache = _cache(tmp_path, clock, store=PersistentStore(max_payload_bytes=4500), evict_batch=2)

    for index in range(5):
        cache.set(f"k{index}", "x" * 1000, ttl_seconds=3600)
        clock.advance(1)

    assert cache.keys() == ["k2", "k3", "k4"]
    on_disk = json.loads((tmp_path / "cache_entries.json").read_text(encoding="utf-8"))
    assert sorted(on_disk) == ["k2", "k3", "k4"]


def test_oversized_value_stays_in_memory_when_persist_still_fails(tmp_path: Path) -> None:
    clock = FakeClock()
    cache = _cache(tmp_path, clock, store=PersistentStore(max_payload_bytes=2000), evict_batch=1)
    cache.set("small", "s" * 10, ttl_seconds=3600)
    clock.advance(1)

    huge = {"events": ["x" * 5000]}
    cache.set("huge", huge, ttl_seconds=3600)

    assert cache.keys() == ["huge"]
    assert cache.get("huge") == huge
    assert cache.get_stale("huge") == huge
    assert cache.get_stale("small") == "s" * 10
    on_disk = json.loads((tmp_path / "cache_entries.json").read_text(encoding="utf-8"))
    assert list(on_disk) == ["small"]


def test_shadow_write_failures_are_swallowed_until_store_recovers(tmp_path: Path, monkeypatch) -> None:
    store = PersistentStore()
    cache = _cache(tmp_path, FakeClock(), store=store)
    real_save = store.save_map

    def shadows_unwritable(namespace, payload, file_path=None):  # noqa: ANN001
        if namespace == CacheStore.shadows_namespace:
            raise StorageError("shadow table locked")
        real_save(namespace, payload, file_path=file_path)

    monkeypatch.setattr(store, "save_map", shadows_unwritable)
    cache.set("ufc_events", {"events": [1]}, ttl_seconds=60)
    cache.set("ufc_rankings", [{"division": "Flyweight"}], ttl_seconds=60)

    assert cache.get_stale("ufc_events") == {"events": [1]}
    assert sorted(cache.keys()) == ["ufc_events", "ufc_rankings"]
    assert not (tmp_path / "stale_shadows.json").exists()
    assert (tmp_path / "cache_entries.json").exists()

    monkeypatch.setattr(store, "save_map", real_save)
    cache.set("news_latest_10", {"articles": []}, ttl_seconds=60)

    on_disk = json.loads((tmp_path / "stale_shadows.json").read_text(encoding="utf-8"))
    assert sorted(on_disk) == ["news_latest_10", "ufc_events", "ufc_rankings"]

def test_clear_oldest_and_clear_all(tmp_path: Path) -> None:
    clock = FakeClock()
    cache = _cache(tmp_path, clock)
    for key in ("a", "b", "c"):
        cache.set(key, key, ttl_seconds=60)
        clock.advance(1)

    assert cache.clear_oldest(2) == ["a", "b"]
    assert cache.keys() == ["c"]

    cache.clear_all()
    assert len(cache) == 0
    assert sorted(cache.stale_keys()) == ["a", "b", "c"]


def test_sweeper_start_stop_is_safe_to_repeat(tmp_path: Path) -> None:
    cache = _cache(tmp_path, FakeClock())

    cache.start_sweeper(interval_seconds=3600)
    cache.start_sweeper(interval_seconds=3600)
    cache.stop_sweeper()
    cache.stop_sweeper()
