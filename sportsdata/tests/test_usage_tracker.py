from __future__ import annotations

import datetime as dt
import json
from pathlib import Path

from sportsdata.services.errors import StorageError
from sportsdata.services.persistent_store import PersistentStore
from sportsdata.services.usage_tracker import UsageTracker


def test_record_call_counts_per_provider_and_persists(tmp_path: Path) -> None:
    path = tmp_path / "api_usage.json"
    today = dt.date(2026, 3, 1)
    tracker = UsageTracker(PersistentStore(), file_path=str(path), today=lambda: today)

    counts = [tracker.record_call("football") for _ in range(3)]
    tracker.record_call("f1")

    assert counts == [1, 2, 3]
    assert tracker.count_for("football") == 3
    assert tracker.usage_for_day() == {"football": 3, "f1": 1}
    assert json.loads(path.read_text(encoding="utf-8")) == {
        "2026-03-01": {"football": 3, "f1": 1}
    }

    reloaded = UsageTracker(PersistentStore(), file_path=str(path), today=lambda: today)
    assert reloaded.count_for("football") == 3


def test_counts_restart_on_a_new_day(tmp_path: Path) -> None:
    current = {"date": dt.date(2026, 3, 1)}
    tracker = UsageTracker(
        PersistentStore(),
        file_path=str(tmp_path / "api_usage.json"),
        today=lambda: current["date"],
    )
    tracker.record_call("news")
    tracker.record_call("news")

    current["date"] = dt.date(2026, 3, 2)

    assert tracker.count_for("news") == 0
    assert tracker.record_call("news") == 1
    assert tracker.count_for("news", "2026-03-01") == 2


def test_old_and_invalid_buckets_are_purged_on_load(tmp_path: Path) -> None:
    path = tmp_path / "api_usage.json"
    path.write_text(
        json.dumps(
            {
                "2026-02-01": {"football": 40},
                "2026-02-28": {"football": 12},
                "not-a-date": {"football": 1},
            }
        ),
        encoding="utf-8",
    )

    tracker = UsageTracker(
        PersistentStore(),
        file_path=str(path),
        retention_days=7,
        today=lambda: dt.date(2026, 3, 1),
    )

    assert list(tracker.snapshot()) == ["2026-02-28"]
    assert list(json.loads(path.read_text(encoding="utf-8"))) == ["2026-02-28"]


def test_purge_older_than_returns_removed_count(tmp_path: Path) -> None:
    current = {"date": dt.date(2026, 3, 1)}
    tracker = UsageTracker(
        PersistentStore(),
        file_path=str(tmp_path / "api_usage.json"),
        today=lambda: current["date"],
    )
    tracker.record_call("ufc")
    current["date"] = dt.date(2026, 3, 20)

    assert tracker.purge_older_than(7) == 1
    assert tracker.purge_older_than(7) == 0
    assert tracker.snapshot() == {}


def test_record_call_keeps_counting_when_store_write_fails(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "api_usage.json"
    store = PersistentStore()
    tracker = UsageTracker(store, file_path=str(path), today=lambda: dt.date(2026, 3, 1))

    def broken_save(*args, **kwargs):  # noqa: ANN002, ANN003
        raise StorageError("disk unavailable")

    monkeypatch.setattr(store, "save_map", broken_save)

    assert tracker.record_call("ufc") == 1
    assert tracker.record_call("ufc") == 2
    assert tracker.count_for("ufc") == 2
    assert not path.exists()
