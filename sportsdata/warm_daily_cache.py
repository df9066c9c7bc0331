from __future__ import annotations

import datetime as dt
import json
import os

from sportsdata.services.sports_api import LEAGUES, SportsDataAPI


def _dedupe_text(values: list[str]) -> list[str]:
    deduped: list[str] = []
    seen: set[str] = set()
    for value in values:
        item = str(value).strip()
        if not item or item in seen:
            continue
        seen.add(item)
        deduped.append(item)
    return deduped


def _league_ids() -> list[int]:
    raw = os.getenv("WARM_LEAGUE_IDS", "")
    ids: list[int] = []
    for item in raw.split(","):
        try:
            ids.append(int(item.strip()))
        except ValueError:
            continue
    return ids or sorted(LEAGUES)


def main() -> None:
    api = SportsDataAPI()
    today = dt.datetime.now(dt.UTC).date()

    warnings: list[str] = []
    source_by_key: dict[str, str] = {}

    def record(payload: dict) -> None:
        source_by_key[payload["cache_key"]] = payload["source"]
        warnings.extend(payload.get("warnings", []))

    matches_loaded = 0
    for league_id in _league_ids():
        payload = api.get_football_matches(league_id, today.month, today.year)
        matches_loaded += len(payload["response"])
        record(payload)

    record(api.get_ufc_rankings())
    record(api.get_ufc_events())
    record(api.get_f1_races(today.year))
    record(api.get_f1_driver_standings(today.year))
    record(api.get_sports_news())

    swept = api.cache.sweep_expired()

    print(
        json.dumps(
            {
                "date": today.isoformat(),
                "matches_loaded": matches_loaded,
                "expired_entries_swept": swept,
                "source_by_key": source_by_key,
                "warnings": _dedupe_text(warnings),
                "quota": api.quota_status(),
            },
            indent=2,
        )
    )


if __name__ == "__main__":
    main()
