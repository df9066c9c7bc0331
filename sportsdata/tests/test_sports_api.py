from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from sportsdata.services.errors import ProviderError
from sportsdata.services.sports_api import PRIORITY_KEYWORDS, UFC_CHAMPIONS, SportsDataAPI


class FakeResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.reason = ""

    def json(self):
        return self._payload


def _api(tmp_path: Path, monkeypatch) -> SportsDataAPI:
    monkeypatch.setenv("SPORTS_API_KEY", "demo-key")
    monkeypatch.setenv("CACHE_DATABASE_URL", "")
    monkeypatch.setenv("DATABASE_URL", "")
    monkeypatch.setenv("CACHE_ENTRIES_PATH", str(tmp_path / "cache_entries.json"))
    monkeypatch.setenv("STALE_SHADOWS_PATH", str(tmp_path / "stale_shadows.json"))
    monkeypatch.setenv("API_USAGE_PATH", str(tmp_path / "api_usage.json"))
    monkeypatch.setenv("FETCH_MAX_ATTEMPTS", "1")
    return SportsDataAPI()


def _failing_get(*args, **kwargs):  # noqa: ANN002, ANN003
    return FakeResponse({}, status_code=500)


def test_matches_are_fetched_normalized_and_cached(tmp_path: Path, monkeypatch) -> None:
    api = _api(tmp_path, monkeypatch)
    calls: list[tuple[str, dict]] = []

    def fake_get(url, params, headers, timeout):  # noqa: ANN001, ARG001
        calls.append((url, headers))
        return FakeResponse(
            {
                "events": [
                    {
                        "id": 10,
                        "startTimestamp": 1_900_000_000,
                        "homeTeam": {"name": "Arsenal"},
                        "awayTeam": {"name": "Chelsea"},
                    }
                ]
            }
        )

    monkeypatch.setattr(api.session, "get", fake_get)

    first = api.get_football_matches(1, 3, 2026)
    second = api.get_football_matches(1, 3, 2026)

    assert len(calls) == 1
    url, headers = calls[0]
    assert url == "https://api-football-v1.p.rapidapi.com/api/matches/1/3/2026"
    assert headers["X-RapidAPI-Key"] == "demo-key"
    assert first["source"] == "fresh"
    assert first["cache_key"] == "matches_1_3_2026"
    assert first["response"][0]["home_team"]["name"] == "Arsenal"
    assert second["source"] == "cached"
    assert second["response"] == first["response"]
    assert api.tracker.count_for("football") == 1


def test_failed_matches_return_empty_list_with_warning(tmp_path: Path, monkeypatch) -> None:
    api = _api(tmp_path, monkeypatch)
    monkeypatch.setattr(api.session, "get", _failing_get)

    payload = api.get_football_matches(2, 1, 2025)

    assert payload["response"] == []
    assert payload["source"] == "empty"
    assert payload["warnings"]


def test_rankings_fall_back_to_static_champions(tmp_path: Path, monkeypatch) -> None:
    api = _api(tmp_path, monkeypatch)
    monkeypatch.setattr(api.session, "get", _failing_get)

    everything = api.get_ufc_rankings()
    lightweight = api.get_ufc_rankings("Lightweight")

    assert everything["source"] == "fallback"
    assert len(everything["response"]) == len(UFC_CHAMPIONS)
    assert everything["cache_key"] == "ufc_rankings_all"
    assert lightweight["cache_key"] == "ufc_rankings_lightweight"
    assert [d["champion"]["name"] for d in lightweight["response"]] == ["Islam Makhachev"]


def test_exhausted_quota_falls_back_to_priority_keywords(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("TRENDING_DAILY_LIMIT", "1")
    api = _api(tmp_path, monkeypatch)
    api.tracker.record_call("trending")

    def should_not_call(*args, **kwargs):  # noqa: ANN002, ANN003
        raise AssertionError("Upstream should not be called once the quota is exhausted")

    monkeypatch.setattr(api.session, "get", should_not_call)

    payload = api.get_trending_keywords(limit=3)

    assert payload["source"] == "fallback"
    assert payload["response"] == {"topics": PRIORITY_KEYWORDS[:3]}
    assert "trending" in payload["warnings"][0]


def test_events_and_races_fall_back_to_static_calendars(tmp_path: Path, monkeypatch) -> None:
    api = _api(tmp_path, monkeypatch)
    monkeypatch.setattr(api.session, "get", _failing_get)

    events = api.get_ufc_events()
    races = api.get_f1_races(2026)

    assert events["source"] == "fallback"
    assert events["response"][0]["main_event"] == "Jon Jones vs Tom Aspinall"
    assert races["source"] == "fallback"
    assert {race["name"] for race in races["response"]} == {"Monaco Grand Prix", "British Grand Prix"}


def test_news_and_f1_standings_send_query_params(tmp_path: Path, monkeypatch) -> None:
    api = _api(tmp_path, monkeypatch)
    calls: list[tuple[str, dict]] = []

    def fake_get(url, params, headers, timeout):  # noqa: ANN001, ARG001
        calls.append((url, params))
        if url.endswith("/headlines"):
            return FakeResponse({"articles": [{"title": "Title race"}]})
        return FakeResponse({"drivers": [{"position": 1, "name": "Norris"}]})

    monkeypatch.setattr(api.session, "get", fake_get)

    news = api.get_sports_news("arsenal", limit=5)
    drivers = api.get_f1_driver_standings(2026)

    assert calls[0] == ("https://sports-news-api.p.rapidapi.com/headlines", {"limit": 5, "q": "arsenal"})
    assert calls[1] == ("https://formula-1-standings.p.rapidapi.com/driver-standings", {"season": 2026})
    assert news["cache_key"] == "news_arsenal_5"
    assert news["response"]["articles"][0]["title"] == "Title race"
    assert drivers["response"][0]["name"] == "Norris"


def test_team_details_errors_propagate(tmp_path: Path, monkeypatch) -> None:
    api = _api(tmp_path, monkeypatch)
    monkeypatch.setattr(api.session, "get", _failing_get)

    with pytest.raises(ProviderError):
        api.get_team_details(42)


def test_required_arguments_are_validated(tmp_path: Path, monkeypatch) -> None:
    api = _api(tmp_path, monkeypatch)

    with pytest.raises(ValueError):
        api.get_football_matches(0)
    with pytest.raises(ValueError):
        api.get_league_standings(17, None)
    with pytest.raises(ValueError):
        api.get_team_details("")
    with pytest.raises(ValueError):
        api.search_ufc_fighter("a")
    with pytest.raises(ValueError):
        api.get_f1_race_results(None)


def test_quota_status_lists_configured_providers(tmp_path: Path, monkeypatch) -> None:
    api = _api(tmp_path, monkeypatch)
    api.tracker.record_call("football")

    status = api.quota_status()

    assert status["date"] == dt.datetime.now(dt.UTC).date().isoformat()
    assert status["overall"] == "green"
    assert status["providers"]["football"]["used"] == 1
    assert status["providers"]["football"]["limit"] == 150
    assert set(status["providers"]) >= {"football", "ufc", "f1", "news", "trending"}
