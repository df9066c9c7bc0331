from __future__ import annotations

import datetime as dt
import re
from typing import Any

import requests
from loguru import logger

from sportsdata.services.cache_store import CacheStore
from sportsdata.services.errors import SportsDataError
from sportsdata.services.fetch_pipeline import FetchPipeline, FetchRequest, FetchResult, Freshness
from sportsdata.services.normalizer import normalize
from sportsdata.services.persistent_store import PersistentStore
from sportsdata.services.quota_policy import QuotaPolicy
from sportsdata.services.resources import (
    ResourceKind,
    build_cache_key,
    matches_ttl,
    ttl_for,
)
from sportsdata.services.settings import Settings
from sportsdata.services.usage_tracker import UsageTracker

ENDPOINTS: dict[str, str] = {
    "matches": "/api/matches/:league/:month/:year",
    "standings": "/api/tournament/:tournament/season/:season/standings/total",
    "team": "/api/team/:team",
    "ufc_rankings": "/rankings",
    "ufc_fighter_search": "/fighters/search/:query",
    "ufc_events": "/tournaments",
    "ufc_markets": "/special-markets",
    "f1_races": "/races",
    "f1_driver_standings": "/driver-standings",
    "f1_constructor_standings": "/constructor-standings",
    "f1_race_results": "/race-results",
    "news": "/headlines",
    "trending": "/trending",
}

LEAGUES: dict[int, str] = {
    1: "Premier League",
    2: "La Liga",
    3: "Serie A",
    4: "Bundesliga",
    5: "Ligue 1",
    6: "Champions League",
}

UFC_EVENTS_PARAMS = {"sport": "UFC"}
UFC_MARKETS_PARAMS = {"league_ids": "1624", "sport_id": "8"}

# Served when the rankings provider is unavailable.
UFC_CHAMPIONS: dict[str, str] = {
    "Heavyweight": "Jon Jones",
    "Light Heavyweight": "Alex Pereira",
    "Middleweight": "Dricus Du Plessis",
    "Welterweight": "Leon Edwards",
    "Lightweight": "Islam Makhachev",
    "Featherweight": "Ilia Topuria",
    "Bantamweight": "Sean O'Malley",
    "Flyweight": "Alexandre Pantoja",
    "Women's Strawweight": "Zhang Weili",
    "Women's Flyweight": "Alexa Grasso",
    "Women's Bantamweight": "Julianna Peña",
    "Women's Featherweight": "Amanda Nunes",
}

UFC_UPCOMING_EVENTS: list[dict[str, Any]] = [
    {
        "tournamentId": "ufc-307",
        "name": "UFC 307: Jones vs Aspinall",
        "startDate": "2025-03-22T22:00:00Z",
        "location": "T-Mobile Arena, Las Vegas, NV",
        "mainEvent": "Jon Jones vs Tom Aspinall",
    },
    {
        "tournamentId": "ufc-fight-night-whittaker-costa",
        "name": "UFC Fight Night: Whittaker vs Costa",
        "startDate": "2025-04-05T20:00:00Z",
        "location": "UFC APEX, Las Vegas, NV",
        "mainEvent": "Robert Whittaker vs Paulo Costa",
    },
]

F1_UPCOMING_RACES: list[dict[str, Any]] = [
    {
        "id": "monaco-gp-2025",
        "name": "Monaco Grand Prix",
        "circuit": "Circuit de Monaco, Monte Carlo",
        "date": "2025-03-25T15:00:00Z",
        "country": "Monaco",
    },
    {
        "id": "british-gp-2025",
        "name": "British Grand Prix",
        "circuit": "Silverstone Circuit, Silverstone",
        "date": "2025-07-06T15:00:00Z",
        "country": "Great Britain",
    },
]

PRIORITY_KEYWORDS: list[str] = [
    "football",
    "soccer",
    "premier league",
    "champions league",
    "uefa",
    "nba",
    "basketball",
    "ufc",
    "mma",
    "formula 1",
    "f1",
    "tennis",
    "grand slam",
    "boxing",
    "cricket",
]


def _utc_today() -> dt.date:
    return dt.datetime.now(dt.UTC).date()


def _weight_class_slug(weight_class: str) -> str:
    return re.sub(r"\s+", "-", str(weight_class or "").strip()).lower()


def _payload(
    response: Any,
    key: str,
    source: str,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "response": response,
        "source": source,
        "cache_key": key,
        "warnings": warnings or [],
    }


class SportsDataAPI:
    """Per-sport read methods on top of the fetch pipeline.

    Every method returns ``{"response", "source", "cache_key", "warnings"}``
    where ``response`` is already normalized. Provider failures are turned
    into domain fallbacks here; only missing required arguments raise.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: PersistentStore | None = None,
        cache: CacheStore | None = None,
        tracker: UsageTracker | None = None,
        quota: QuotaPolicy | None = None,
        pipeline: FetchPipeline | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store or PersistentStore(
            database_url=self.settings.cache_database_url,
            max_payload_bytes=self.settings.cache_max_bytes,
        )
        self.cache = cache or CacheStore(
            self.store,
            entries_path=self.settings.cache_entries_path,
            shadows_path=self.settings.stale_shadows_path,
            evict_batch=self.settings.cache_evict_batch,
        )
        self.tracker = tracker or UsageTracker(
            self.store,
            file_path=self.settings.api_usage_path,
            retention_days=self.settings.usage_retention_days,
        )
        self.quota = quota or QuotaPolicy(self.tracker, self.settings)
        self.pipeline = pipeline or FetchPipeline(
            self.cache,
            self.tracker,
            self.quota,
            self.settings,
            session=session,
        )
        self.session = self.pipeline.session

        logger.info(
            f"Sports data API ready (cache backend: {self.store.backend}, "
            f"{len(self.cache)} cached entries)."
        )

    def fetch_with_cache(
        self,
        endpoint: str,
        cache_key: str,
        ttl_seconds: float | None = None,
        resource_kind: ResourceKind = ResourceKind.GENERIC,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        critical: bool | None = None,
    ) -> FetchResult:
        """Run one raw request through the pipeline without normalizing."""
        request = FetchRequest(
            endpoint=endpoint,
            cache_key=cache_key,
            ttl_seconds=ttl_for(resource_kind) if ttl_seconds is None else ttl_seconds,
            resource_kind=resource_kind,
            params=dict(params or {}),
            headers=headers,
            critical=critical,
        )
        return self.pipeline.fetch(request)

    def _fetch(
        self,
        provider: str,
        kind: ResourceKind,
        endpoint_name: str,
        cache_key: str,
        params: dict[str, Any] | None = None,
        ttl_seconds: float | None = None,
    ) -> dict[str, Any]:
        result = self.fetch_with_cache(
            ENDPOINTS[endpoint_name],
            cache_key,
            ttl_seconds=ttl_seconds,
            resource_kind=kind,
            params=params,
            headers=self.settings.headers_for(provider),
        )
        warnings: list[str] = []
        if result.freshness is Freshness.STALE:
            warnings.append(f"Serving stale data: {result.error}")
        elif result.freshness is Freshness.EMPTY:
            warnings.append(f"No data available: {result.error}")
        return _payload(normalize(kind, result.data), cache_key, result.freshness.value, warnings)

    def _fallback(self, cache_key: str, response: Any, exc: SportsDataError) -> dict[str, Any]:
        return _payload(response, cache_key, "fallback", [str(exc)])

    # Football

    def get_football_matches(
        self,
        league_id: int | str,
        month: int | None = None,
        year: int | None = None,
    ) -> dict[str, Any]:
        if not league_id:
            raise ValueError("League ID is required")

        today = _utc_today()
        month = int(month or today.month)
        year = int(year or today.year)
        cache_key = build_cache_key("matches", league_id, month, year)

        try:
            return self._fetch(
                "football",
                ResourceKind.MATCHES,
                "matches",
                cache_key,
                params={"pathParams": {"league": league_id, "month": month, "year": year}},
                ttl_seconds=matches_ttl(month, year, today=today),
            )
        except SportsDataError as exc:
            logger.error(f"Error fetching matches for league {league_id}: {exc}")
            return self._fallback(cache_key, [], exc)

    def get_league_standings(self, tournament_id: int | str, season_id: int | str) -> dict[str, Any]:
        if not tournament_id or not season_id:
            raise ValueError("Tournament ID and Season ID are required")

        cache_key = build_cache_key("standings", tournament_id, season_id)
        try:
            return self._fetch(
                "football",
                ResourceKind.STANDINGS,
                "standings",
                cache_key,
                params={"pathParams": {"tournament": tournament_id, "season": season_id}},
            )
        except SportsDataError as exc:
            logger.error(f"Error fetching standings for tournament {tournament_id}: {exc}")
            return self._fallback(cache_key, [], exc)

    def get_team_details(self, team_id: int | str) -> dict[str, Any]:
        # No meaningful fallback exists for a single team, so errors propagate.
        if not team_id:
            raise ValueError("Team ID is required")

        cache_key = build_cache_key("team", team_id)
        return self._fetch(
            "football",
            ResourceKind.TEAM,
            "team",
            cache_key,
            params={"pathParams": {"team": team_id}},
        )

    # UFC

    def get_ufc_rankings(self, weight_class: str = "") -> dict[str, Any]:
        slug = _weight_class_slug(weight_class)
        cache_key = build_cache_key("ufc_rankings", slug or "all")
        try:
            result = self.fetch_with_cache(
                ENDPOINTS["ufc_rankings"] + (f"/{slug}" if slug else ""),
                cache_key,
                resource_kind=ResourceKind.UFC_RANKINGS,
                headers=self.settings.headers_for("ufc"),
            )
        except SportsDataError as exc:
            logger.error(f"Error fetching UFC rankings for {weight_class or 'all'}: {exc}")
            return self._fallback(cache_key, self._static_rankings(weight_class), exc)

        rankings = normalize(ResourceKind.UFC_RANKINGS, result.data)
        warnings = [f"Serving {result.freshness.value} data: {result.error}"] if result.error else []
        if not rankings and result.freshness is Freshness.EMPTY:
            return _payload(self._static_rankings(weight_class), cache_key, "fallback", warnings)
        return _payload(rankings, cache_key, result.freshness.value, warnings)

    @staticmethod
    def _static_rankings(weight_class: str = "") -> list[dict[str, Any]]:
        if weight_class:
            wanted = weight_class.strip().lower()
            raw = [
                {"weight_class": name, "champion": champion, "contenders": {}}
                for name, champion in UFC_CHAMPIONS.items()
                if name.lower() == wanted or _weight_class_slug(name) == wanted
            ]
        else:
            raw = [
                {"weight_class": name, "champion": champion, "contenders": {}}
                for name, champion in UFC_CHAMPIONS.items()
            ]
        return normalize(ResourceKind.UFC_RANKINGS, raw)

    def search_ufc_fighter(self, query: str) -> dict[str, Any]:
        text = str(query or "").strip()
        if len(text) < 2:
            raise ValueError("Search query must be at least 2 characters")

        cache_key = build_cache_key("ufc_fighter_search", text.lower())
        try:
            return self._fetch(
                "ufc",
                ResourceKind.UFC_FIGHTERS,
                "ufc_fighter_search",
                cache_key,
                params={"pathParams": {"query": text}},
            )
        except SportsDataError as exc:
            logger.error(f'Error searching UFC fighters for "{text}": {exc}')
            return self._fallback(cache_key, [], exc)

    def get_ufc_events(self) -> dict[str, Any]:
        cache_key = "ufc_events"
        try:
            payload = self._fetch(
                "ufc", ResourceKind.UFC_EVENTS, "ufc_events", cache_key, params=UFC_EVENTS_PARAMS
            )
        except SportsDataError as exc:
            logger.error(f"Error fetching UFC events: {exc}")
            return self._fallback(cache_key, self._static_events(), exc)

        if not payload["response"] and payload["source"] == Freshness.EMPTY.value:
            payload["response"] = self._static_events()
            payload["source"] = "fallback"
        return payload

    @staticmethod
    def _static_events() -> list[dict[str, Any]]:
        raw = [{**event, "categoryName": "UFC", "sportName": "UFC"} for event in UFC_UPCOMING_EVENTS]
        return normalize(ResourceKind.UFC_EVENTS, raw)

    def get_ufc_markets(self) -> dict[str, Any]:
        cache_key = "ufc_markets"
        try:
            return self._fetch(
                "ufc", ResourceKind.UFC_MARKETS, "ufc_markets", cache_key, params=UFC_MARKETS_PARAMS
            )
        except SportsDataError as exc:
            logger.error(f"Error fetching UFC markets: {exc}")
            return self._fallback(cache_key, [], exc)

    # Formula 1

    def _season(self, season: int | None) -> int:
        return int(season or _utc_today().year)

    def get_f1_races(self, season: int | None = None) -> dict[str, Any]:
        season = self._season(season)
        cache_key = build_cache_key("f1_races", season)
        try:
            payload = self._fetch(
                "f1", ResourceKind.F1_RACES, "f1_races", cache_key, params={"season": season}
            )
        except SportsDataError as exc:
            logger.error(f"Error fetching F1 races for season {season}: {exc}")
            return self._fallback(cache_key, self._static_races(), exc)

        if not payload["response"] and payload["source"] == Freshness.EMPTY.value:
            payload["response"] = self._static_races()
            payload["source"] = "fallback"
        return payload

    @staticmethod
    def _static_races() -> list[dict[str, Any]]:
        raw = {"races": [{**race, "round": 0, "completed": False} for race in F1_UPCOMING_RACES]}
        return normalize(ResourceKind.F1_RACES, raw)

    def get_f1_driver_standings(self, season: int | None = None) -> dict[str, Any]:
        season = self._season(season)
        cache_key = build_cache_key("f1_driver_standings", season)
        try:
            return self._fetch(
                "f1",
                ResourceKind.F1_DRIVER_STANDINGS,
                "f1_driver_standings",
                cache_key,
                params={"season": season},
            )
        except SportsDataError as exc:
            logger.error(f"Error fetching F1 driver standings for season {season}: {exc}")
            return self._fallback(cache_key, [], exc)

    def get_f1_constructor_standings(self, season: int | None = None) -> dict[str, Any]:
        season = self._season(season)
        cache_key = build_cache_key("f1_constructor_standings", season)
        try:
            return self._fetch(
                "f1",
                ResourceKind.F1_CONSTRUCTOR_STANDINGS,
                "f1_constructor_standings",
                cache_key,
                params={"season": season},
            )
        except SportsDataError as exc:
            logger.error(f"Error fetching F1 constructor standings for season {season}: {exc}")
            return self._fallback(cache_key, [], exc)

    def get_f1_race_results(self, race_id: int | str, season: int | None = None) -> dict[str, Any]:
        if not race_id:
            raise ValueError("Race ID is required")

        season = self._season(season)
        cache_key = build_cache_key("f1_race_results", season, race_id)
        try:
            return self._fetch(
                "f1",
                ResourceKind.F1_RACE_RESULTS,
                "f1_race_results",
                cache_key,
                params={"race": race_id, "season": season},
            )
        except SportsDataError as exc:
            logger.error(f"Error fetching F1 race results for race {race_id}, season {season}: {exc}")
            return self._fallback(cache_key, [], exc)

    # News

    def get_sports_news(self, keyword: str = "", limit: int = 10) -> dict[str, Any]:
        keyword = str(keyword or "").strip()
        params: dict[str, Any] = {"limit": limit}
        if keyword:
            params["q"] = keyword

        cache_key = build_cache_key("news", keyword or "latest", limit)
        try:
            return self._fetch("news", ResourceKind.NEWS, "news", cache_key, params=params)
        except SportsDataError as exc:
            logger.error(f'Error fetching sports news for "{keyword or "latest"}": {exc}')
            return self._fallback(cache_key, {"articles": []}, exc)

    def get_trending_keywords(self, limit: int = 10) -> dict[str, Any]:
        cache_key = build_cache_key("trending", limit)
        try:
            return self._fetch(
                "trending", ResourceKind.TRENDING, "trending", cache_key, params={"limit": limit}
            )
        except SportsDataError as exc:
            logger.error(f"Error fetching trending keywords: {exc}")
            return self._fallback(cache_key, {"topics": PRIORITY_KEYWORDS[: max(0, limit)]}, exc)

    # Status

    def quota_status(self) -> dict[str, Any]:
        statuses = self.quota.statuses()
        return {
            "date": self.tracker.today_bucket(),
            "overall": self.quota.overall_level().value,
            "providers": {provider: status.as_dict() for provider, status in statuses.items()},
        }

    def cache_status(self) -> dict[str, Any]:
        return {
            "backend": self.store.backend,
            "entries": len(self.cache),
            "stale_shadows": len(self.cache.stale_keys()),
            "database_configured": bool(self.settings.cache_database_url),
        }

    def start_background_tasks(self) -> None:
        self.cache.start_sweeper(self.settings.cache_sweep_interval_seconds)

    def stop_background_tasks(self) -> None:
        self.cache.stop_sweeper()
