from __future__ import annotations

import copy
import datetime as dt
from enum import StrEnum
from typing import Any


class ResourceKind(StrEnum):
    LIVE = "live"
    MATCHES = "matches"
    STANDINGS = "standings"
    TEAM = "team"
    UFC_RANKINGS = "ufc_rankings"
    UFC_FIGHTERS = "ufc_fighters"
    UFC_MARKETS = "ufc_markets"
    UFC_EVENTS = "ufc_events"
    F1_RACES = "f1_races"
    F1_DRIVER_STANDINGS = "f1_driver_standings"
    F1_CONSTRUCTOR_STANDINGS = "f1_constructor_standings"
    F1_RACE_RESULTS = "f1_race_results"
    NEWS = "news"
    TRENDING = "trending"
    GENERIC = "generic"


HOUR = 3600
DAY = 24 * HOUR

CACHE_TTL_SECONDS: dict[ResourceKind, int] = {
    ResourceKind.LIVE: 60,
    ResourceKind.MATCHES: 6 * HOUR,
    ResourceKind.STANDINGS: 12 * HOUR,
    ResourceKind.TEAM: 7 * DAY,
    ResourceKind.UFC_RANKINGS: DAY,
    ResourceKind.UFC_FIGHTERS: 7 * DAY,
    ResourceKind.UFC_MARKETS: HOUR,
    ResourceKind.UFC_EVENTS: 12 * HOUR,
    ResourceKind.F1_RACES: DAY,
    ResourceKind.F1_DRIVER_STANDINGS: 12 * HOUR,
    ResourceKind.F1_CONSTRUCTOR_STANDINGS: 12 * HOUR,
    ResourceKind.F1_RACE_RESULTS: 7 * DAY,
    ResourceKind.NEWS: 2 * HOUR,
    ResourceKind.TRENDING: HOUR,
    ResourceKind.GENERIC: HOUR,
}

# Returned when a request fails and nothing stale is available.
TYPED_EMPTY: dict[ResourceKind, Any] = {
    ResourceKind.MATCHES: {"events": []},
    ResourceKind.STANDINGS: {"standings": []},
    ResourceKind.UFC_RANKINGS: [],
    ResourceKind.UFC_EVENTS: {"events": []},
    ResourceKind.F1_RACES: {"races": []},
}

CRITICAL_KINDS = frozenset({ResourceKind.LIVE, ResourceKind.MATCHES})


def ttl_for(kind: ResourceKind) -> int:
    return CACHE_TTL_SECONDS.get(kind, CACHE_TTL_SECONDS[ResourceKind.GENERIC])


def matches_ttl(month: int, year: int, today: dt.date | None = None) -> int:
    """Current-month fixtures change often; other months get double the TTL."""
    today = today or dt.datetime.now(dt.UTC).date()
    base = CACHE_TTL_SECONDS[ResourceKind.MATCHES]
    if int(month) == today.month and int(year) == today.year:
        return base
    return base * 2


def has_typed_empty(kind: ResourceKind) -> bool:
    return kind in TYPED_EMPTY


def typed_empty(kind: ResourceKind) -> Any:
    return copy.deepcopy(TYPED_EMPTY[kind])


def is_critical(kind: ResourceKind) -> bool:
    return kind in CRITICAL_KINDS


def build_cache_key(resource_type: str, *params: Any) -> str:
    parts = [str(resource_type)]
    parts.extend(str(param) for param in params)
    return "_".join(parts)
