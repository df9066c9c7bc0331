"""Map provider payloads onto stable internal shapes.

Every function here is pure and total: absent, null or wrongly typed
fields are replaced by defaults (``''`` or a placeholder for strings, ``0``
for numbers, a defaulted object for nested objects) so callers never need
to guard against a partial record.
"""

from __future__ import annotations

import copy
import datetime as dt
import math
import re
import time
from typing import Any, Callable

from sportsdata.services.resources import ResourceKind

PLACEHOLDER_TEAM_LOGO = "/images/placeholder-team.png"
PLACEHOLDER_FIGHTER_IMAGE = "/images/placeholder-player.png"
PLACEHOLDER_EVENT_IMAGE = "/images/placeholder-event.jpg"
UNKNOWN_TEAM = "Unknown Team"
UNKNOWN_LEAGUE = "Unknown League"
UNKNOWN_FIGHTER = "Unknown Fighter"
UNKNOWN_DRIVER = "Unknown Driver"
DEFAULT_TEAM_COLOR = "#374df5"

LIVE_STATUSES = frozenset({"in progress", "halftime"})
LIVE_RACE_WINDOW_MS = 3 * 3600 * 1000
UFC_MARKET_CATEGORY = "UFC General Props"

F1_TEAM_COLORS: list[tuple[str, str, str]] = [
    ("red bull racing", "rbr", "#0600EF"),
    ("ferrari", "fer", "#DC0000"),
    ("mercedes", "mer", "#00D2BE"),
    ("mclaren", "mcl", "#FF8700"),
    ("aston martin", "ast", "#006F62"),
    ("alpine", "alp", "#0090FF"),
    ("haas f1 team", "haa", "#FFFFFF"),
    ("alfa romeo", "alf", "#900000"),
    ("williams", "wil", "#0082FA"),
    ("alphatauri", "aph", "#2B4562"),
]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _str(value: Any, default: str = "") -> str:
    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        text = value.strip()
        return text or default
    if isinstance(value, (int, float)):
        return str(value)
    return default


def _int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
        return int(parsed) if math.isfinite(parsed) else default
    return default


def _number(value: Any, default: float = 0) -> float | int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else default
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
        if not math.isfinite(parsed):
            return default
        return int(parsed) if parsed.is_integer() else parsed
    return default


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _slugify(text: str) -> str:
    return re.sub(r"\s+", "-", text.strip().lower())


def _parse_iso_ms(value: Any) -> int | None:
    text = _str(value)
    if not text:
        return None
    try:
        parsed = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    try:
        return int(parsed.timestamp() * 1000)
    except (OverflowError, OSError, ValueError):
        return None


def _iso_from_ms(value: int) -> str:
    # Offsets near the calendar edges overflow once shifted to UTC.
    try:
        return dt.datetime.fromtimestamp(value / 1000, tz=dt.UTC).isoformat()
    except (OverflowError, OSError, ValueError):
        return ""


def _image_path(kind: str, name: str, placeholder: str) -> str:
    if not name:
        return placeholder
    return f"/images/{kind}/{_slugify(name)}.png"


def _split_upcoming_first(
    items: list[dict[str, Any]],
    is_upcoming: Callable[[dict[str, Any]], bool],
    time_key: str,
) -> list[dict[str, Any]]:
    upcoming = [item for item in items if is_upcoming(item)]
    past = [item for item in items if not is_upcoming(item)]
    upcoming.sort(key=lambda item: item[time_key])
    past.sort(key=lambda item: item[time_key], reverse=True)
    return upcoming + past


def _team_ref(raw: Any) -> dict[str, Any]:
    team = _dict(raw)
    return {
        "id": _int(team.get("id")),
        "name": _str(team.get("name"), UNKNOWN_TEAM),
        "logo": _str(team.get("logo"), PLACEHOLDER_TEAM_LOGO),
        "color": _str(_dict(team.get("teamColors")).get("primary"), DEFAULT_TEAM_COLOR),
    }


def normalize_matches(raw: Any, now_ms: int | None = None) -> list[dict[str, Any]]:
    now = _now_ms() if now_ms is None else now_ms
    matches: list[dict[str, Any]] = []

    for event in _list(_dict(raw).get("events")):
        event = _dict(event)
        start_seconds = _int(event.get("startTimestamp"), default=-1)
        start_time = start_seconds * 1000 if start_seconds >= 0 else now

        home = _team_ref(event.get("homeTeam"))
        away = _team_ref(event.get("awayTeam"))
        status = _dict(event.get("status"))
        description = _str(status.get("description"), "Unknown")
        slug = _str(event.get("slug")) or _slugify(f"{home['name']} vs {away['name']}")

        matches.append(
            {
                "id": _str(event.get("id")) or f"match-{start_time}-{slug}",
                "home_team": home,
                "away_team": away,
                "score": {
                    "home": _int(_dict(event.get("homeScore")).get("current")),
                    "away": _int(_dict(event.get("awayScore")).get("current")),
                },
                "status": {
                    "description": description,
                    "is_live": description.lower() in LIVE_STATUSES,
                    "code": _int(status.get("code")),
                },
                "start_time": start_time,
                "tournament": _str(_dict(event.get("tournament")).get("name"), UNKNOWN_LEAGUE),
                "slug": slug,
                "round": _int(_dict(event.get("roundInfo")).get("round")),
            }
        )

    return _split_upcoming_first(
        matches,
        lambda match: match["status"]["is_live"] or match["start_time"] >= now,
        "start_time",
    )


def normalize_standings(raw: Any) -> list[dict[str, Any]]:
    groups = _list(_dict(raw).get("standings"))
    first_group = _dict(groups[0]) if groups else {}
    rows: list[dict[str, Any]] = []

    for row in _list(first_group.get("rows")):
        row = _dict(row)
        team = _dict(row.get("team"))
        colors = _dict(team.get("teamColors"))
        promotion = _dict(row.get("promotion"))
        name = _str(team.get("name"), UNKNOWN_TEAM)
        rows.append(
            {
                "position": _int(row.get("position")),
                "team": {
                    "id": _int(team.get("id")),
                    "name": name,
                    "short_name": _str(team.get("shortName"), name),
                    "logo": _str(team.get("logo"), PLACEHOLDER_TEAM_LOGO),
                    "colors": {
                        "primary": _str(colors.get("primary"), "#444444"),
                        "secondary": _str(colors.get("secondary"), "#FFFFFF"),
                    },
                },
                "stats": {
                    "matches": _int(row.get("matches")),
                    "wins": _int(row.get("wins")),
                    "draws": _int(row.get("draws")),
                    "losses": _int(row.get("losses")),
                    "points": _int(row.get("points")),
                    "goals_for": _int(row.get("scoresFor")),
                    "goals_against": _int(row.get("scoresAgainst")),
                    "goal_difference": _int(row.get("scoreDifference")),
                    "goal_difference_formatted": _str(row.get("scoreDifferenceFormatted"), "0"),
                },
                "promotion": {
                    "id": _int(promotion.get("id")),
                    "text": _str(promotion.get("text")),
                },
            }
        )

    return rows


def normalize_team(raw: Any) -> dict[str, Any]:
    team = _dict(_dict(raw).get("team"))
    name = _str(team.get("name"), UNKNOWN_TEAM)
    colors = _dict(team.get("teamColors"))
    venue = _dict(team.get("venue"))
    manager = _dict(team.get("manager"))
    tournament = _dict(team.get("tournament"))
    form = _dict(team.get("pregameForm"))

    foundation_date = ""
    founded = team.get("foundationDateTimestamp")
    if isinstance(founded, (int, float)) and not isinstance(founded, bool):
        try:
            foundation_date = _iso_from_ms(int(founded * 1000))[:10]
        except (OverflowError, OSError, ValueError):
            foundation_date = ""

    return {
        "id": _int(team.get("id")),
        "name": name,
        "short_name": _str(team.get("shortName"), name),
        "full_name": _str(team.get("fullName"), name),
        "slug": _str(team.get("slug")) or _slugify(name),
        "name_code": _str(team.get("nameCode")),
        "logo": _str(team.get("logo"), PLACEHOLDER_TEAM_LOGO),
        "colors": {
            "primary": _str(colors.get("primary"), "#000000"),
            "secondary": _str(colors.get("secondary"), "#ffffff"),
            "text": _str(colors.get("text"), "#ffffff"),
        },
        "venue": {
            "name": _str(venue.get("name"), "Unknown Venue"),
            "city": _str(_dict(venue.get("city")).get("name"), "Unknown City"),
            "capacity": _int(venue.get("capacity")),
        },
        "country": {
            "name": _str(_dict(team.get("country")).get("name"), "Unknown Country"),
            "flag": _str(_dict(team.get("country")).get("slug"), "unknown"),
        },
        "manager": {
            "id": _int(manager.get("id")),
            "name": _str(manager.get("name"), "Unknown Manager"),
            "country": _str(_dict(manager.get("country")).get("name"), "Unknown Country"),
        },
        "tournament": {
            "id": _int(tournament.get("id")),
            "name": _str(tournament.get("name"), "Unknown Tournament"),
            "slug": _str(tournament.get("slug"), "unknown-tournament"),
        },
        "foundation_date": foundation_date,
        "form": {
            "position": _int(form.get("position")),
            "rating": _number(form.get("avgRating")),
            "value": _number(form.get("value")),
            "recent_results": [_str(item) for item in _list(form.get("form")) if _str(item)],
        },
    }


def _fighter_ref(name: str, rank: int | None = None) -> dict[str, Any]:
    ref: dict[str, Any] = {
        "name": name,
        "image": _image_path("fighters", name, PLACEHOLDER_FIGHTER_IMAGE),
        "record": "",
        "last_fight": "",
    }
    if rank is not None:
        ref["rank"] = rank
    return ref


def normalize_ufc_rankings(raw: Any) -> list[dict[str, Any]]:
    rankings: list[dict[str, Any]] = []
    for division in _list(raw):
        division = _dict(division)
        weight_class = _str(division.get("weight_class"))
        champion = _str(division.get("champion"))
        if not weight_class or not champion:
            continue

        contenders_raw = _dict(division.get("contenders"))
        contenders = []
        for rank in range(1, 16):
            name = _str(contenders_raw.get(str(rank)))
            if name:
                contenders.append(_fighter_ref(name, rank))

        rankings.append(
            {
                "weight_class": weight_class,
                "champion": _fighter_ref(champion),
                "contenders": contenders,
            }
        )
    return rankings


def normalize_ufc_fighters(raw: Any) -> list[dict[str, Any]]:
    fighters: list[dict[str, Any]] = []
    for fighter in _list(raw):
        fighter = _dict(fighter)
        first_name = _str(fighter.get("first_name"))
        last_name = _str(fighter.get("last_name"))
        fighters.append(
            {
                "name": f"{first_name} {last_name}".strip() or UNKNOWN_FIGHTER,
                "first_name": first_name,
                "last_name": last_name,
                "nickname": _str(fighter.get("nickname")),
                "weight_class": _str(fighter.get("weight_class"), "Unknown"),
                "height": _str(fighter.get("height")),
                "weight": _str(fighter.get("weight")),
                "reach": _str(fighter.get("reach")),
                "stance": _str(fighter.get("stance")),
                "record": {
                    "wins": _int(fighter.get("wins")),
                    "losses": _int(fighter.get("losses")),
                    "draws": _int(fighter.get("draws")),
                },
                "is_champion": _str(fighter.get("belt")) == "1",
            }
        )
    return fighters


def normalize_ufc_markets(raw: Any, now_ms: int | None = None) -> list[dict[str, Any]]:
    now = _now_ms() if now_ms is None else now_ms
    markets: list[dict[str, Any]] = []

    for index, market in enumerate(_list(_dict(raw).get("specials"))):
        market = _dict(market)
        if _str(market.get("category")) != UFC_MARKET_CATEGORY:
            continue
        event = _dict(market.get("event"))
        home = _str(event.get("home"))
        away = _str(event.get("away"))
        if not home or not away:
            continue
        starts = _parse_iso_ms(market.get("starts"))
        if starts is None or starts <= now:
            continue

        odds = []
        for line_key, line in _dict(market.get("lines")).items():
            line = _dict(line)
            odds.append(
                {
                    "id": _str(line.get("id"), str(line_key)),
                    "name": _str(line.get("name"), "Unknown"),
                    "price": _number(line.get("price")),
                }
            )

        markets.append(
            {
                "id": _str(market.get("special_id"), f"market-{index}"),
                "name": _str(market.get("name"), "Unknown Market"),
                "fighters": {"home": home, "away": away},
                "start_time": starts,
                "category": _str(market.get("category"), "UFC"),
                "odds": odds,
            }
        )

    markets.sort(key=lambda item: item["start_time"])
    return markets


def normalize_ufc_events(raw: Any) -> list[dict[str, Any]]:
    payload = _dict(raw)
    if isinstance(payload.get("events"), list):
        items = [(str(index), event) for index, event in enumerate(payload["events"])]
    else:
        items = [(str(key), event) for key, event in payload.items()]
    if isinstance(raw, list):
        items = [(str(index), event) for index, event in enumerate(raw)]

    events: list[dict[str, Any]] = []
    for key, event in items:
        event = _dict(event)
        name = _str(event.get("name"))
        if _str(event.get("categoryName")) != "UFC" or not name:
            continue

        main_event = ""
        matched = re.search(r":\s*(.+?)\s+vs\.?\s+(.+?)$", name, flags=re.IGNORECASE)
        if matched:
            main_event = f"{matched.group(1)} vs {matched.group(2)}"

        events.append(
            {
                "id": _str(event.get("tournamentId"), key),
                "name": name,
                "main_event": _str(event.get("mainEvent"), main_event),
                "location": _str(event.get("location")),
                "start_date": _str(event.get("startDate")),
                "sport_name": _str(event.get("sportName"), "UFC"),
                "image": _image_path("events", name, PLACEHOLDER_EVENT_IMAGE),
            }
        )
    return events


def _race_status(start_ms: int | None, now: int) -> str:
    if start_ms is None:
        return "unknown"
    if start_ms > now:
        return "upcoming"
    if now <= start_ms + LIVE_RACE_WINDOW_MS:
        return "live"
    return "completed"


def normalize_f1_races(raw: Any, now_ms: int | None = None) -> list[dict[str, Any]]:
    now = _now_ms() if now_ms is None else now_ms
    races: list[dict[str, Any]] = []

    for race in _list(_dict(raw).get("races")):
        race = _dict(race)
        date_text = _str(race.get("date"))
        time_text = _str(race.get("time"))
        if date_text and "T" not in date_text:
            start_ms = _parse_iso_ms(f"{date_text}T{time_text or '00:00:00Z'}")
        else:
            start_ms = _parse_iso_ms(date_text)

        circuit_raw = race.get("circuit")
        circuit = _dict(circuit_raw)
        circuit_name = _str(circuit_raw) or _str(circuit.get("name"), "Unknown Circuit")
        status = _race_status(start_ms, now)
        round_number = _int(race.get("round"))

        races.append(
            {
                "id": _str(race.get("id"), f"race-{round_number}"),
                "round": round_number,
                "name": _str(race.get("name"), "Unknown Grand Prix"),
                "circuit": {
                    "name": circuit_name,
                    "location": _str(circuit.get("location"), "Unknown Location"),
                    "country": _str(circuit.get("country") or race.get("country"), "Unknown Country"),
                },
                "date": _iso_from_ms(start_ms) if start_ms is not None else "",
                "start_time": start_ms if start_ms is not None else 0,
                "status": status,
                "completed": race.get("completed") is True or status == "completed",
                "winner": _str(race.get("winner")),
            }
        )

    return _split_upcoming_first(
        races,
        lambda race: race["status"] in ("upcoming", "live"),
        "start_time",
    )


def normalize_f1_driver_standings(raw: Any) -> list[dict[str, Any]]:
    drivers = [
        {
            "position": _int(driver.get("position")),
            "name": _str(driver.get("name"), UNKNOWN_DRIVER),
            "team": _str(driver.get("team"), UNKNOWN_TEAM),
            "points": _number(driver.get("points")),
            "nationality": _str(driver.get("nationality"), "Unknown"),
        }
        for driver in map(_dict, _list(_dict(raw).get("drivers")))
    ]
    drivers.sort(key=lambda item: item["position"])
    return drivers


def _f1_team_color(name: str) -> str:
    lowered = name.lower()
    for full_name, short_name, color in F1_TEAM_COLORS:
        if lowered == full_name or short_name in lowered.split():
            return color
    return "#333333"


def normalize_f1_constructor_standings(raw: Any) -> list[dict[str, Any]]:
    teams = []
    for team in map(_dict, _list(_dict(raw).get("teams"))):
        name = _str(team.get("name"), UNKNOWN_TEAM)
        teams.append(
            {
                "position": _int(team.get("position")),
                "name": name,
                "points": _number(team.get("points")),
                "color": _f1_team_color(name),
                "drivers": _str(team.get("drivers"), "Unknown Drivers"),
            }
        )
    teams.sort(key=lambda item: item["position"])
    return teams


def normalize_f1_race_results(raw: Any) -> list[dict[str, Any]]:
    results = [
        {
            "position": _int(result.get("position")),
            "driver": _str(result.get("driver"), UNKNOWN_DRIVER),
            "team": _str(result.get("team"), UNKNOWN_TEAM),
            "time": _str(result.get("time"), "DNF"),
            "points": _number(result.get("points")),
            "fastest_lap": result.get("fastestLap") is True,
        }
        for result in map(_dict, _list(_dict(raw).get("results")))
    ]
    results.sort(key=lambda item: item["position"])
    return results


def normalize_news(raw: Any) -> dict[str, Any]:
    articles = []
    for article in map(_dict, _list(_dict(raw).get("articles"))):
        title = _str(article.get("title"))
        if not title:
            continue
        articles.append(
            {
                "title": title,
                "description": _str(article.get("description")) or _str(article.get("summary")),
                "content": _str(article.get("content")),
                "url": _str(article.get("url")),
                "image": _str(article.get("urlToImage")) or _str(article.get("image")),
                "source": _str(_dict(article.get("source")).get("name"), "Sports News"),
                "published_at": _str(article.get("publishedAt")),
            }
        )
    return {"articles": articles}


def normalize_trending(raw: Any) -> dict[str, Any]:
    topics = []
    for topic in _list(_dict(raw).get("topics")):
        name = _str(topic) or _str(_dict(topic).get("name"))
        if name:
            topics.append(name)
    return {"topics": topics}


NORMALIZERS: dict[ResourceKind, Callable[[Any], Any]] = {
    ResourceKind.LIVE: normalize_matches,
    ResourceKind.MATCHES: normalize_matches,
    ResourceKind.STANDINGS: normalize_standings,
    ResourceKind.TEAM: normalize_team,
    ResourceKind.UFC_RANKINGS: normalize_ufc_rankings,
    ResourceKind.UFC_FIGHTERS: normalize_ufc_fighters,
    ResourceKind.UFC_MARKETS: normalize_ufc_markets,
    ResourceKind.UFC_EVENTS: normalize_ufc_events,
    ResourceKind.F1_RACES: normalize_f1_races,
    ResourceKind.F1_DRIVER_STANDINGS: normalize_f1_driver_standings,
    ResourceKind.F1_CONSTRUCTOR_STANDINGS: normalize_f1_constructor_standings,
    ResourceKind.F1_RACE_RESULTS: normalize_f1_race_results,
    ResourceKind.NEWS: normalize_news,
    ResourceKind.TRENDING: normalize_trending,
}


def normalize(kind: ResourceKind | str, raw: Any) -> Any:
    try:
        resource_kind = ResourceKind(kind)
    except ValueError:
        resource_kind = ResourceKind.GENERIC

    handler = NORMALIZERS.get(resource_kind)
    if handler is None:
        return copy.deepcopy(raw)
    return handler(raw)
