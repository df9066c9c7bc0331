from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from sportsdata.services.errors import QuotaExceededError, SportsDataError
from sportsdata.services.sports_api import SportsDataAPI


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    values = [item.strip() for item in raw.split(",") if item.strip()]
    return values or [default]


class ProviderQuotaResponse(BaseModel):
    provider: str
    level: str
    used: int = Field(ge=0)
    limit: int = Field(ge=0)
    percent_used: float = Field(ge=0)


class QuotaResponse(BaseModel):
    date: str
    overall: str
    providers: dict[str, ProviderQuotaResponse]


class DataResponse(BaseModel):
    response: Any
    source: str
    cache_key: str
    warnings: list[str] = Field(default_factory=list)


api = SportsDataAPI()


@asynccontextmanager
async def lifespan(_: FastAPI):
    api.start_background_tasks()
    try:
        yield
    finally:
        api.stop_background_tasks()


app = FastAPI(
    title="Sports Data API",
    version="1.0.0",
    description="Cached, quota-aware access to football, UFC, F1 and news providers.",
    lifespan=lifespan,
)

cors_origins = _parse_csv_env("CORS_ORIGINS", "http://localhost:3000")
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(QuotaExceededError)
async def quota_exceeded_handler(_: Request, exc: QuotaExceededError) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"detail": str(exc), "provider": exc.provider, "used": exc.used, "limit": exc.limit},
    )


@app.exception_handler(SportsDataError)
async def sports_data_error_handler(_: Request, exc: SportsDataError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": str(exc)})


def _call(method, *args: Any, **kwargs: Any) -> DataResponse:
    try:
        payload = method(*args, **kwargs)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return DataResponse(**payload)


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, Any]:
    settings = api.settings
    quota = api.quota_status()
    return {
        "status": "ready",
        "api_key_configured": bool(settings.api_key),
        "cache": api.cache_status(),
        "quota_overall": quota["overall"],
        "quota_date": quota["date"],
        "fetch_max_attempts": settings.fetch_max_attempts,
        "single_flight": settings.single_flight,
        "cache_sweep_interval_seconds": settings.cache_sweep_interval_seconds,
    }


@app.get("/api/quota", response_model=QuotaResponse)
def get_quota() -> QuotaResponse:
    return QuotaResponse(**api.quota_status())


@app.get("/api/football/matches", response_model=DataResponse)
def get_matches(
    league_id: int = Query(..., ge=1),
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None, ge=1900, le=2100),
) -> DataResponse:
    return _call(api.get_football_matches, league_id, month, year)


@app.get("/api/football/standings", response_model=DataResponse)
def get_standings(
    tournament_id: int = Query(..., ge=1),
    season_id: int = Query(..., ge=1),
) -> DataResponse:
    return _call(api.get_league_standings, tournament_id, season_id)


@app.get("/api/football/teams/{team_id}", response_model=DataResponse)
def get_team(team_id: int) -> DataResponse:
    return _call(api.get_team_details, team_id)


@app.get("/api/ufc/rankings", response_model=DataResponse)
def get_ufc_rankings(weight_class: str = Query(default="", max_length=64)) -> DataResponse:
    return _call(api.get_ufc_rankings, weight_class)


@app.get("/api/ufc/fighters", response_model=DataResponse)
def search_ufc_fighters(q: str = Query(..., max_length=100)) -> DataResponse:
    return _call(api.search_ufc_fighter, q)


@app.get("/api/ufc/events", response_model=DataResponse)
def get_ufc_events() -> DataResponse:
    return _call(api.get_ufc_events)


@app.get("/api/ufc/markets", response_model=DataResponse)
def get_ufc_markets() -> DataResponse:
    return _call(api.get_ufc_markets)


@app.get("/api/f1/races", response_model=DataResponse)
def get_f1_races(season: int | None = Query(default=None, ge=1950, le=2100)) -> DataResponse:
    return _call(api.get_f1_races, season)


@app.get("/api/f1/standings/drivers", response_model=DataResponse)
def get_f1_driver_standings(
    season: int | None = Query(default=None, ge=1950, le=2100),
) -> DataResponse:
    return _call(api.get_f1_driver_standings, season)


@app.get("/api/f1/standings/constructors", response_model=DataResponse)
def get_f1_constructor_standings(
    season: int | None = Query(default=None, ge=1950, le=2100),
) -> DataResponse:
    return _call(api.get_f1_constructor_standings, season)


@app.get("/api/f1/results/{race_id}", response_model=DataResponse)
def get_f1_race_results(
    race_id: str,
    season: int | None = Query(default=None, ge=1950, le=2100),
) -> DataResponse:
    return _call(api.get_f1_race_results, race_id, season)


@app.get("/api/news", response_model=DataResponse)
def get_news(
    keyword: str = Query(default="", max_length=100),
    limit: int = Query(default=10, ge=1, le=50),
) -> DataResponse:
    return _call(api.get_sports_news, keyword, limit)


@app.get("/api/trending", response_model=DataResponse)
def get_trending(limit: int = Query(default=10, ge=1, le=50)) -> DataResponse:
    return _call(api.get_trending_keywords, limit)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("sportsdata.main:app", host="0.0.0.0", port=8000, reload=True)
