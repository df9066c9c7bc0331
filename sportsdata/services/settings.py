from __future__ import annotations

import os

from dotenv import load_dotenv

env_path = os.path.join(os.path.dirname(__file__), "..", ".env")
load_dotenv(env_path)

DEFAULT_PROVIDER_HOSTS: dict[str, str] = {
    "football": "api-football-v1.p.rapidapi.com",
    "ufc": "ufc-fighters.p.rapidapi.com",
    "f1": "formula-1-standings.p.rapidapi.com",
    "news": "sports-news-api.p.rapidapi.com",
    "trending": "trending-topics.p.rapidapi.com",
}

# Calls per day. Providers missing here fall back to DEFAULT_DAILY_LIMIT.
DEFAULT_DAILY_LIMITS: dict[str, int] = {
    "football": 150,
    "ufc": 100,
    "f1": 100,
    "news": 200,
    "trending": 50,
}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, str(default)).strip().lower()
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        value = default
    return max(minimum, min(maximum, value))


def _env_float(name: str, default: float, minimum: float, maximum: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError:
        value = default
    return max(minimum, min(maximum, value))


def _data_path(env_name: str, filename: str) -> str:
    return os.path.normpath(
        os.getenv(
            env_name,
            os.path.join(os.path.dirname(__file__), "..", "data", filename),
        )
    )


class Settings:
    """Runtime configuration read from the environment at construction."""

    def __init__(self) -> None:
        self.api_key = os.getenv("SPORTS_API_KEY", "").strip()
        self.base_url = os.getenv(
            "SPORTS_API_BASE_URL", "https://allsportsapi2.p.rapidapi.com"
        ).strip().rstrip("/")

        self.provider_hosts: dict[str, str] = {}
        for provider, default_host in DEFAULT_PROVIDER_HOSTS.items():
            host = os.getenv(f"{provider.upper()}_API_HOST", default_host).strip()
            self.provider_hosts[provider] = host or default_host

        self.default_daily_limit = _env_int(
            "DEFAULT_DAILY_LIMIT", default=100, minimum=1, maximum=100000
        )
        self.daily_limits: dict[str, int] = {}
        for provider, default_limit in DEFAULT_DAILY_LIMITS.items():
            self.daily_limits[provider] = _env_int(
                f"{provider.upper()}_DAILY_LIMIT",
                default=default_limit,
                minimum=1,
                maximum=100000,
            )

        self.warning_percent = _env_float(
            "QUOTA_WARNING_PERCENT", default=80.0, minimum=0.0, maximum=100.0
        )
        self.emergency_percent = _env_float(
            "QUOTA_EMERGENCY_PERCENT", default=95.0, minimum=0.0, maximum=100.0
        )
        if self.emergency_percent < self.warning_percent:
            self.emergency_percent = self.warning_percent
        self.quota_status_ttl_seconds = _env_float(
            "QUOTA_STATUS_TTL_SECONDS", default=60.0, minimum=0.0, maximum=3600.0
        )

        self.request_timeout_seconds = _env_float(
            "REQUEST_TIMEOUT_SECONDS", default=10.0, minimum=1.0, maximum=120.0
        )
        self.fetch_max_attempts = _env_int("FETCH_MAX_ATTEMPTS", default=3, minimum=1, maximum=3)
        self.single_flight = _env_flag("FETCH_SINGLE_FLIGHT", default=True)

        self.cache_sweep_interval_seconds = _env_int(
            "CACHE_SWEEP_INTERVAL_SECONDS", default=3600, minimum=60, maximum=86400
        )
        self.cache_evict_batch = _env_int("CACHE_EVICT_BATCH", default=10, minimum=1, maximum=1000)
        self.cache_max_bytes = _env_int(
            "CACHE_MAX_BYTES", default=5 * 1024 * 1024, minimum=1024, maximum=512 * 1024 * 1024
        )
        self.usage_retention_days = _env_int(
            "USAGE_RETENTION_DAYS", default=7, minimum=1, maximum=90
        )

        self.cache_database_url = os.getenv(
            "CACHE_DATABASE_URL",
            os.getenv("DATABASE_URL", ""),
        ).strip()
        self.cache_entries_path = _data_path("CACHE_ENTRIES_PATH", "cache_entries.json")
        self.stale_shadows_path = _data_path("STALE_SHADOWS_PATH", "stale_shadows.json")
        self.api_usage_path = _data_path("API_USAGE_PATH", "api_usage.json")

    def limit_for(self, provider: str) -> int:
        return self.daily_limits.get(provider, self.default_daily_limit)

    def provider_for_host(self, host: str) -> str:
        text = str(host or "").strip().lower()
        if not text:
            return "unknown"
        for provider, configured_host in self.provider_hosts.items():
            if configured_host.lower() == text:
                return provider
        return text.split(".")[0] or "unknown"

    def headers_for(self, provider: str) -> dict[str, str]:
        headers = {"X-RapidAPI-Host": self.provider_hosts.get(provider, "")}
        if self.api_key:
            headers["X-RapidAPI-Key"] = self.api_key
        return headers
