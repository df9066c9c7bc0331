from __future__ import annotations

import copy
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable
from urllib.parse import quote, urlparse

import requests
from loguru import logger
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from sportsdata.services.cache_store import CacheStore
from sportsdata.services.errors import (
    NetworkError,
    ProviderError,
    QuotaExceededError,
    SportsDataError,
)
from sportsdata.services.quota_policy import QuotaPolicy
from sportsdata.services.resources import ResourceKind, has_typed_empty, is_critical, typed_empty
from sportsdata.services.settings import Settings
from sportsdata.services.usage_tracker import UsageTracker

HOST_HEADER_NAMES = ("x-rapidapi-host", "api-host")


class Freshness(StrEnum):
    FRESH = "fresh"
    CACHED = "cached"
    STALE = "stale"
    EMPTY = "empty"


@dataclass
class FetchRequest:
    endpoint: str
    cache_key: str
    ttl_seconds: float
    resource_kind: ResourceKind = ResourceKind.GENERIC
    params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] | None = None
    # None means "decide from the resource kind".
    critical: bool | None = None

    @property
    def is_critical(self) -> bool:
        if self.critical is not None:
            return self.critical
        return is_critical(self.resource_kind)


@dataclass
class FetchResult:
    data: Any
    freshness: Freshness
    key: str
    provider: str
    attempts: int = 0
    error: str | None = None

    @property
    def is_stale(self) -> bool:
        return self.freshness in (Freshness.STALE, Freshness.EMPTY)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for transient failures, no jitter.

    The wait after failed attempt ``n`` (1-indexed) is ``base ** (n - 1)``
    seconds. The wait also follows the last failed attempt, so three
    attempts observe 1s, 2s and 4s before the caller falls back.
    """

    max_attempts: int = 3
    backoff_base_seconds: float = 2.0

    def wait(self) -> wait_exponential:
        return wait_exponential(multiplier=1, exp_base=self.backoff_base_seconds)

    def retrying(
        self,
        sleep: Callable[[float], None],
        before_sleep: Callable[[RetryCallState], None] | None = None,
        retry_error_callback: Callable[[RetryCallState], Any] | None = None,
    ) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait(),
            retry=retry_if_exception_type(NetworkError),
            sleep=sleep,
            before_sleep=before_sleep,
            retry_error_callback=retry_error_callback,
            reraise=True,
        )


def _header_value(headers: dict[str, str] | None, names: tuple[str, ...]) -> str:
    for name, value in (headers or {}).items():
        if str(name).strip().lower() in names:
            return str(value or "").strip()
    return ""


def build_url(
    endpoint: str,
    params: dict[str, Any] | None,
    base_url: str,
    host: str = "",
) -> tuple[str, dict[str, Any]]:
    """Resolve the request URL and the remaining query parameters.

    ``params["pathParams"]`` fills ``:name`` segments of the path and is
    dropped from the query. The caller's dict is left untouched.
    """
    query = dict(params or {})
    path_params = query.pop("pathParams", None) or {}

    if endpoint.startswith(("http://", "https://")):
        url = endpoint
    elif host:
        url = f"https://{host}{endpoint}"
    else:
        url = f"{base_url}{endpoint}"

    if isinstance(path_params, dict):
        for name, value in path_params.items():
            url = url.replace(f":{name}", quote(str(value), safe=""))

    return url, query


def provider_for(url: str, headers: dict[str, str] | None, settings: Settings) -> str:
    host = _header_value(headers, HOST_HEADER_NAMES)
    if not host:
        try:
            host = urlparse(url).hostname or ""
        except ValueError:
            host = ""
    return settings.provider_for_host(host)


class FetchPipeline:
    """Cache → quota → network → cache write, falling back to stale data.

    One ``fetch`` call handles one logical request (one cache key).
    Concurrent calls for the same key share a single in-flight execution
    when ``single_flight`` is on.
    """

    def __init__(
        self,
        cache: CacheStore,
        tracker: UsageTracker,
        quota: QuotaPolicy,
        settings: Settings,
        session: requests.Session | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        single_flight: bool | None = None,
    ) -> None:
        self.cache = cache
        self.tracker = tracker
        self.quota = quota
        self.settings = settings
        self.session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=settings.fetch_max_attempts)
        self._sleep = sleep
        self.single_flight = settings.single_flight if single_flight is None else single_flight
        self._inflight: dict[str, Future] = {}
        self._inflight_lock = threading.Lock()

    def fetch(self, request: FetchRequest) -> FetchResult:
        if not self.single_flight:
            return self._execute(request)

        key = request.cache_key
        with self._inflight_lock:
            pending = self._inflight.get(key)
            if pending is None:
                pending = Future()
                self._inflight[key] = pending
                leader = True
            else:
                leader = False

        if not leader:
            logger.debug(f"Joining in-flight request for: {key}")
            return copy.deepcopy(pending.result())

        try:
            result = self._execute(request)
        except BaseException as exc:
            pending.set_exception(exc)
            raise
        else:
            pending.set_result(result)
            return result
        finally:
            with self._inflight_lock:
                self._inflight.pop(key, None)

    def _execute(self, request: FetchRequest) -> FetchResult:
        key = request.cache_key
        url, query = build_url(
            request.endpoint,
            request.params,
            self.settings.base_url,
            host=_header_value(request.headers, HOST_HEADER_NAMES),
        )
        provider = provider_for(url, request.headers, self.settings)

        cached = self.cache.get(key)
        if cached is not None:
            return FetchResult(cached, Freshness.CACHED, key, provider)

        if self.quota.is_exceeded(provider):
            status = self.quota.status(provider)
            logger.error(f"API limit exceeded for {provider} ({status.used}/{status.limit})")
            stale = self.cache.get_stale(key)
            if stale is not None:
                return FetchResult(stale, Freshness.STALE, key, provider, error="quota exceeded")
            raise QuotaExceededError(provider, status.used, status.limit)

        if not request.is_critical and self.quota.is_approaching(provider):
            stale = self.cache.get_stale(key)
            if stale is not None:
                logger.warning(f"Approaching API limit for {provider} - using stale data for {key}")
                return FetchResult(stale, Freshness.STALE, key, provider, error="quota approaching")

        headers = dict(request.headers) if request.headers else self.settings.headers_for(provider)
        payload, attempts, error = self._dispatch(url, query, headers, provider)
        if error is not None:
            return self._fallback(request, provider, error, attempts)

        self.cache.set(key, payload, request.ttl_seconds)
        return FetchResult(payload, Freshness.FRESH, key, provider, attempts=attempts)

    def _dispatch(
        self,
        url: str,
        query: dict[str, Any],
        headers: dict[str, str],
        provider: str,
    ) -> tuple[Any, int, SportsDataError | None]:
        attempts = 0
        max_attempts = self.retry_policy.max_attempts

        def attempt_once() -> Any:
            nonlocal attempts
            attempts += 1
            self.tracker.record_call(provider)
            return self._request_once(url, query, headers)

        def log_retry(state: RetryCallState) -> None:
            delay = state.next_action.sleep if state.next_action else 0
            logger.warning(
                f"{state.outcome.exception()}; retrying in {delay:g}s "
                f"(attempt {state.attempt_number}/{max_attempts})"
            )

        def back_off_and_give_up(state: RetryCallState) -> Any:
            delay = self.retry_policy.wait()(state)
            logger.warning(
                f"{state.outcome.exception()}; giving up after {delay:g}s "
                f"(attempt {state.attempt_number}/{max_attempts})"
            )
            self._sleep(delay)
            return state.outcome.result()

        retrying = self.retry_policy.retrying(
            self._sleep,
            before_sleep=log_retry,
            retry_error_callback=back_off_and_give_up,
        )
        try:
            return retrying(attempt_once), attempts, None
        except (NetworkError, ProviderError) as exc:
            return None, attempts, exc

    def _request_once(self, url: str, query: dict[str, Any], headers: dict[str, str]) -> Any:
        try:
            response = self.session.get(
                url,
                params=query or None,
                headers=headers,
                timeout=self.settings.request_timeout_seconds,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
            raise NetworkError(f"Network error for {url}: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise ProviderError(f"Request to {url} failed: {exc}") from exc

        status_code = int(response.status_code)
        if status_code == 429:
            raise NetworkError(f"Rate limited by provider for {url}", status_code=429)
        if not 200 <= status_code < 300:
            reason = getattr(response, "reason", "") or ""
            raise ProviderError(
                f"API request failed: {status_code} - {reason}".rstrip(" -"),
                status_code=status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError("Invalid JSON response from API", status_code=status_code) from exc

        if payload is None or payload == "":
            raise ProviderError("Empty response from API", status_code=status_code)
        return payload

    def _fallback(
        self,
        request: FetchRequest,
        provider: str,
        error: SportsDataError,
        attempts: int,
    ) -> FetchResult:
        key = request.cache_key
        logger.error(f"API request error for {key}: {error}")

        stale = self.cache.get_stale(key)
        if stale is not None:
            logger.warning(f"Using stale data for {key} after API error")
            return FetchResult(
                stale, Freshness.STALE, key, provider, attempts=attempts, error=str(error)
            )

        if has_typed_empty(request.resource_kind):
            logger.warning(f"No stale data for {key}; returning empty {request.resource_kind} payload")
            return FetchResult(
                typed_empty(request.resource_kind),
                Freshness.EMPTY,
                key,
                provider,
                attempts=attempts,
                error=str(error),
            )

        raise error
