from __future__ import annotations


class SportsDataError(Exception):
    """Base class for failures raised by the sports data layer."""


class QuotaExceededError(SportsDataError):
    def __init__(self, provider: str, used: int = 0, limit: int = 0) -> None:
        super().__init__(
            f"API limit exceeded for {provider} ({used}/{limit}) and no stale data available"
        )
        self.provider = provider
        self.used = used
        self.limit = limit


class NetworkError(SportsDataError):
    """Transient failure: timeout, connection reset or HTTP 429."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderError(SportsDataError):
    """Non-retryable upstream failure: bad status or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageError(SportsDataError):
    pass


class StorageQuotaError(StorageError):
    def __init__(self, namespace: str, size: int, limit: int) -> None:
        super().__init__(
            f"Snapshot for namespace={namespace} is {size} bytes, limit is {limit}"
        )
        self.namespace = namespace
        self.size = size
        self.limit = limit
