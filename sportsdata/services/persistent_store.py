from __future__ import annotations

import json
import os
from typing import Any

from loguru import logger

from sportsdata.services.errors import StorageError, StorageQuotaError

try:
    import psycopg
except Exception:  # pragma: no cover - optional dependency fallback
    psycopg = None


def _normalize_database_url(url: str) -> str:
    value = str(url or "").strip()
    if value.startswith("postgres://"):
        return "postgresql://" + value[len("postgres://") :]
    return value


class PersistentStore:
    """Namespaced JSON snapshots kept in files or a Postgres table.

    Every write is size-checked against ``max_payload_bytes`` so callers can
    react to a full store the same way regardless of backend.
    """

    def __init__(
        self,
        database_url: str | None = None,
        max_payload_bytes: int | None = None,
    ) -> None:
        self.database_url = _normalize_database_url(database_url or "")
        self.use_postgres = bool(self.database_url) and psycopg is not None
        self.max_payload_bytes = max_payload_bytes
        self.snapshots_table = "sports_cache_snapshots"

        if self.database_url and psycopg is None:
            logger.warning(
                "CACHE_DATABASE_URL is set but psycopg is unavailable. Falling back to file cache."
            )

        if self.use_postgres:
            self._ensure_postgres_schema()

    @property
    def backend(self) -> str:
        return "postgres" if self.use_postgres else "file"

    def _ensure_postgres_schema(self) -> None:
        try:
            with psycopg.connect(self.database_url, autocommit=True) as conn:  # type: ignore[union-attr]
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        CREATE TABLE IF NOT EXISTS {self.snapshots_table} (
                            namespace TEXT PRIMARY KEY,
                            payload JSONB NOT NULL,
                            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                        )
                        """
                    )
        except Exception as exc:
            logger.error(f"Failed to initialize Postgres snapshot schema: {exc}")
            self.use_postgres = False

    @staticmethod
    def _read_json_file(path: str) -> dict[str, Any] | None:
        if not path or not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Ignoring unreadable snapshot file {path}: {exc}")
            return None
        if not isinstance(payload, dict):
            return None
        return payload

    @staticmethod
    def _write_json_text(path: str, text: str) -> None:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_path, path)

    def _serialize(self, namespace: str, payload: dict[str, Any]) -> str:
        try:
            text = json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Snapshot for namespace={namespace} is not JSON serializable: {exc}") from exc

        if self.max_payload_bytes is not None:
            size = len(text.encode("utf-8"))
            if size > self.max_payload_bytes:
                raise StorageQuotaError(namespace, size, self.max_payload_bytes)
        return text

    def load_map(self, namespace: str, file_path: str | None = None) -> dict[str, Any]:
        if self.use_postgres:
            payload = self._read_snapshot(namespace)
            if isinstance(payload, dict):
                return payload

        data = self._read_json_file(file_path) if file_path else None
        return data if isinstance(data, dict) else {}

    def save_map(
        self,
        namespace: str,
        payload: dict[str, Any],
        file_path: str | None = None,
    ) -> None:
        """Persist a namespace snapshot.

        Raises ``StorageQuotaError`` when the snapshot is over the size limit
        and ``StorageError`` for any other write failure.
        """
        text = self._serialize(namespace, payload)

        if self.use_postgres:
            self._write_snapshot(namespace, text)
            return
        if not file_path:
            return
        try:
            self._write_json_text(file_path, text)
        except OSError as exc:
            raise StorageError(f"Failed writing snapshot namespace={namespace}: {exc}") from exc

    def _read_snapshot(self, namespace: str) -> dict[str, Any] | None:
        try:
            with psycopg.connect(self.database_url, autocommit=True) as conn:  # type: ignore[union-attr]
                with conn.cursor() as cur:
                    cur.execute(
                        f"SELECT payload FROM {self.snapshots_table} WHERE namespace = %s",
                        (namespace,),
                    )
                    row = cur.fetchone()
        except Exception as exc:
            logger.warning(f"Failed reading snapshot namespace={namespace}: {exc}")
            return None

        if not row:
            return None

        payload = row[0]
        if isinstance(payload, dict):
            return payload
        return None

    def _write_snapshot(self, namespace: str, text: str) -> None:
        try:
            with psycopg.connect(self.database_url, autocommit=True) as conn:  # type: ignore[union-attr]
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO {self.snapshots_table} (namespace, payload, updated_at)
                        VALUES (%s, %s::jsonb, NOW())
                        ON CONFLICT (namespace)
                        DO UPDATE SET payload = EXCLUDED.payload, updated_at = NOW()
                        """,
                        (namespace, text),
                    )
        except Exception as exc:
            raise StorageError(f"Failed writing snapshot namespace={namespace}: {exc}") from exc
