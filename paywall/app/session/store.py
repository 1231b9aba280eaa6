"""Durable key/value state kept between paywall sessions."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..plans.models import SubscriptionStatus


class SessionStore(Protocol):
    """Persists the provisioned user id, last known status and last-seen time."""

    def get_user_id(self) -> Optional[str]:
        ...

    def save_user_id(self, user_id: str) -> None:
        ...

    def get_status(self) -> Optional[SubscriptionStatus]:
        ...

    def save_status(self, status: SubscriptionStatus) -> None:
        ...

    def get_last_seen(self) -> Optional[datetime]:
        ...

    def record_last_seen(self, seen_at: datetime) -> None:
        ...


class InMemorySessionStore:
    """Process-local store used by tests and the sandbox."""

    def __init__(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[SubscriptionStatus] = None,
    ) -> None:
        self._user_id = user_id
        self._status = status
        self._last_seen: Optional[datetime] = None

    def get_user_id(self) -> Optional[str]:
        return self._user_id

    def save_user_id(self, user_id: str) -> None:
        self._user_id = user_id

    def get_status(self) -> Optional[SubscriptionStatus]:
        return self._status

    def save_status(self, status: SubscriptionStatus) -> None:
        self._status = status

    def get_last_seen(self) -> Optional[datetime]:
        return self._last_seen

    def record_last_seen(self, seen_at: datetime) -> None:
        self._last_seen = seen_at


def connection_factory_from_config(db_config: Mapping[str, Any]) -> Callable[[], PgConnection]:
    """Return a factory opening new psycopg2 connections with ``db_config``."""

    params = dict(db_config)

    def _connect() -> PgConnection:
        return psycopg2.connect(**params)

    return _connect


@contextmanager
def managed_connection(
    conn: Optional[PgConnection] = None,
    connection_factory: Optional[Callable[[], PgConnection]] = None,
):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    if connection_factory is None:
        raise RuntimeError("A connection or connection factory is required")

    connection = connection_factory()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


class PostgresSessionStore:
    """Session store persisting one row per session key in PostgreSQL.

    Expects a table shaped like::

        CREATE TABLE paywall_session_state (
            session_key TEXT PRIMARY KEY,
            user_id TEXT,
            subscription_status JSONB,
            last_seen_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
    """

    def __init__(
        self,
        session_key: str = "default",
        *,
        conn: Optional[PgConnection] = None,
        connection_factory: Optional[Callable[[], PgConnection]] = None,
    ) -> None:
        self._session_key = session_key
        self._conn = conn
        self._connection_factory = connection_factory

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn, self._connection_factory) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    def _fetch_row(self) -> Optional[dict]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT user_id, subscription_status, last_seen_at
                FROM paywall_session_state
                WHERE session_key = %s
                LIMIT 1
                """,
                (self._session_key,),
            )
            return cursor.fetchone()

    def _upsert(self, column: str, value: Any) -> None:
        # column names come from the fixed set used by this class only
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                INSERT INTO paywall_session_state (session_key, {column})
                VALUES (%(session_key)s, %(value)s)
                ON CONFLICT (session_key) DO UPDATE SET
                    {column} = EXCLUDED.{column},
                    updated_at = NOW()
                """,
                {"session_key": self._session_key, "value": value},
            )

    def get_user_id(self) -> Optional[str]:
        row = self._fetch_row()
        return row.get("user_id") if row else None

    def save_user_id(self, user_id: str) -> None:
        self._upsert("user_id", user_id)

    def get_status(self) -> Optional[SubscriptionStatus]:
        row = self._fetch_row()
        payload = row.get("subscription_status") if row else None
        if not payload:
            return None
        return SubscriptionStatus.model_validate(payload)

    def save_status(self, status: SubscriptionStatus) -> None:
        payload = status.model_dump(mode="json", by_alias=True)
        self._upsert("subscription_status", psycopg2.extras.Json(payload))

    def get_last_seen(self) -> Optional[datetime]:
        row = self._fetch_row()
        return row.get("last_seen_at") if row else None

    def record_last_seen(self, seen_at: datetime) -> None:
        self._upsert("last_seen_at", seen_at)


__all__ = [
    "InMemorySessionStore",
    "PostgresSessionStore",
    "SessionStore",
    "connection_factory_from_config",
    "managed_connection",
]
