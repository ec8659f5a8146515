"""SQLite FTS5 postal code store on SQLAlchemy, with retries on lock contention."""

from __future__ import annotations

import re
import threading
from pathlib import Path
from types import TracebackType
from typing import Any, Callable, Sequence, TypeVar

from sqlalchemy import Column, Engine, MetaData, Table, Text, create_engine, event, insert, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from geopostal.common.config_loader import RetryConfig
from geopostal.common.errors import ConfigError, StoreQueryError, StoreWriteError
from geopostal.common.models import Record, ScoredRecord

T = TypeVar("T")

TABLE_NAME = "postal_codes"
RECORD_FIELDS = ("country_code", "postal_code", "place_name", "admin_name1", "admin_name2")

metadata = MetaData()
# Column view of the FTS5 virtual table; created by DDL below, not metadata.create_all.
postal_codes = Table(TABLE_NAME, metadata, *(Column(name, Text) for name in RECORD_FIELDS))

_CREATE_TABLE_SQL = text(
    f"CREATE VIRTUAL TABLE IF NOT EXISTS {TABLE_NAME} USING fts5({', '.join(RECORD_FIELDS)})"
)
_SEARCH_SQL = text(
    f"SELECT {', '.join(RECORD_FIELDS)}, -bm25({TABLE_NAME}) AS score "
    f"FROM {TABLE_NAME} WHERE {TABLE_NAME} MATCH :match "
    f"ORDER BY bm25({TABLE_NAME}), rowid "
    "LIMIT :limit"
)
_COUNT_SQL = text(f"SELECT count(*) FROM {TABLE_NAME}")

_TOKEN_RE = re.compile(r"\w+")

# Milliseconds SQLite waits on a locked database before raising.
SQLITE_BUSY_TIMEOUT_MS = 30000


def match_expression(query: str) -> str | None:
    """Turn free text into an FTS5 expression matching any of its words.

    Each word is quoted so user punctuation never reaches the FTS5 parser.
    Returns None when the text has no searchable words.
    """
    tokens = _TOKEN_RE.findall(query or "")
    if not tokens:
        return None
    return " OR ".join(f'"{token}"' for token in tokens)


def _is_memory_database(database: str | None) -> bool:
    return database in (None, "", ":memory:")


def _is_transient(exc: BaseException) -> bool:
    if not isinstance(exc, OperationalError):
        return False
    message = str(exc.orig).lower()
    return "locked" in message or "busy" in message


def _set_sqlite_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute("PRAGMA synchronous = NORMAL")
    cursor.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


def create_store_engine(url: str) -> Engine:
    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite"):
        raise ConfigError(f"Unsupported store url {url!r}: only sqlite is supported")

    if _is_memory_database(parsed.database):
        # One shared connection, otherwise every pooled connection gets its own empty database.
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, connect_args={"check_same_thread": False})

    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


class SqlStore:
    def __init__(self, url: str, *, retry: RetryConfig | None = None) -> None:
        self.url = url
        self.retry = retry or RetryConfig()
        self.engine = create_store_engine(url)
        # SQLite allows a single writer; in-memory databases share one connection.
        self.lock = threading.RLock()

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self) -> "SqlStore":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _execute(self, fn: Callable[[Any], T]) -> T:
        @retry(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry.multiplier,
                max=self.retry.max_wait,
                jitter=self.retry.multiplier,
            ),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        def _wrapped() -> T:
            with self.lock, self.engine.begin() as conn:
                return fn(conn)

        return _wrapped()

    def create_schema(self) -> None:
        try:
            self._execute(lambda conn: conn.execute(_CREATE_TABLE_SQL))
        except SQLAlchemyError as exc:
            raise StoreWriteError(f"Unable to create {TABLE_NAME} table") from exc

    def insert_many(self, records: Sequence[Record]) -> int:
        rows = [record.to_dict() for record in records]
        if not rows:
            return 0
        try:
            self._execute(lambda conn: conn.execute(insert(postal_codes), rows))
        except SQLAlchemyError as exc:
            raise StoreWriteError(f"Unable to insert {len(rows)} postal codes") from exc
        return len(rows)

    def insert_one(self, record: Record) -> None:
        try:
            self._execute(lambda conn: conn.execute(insert(postal_codes), record.to_dict()))
        except SQLAlchemyError as exc:
            raise StoreWriteError("Unable to insert postal code") from exc

    def search(self, query: str, limit: int) -> list[ScoredRecord]:
        match = match_expression(query)
        if match is None:
            return []
        try:
            rows = self._execute(
                lambda conn: conn.execute(_SEARCH_SQL, {"match": match, "limit": limit}).all()
            )
        except SQLAlchemyError as exc:
            raise StoreQueryError(f"Search failed for query {query!r}") from exc

        results = []
        for row in rows:
            values = row._mapping
            record = Record(**{name: values[name] or "" for name in RECORD_FIELDS})
            results.append(ScoredRecord(record=record, score=float(values["score"])))
        return results

    def count(self) -> int:
        try:
            return int(self._execute(lambda conn: conn.execute(_COUNT_SQL).scalar_one()))
        except SQLAlchemyError as exc:
            raise StoreQueryError(f"Unable to count {TABLE_NAME}") from exc
