# budget_auth/db/database.py
"""Persistence adapter: one async query interface over SQLite and PostgreSQL.

Statements are SQLAlchemy Core constructs or ``text()`` with ``:name``
parameters; the dialect compiles them to the driver's paramstyle. Blocking
driver calls run in Starlette's threadpool.
"""
from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import IntegrityError, InvalidRequestError, SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from budget_auth.core.config import Settings
from budget_auth.db.base import Base

logger = logging.getLogger(__name__)

BOOLEAN_COLUMNS = frozenset({"revoked", "is_active", "client_secret_hashed"})

Params = Optional[Mapping[str, Any]]


class StorageError(Exception):
    """Backend failure that is not a uniqueness conflict."""


class DuplicateKeyError(StorageError):
    """Insert hit a primary-key or unique constraint."""


@dataclass
class ExecResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    affected_count: int = 0
    inserted_id: Any = None


def normalize_url(url: str) -> str:
    if url and url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url and url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _normalize_value(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in BOOLEAN_COLUMNS:
        return bool(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return value


def normalize_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: _normalize_value(key, value) for key, value in row.items()}


class Database(ABC):
    """Uniform async query surface; concrete classes differ only in dialect details."""

    backend: str = "abstract"

    # (table, column) pairs added to databases created before the column existed
    ADDITIVE_COLUMNS: Tuple[Tuple[str, str], ...] = (
        ("clients", "client_secret_hashed"),
        ("users", "role"),
        ("users", "scopes"),
        ("users", "updated_at"),
    )

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._ready = False
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------ schema
    @abstractmethod
    def _column_exists(self, conn: Connection, table: str, column: str) -> bool:
        ...

    @abstractmethod
    def _column_ddl(self, column: str) -> str:
        ...

    @abstractmethod
    def _is_duplicate(self, exc: IntegrityError) -> bool:
        ...

    def _initialize(self) -> None:
        Base.metadata.create_all(self.engine)
        self._apply_additive_migrations()

    def _apply_additive_migrations(self) -> None:
        for table, column in self.ADDITIVE_COLUMNS:
            try:
                with self.engine.begin() as conn:
                    if self._column_exists(conn, table, column):
                        continue
                    conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {self._column_ddl(column)}"))
                    logger.info("Added column %s.%s", table, column)
            except SQLAlchemyError as exc:
                logger.warning("Could not add column %s.%s: %s", table, column, exc)

    async def ready(self) -> None:
        if self._ready:
            return
        async with self._init_lock:
            if self._ready:
                return
            await run_in_threadpool(self._initialize)
            self._ready = True
            logger.info("%s database ready", self.backend)

    # ------------------------------------------------------------------ queries
    def _execute_sync(self, statement: Any, params: Params) -> ExecResult:
        if isinstance(statement, str):
            statement = text(statement)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(statement, dict(params) if params else None)
                if result.returns_rows:
                    rows = [normalize_row(r._mapping) for r in result]
                    affected = len(rows)
                else:
                    rows = []
                    affected = max(result.rowcount or 0, 0)
                inserted_id = None
                if getattr(result.context, "isinsert", False) and not result.returns_rows:
                    try:
                        pk = result.inserted_primary_key
                        inserted_id = pk[0] if pk else None
                    except InvalidRequestError:
                        inserted_id = None
                return ExecResult(rows=rows, affected_count=affected, inserted_id=inserted_id)
        except IntegrityError as exc:
            if self._is_duplicate(exc):
                raise DuplicateKeyError(str(exc.orig)) from exc
            raise StorageError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc

    async def execute(self, statement: Any, params: Params = None) -> ExecResult:
        await self.ready()
        return await run_in_threadpool(self._execute_sync, statement, params)

    async def query_one(self, statement: Any, params: Params = None) -> Optional[Dict[str, Any]]:
        result = await self.execute(statement, params)
        return result.rows[0] if result.rows else None

    async def query_many(self, statement: Any, params: Params = None) -> List[Dict[str, Any]]:
        result = await self.execute(statement, params)
        return result.rows

    async def dispose(self) -> None:
        await run_in_threadpool(self.engine.dispose)
        self._ready = False


class SqliteDatabase(Database):
    backend = "sqlite"

    _DDL = {
        "client_secret_hashed": "BOOLEAN DEFAULT 0",
        "role": "VARCHAR(32) DEFAULT 'user'",
        "scopes": "TEXT DEFAULT 'api'",
        "updated_at": "DATETIME",
    }

    def __init__(self, path: str) -> None:
        self.path = path
        if path != ":memory:":
            directory = os.path.dirname(os.path.abspath(path))
            os.makedirs(directory, exist_ok=True)
        engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})
        super().__init__(engine)

    def _column_exists(self, conn: Connection, table: str, column: str) -> bool:
        rows = conn.execute(text(f"PRAGMA table_info({table})")).fetchall()
        return any(row[1] == column for row in rows)

    def _column_ddl(self, column: str) -> str:
        return self._DDL[column]

    def _is_duplicate(self, exc: IntegrityError) -> bool:
        message = str(exc.orig).lower()
        return "unique constraint failed" in message or "primary key" in message


class PostgresDatabase(Database):
    backend = "postgres"

    _DDL = {
        "client_secret_hashed": "BOOLEAN DEFAULT FALSE",
        "role": "VARCHAR(32) DEFAULT 'user'",
        "scopes": "TEXT DEFAULT 'api'",
        "updated_at": "TIMESTAMP WITH TIME ZONE",
    }

    def __init__(self, url: str | URL) -> None:
        if isinstance(url, str):
            url = normalize_url(url)
        super().__init__(create_engine(url, pool_pre_ping=True))

    def _column_exists(self, conn: Connection, table: str, column: str) -> bool:
        row = conn.execute(
            text(
                "SELECT 1 FROM information_schema.columns "
                "WHERE table_schema = current_schema() AND table_name = :table AND column_name = :column"
            ),
            {"table": table, "column": column},
        ).first()
        return row is not None

    def _column_ddl(self, column: str) -> str:
        return self._DDL[column]

    def _is_duplicate(self, exc: IntegrityError) -> bool:
        return getattr(exc.orig, "sqlstate", None) == "23505"


def postgres_url(settings: Settings) -> str | URL:
    if settings.POSTGRES_URL:
        return settings.POSTGRES_URL
    return URL.create(
        "postgresql+psycopg",
        username=settings.POSTGRES_USER,
        password=settings.POSTGRES_PASSWORD,
        host=settings.POSTGRES_HOST,
        port=settings.POSTGRES_PORT,
        database=settings.POSTGRES_DB,
    )


def create_database(settings: Settings) -> Database:
    if settings.postgres_configured():
        logger.info("Using PostgreSQL backend")
        return PostgresDatabase(postgres_url(settings))
    logger.info("Using SQLite backend at %s", settings.AUTH_DB_PATH)
    return SqliteDatabase(settings.AUTH_DB_PATH)
