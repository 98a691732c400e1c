"""SQLite store gateway: pooled connections, parameterized queries, migrations."""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Mapping, Sequence

import aiosqlite
from loguru import logger

from quakebridge.config import Settings, get_settings
from quakebridge.observability.metrics import DB_ERRORS_TOTAL


MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# Queued on close so callers waiting for a connection wake up and fail.
_POOL_CLOSED = object()


class DataAccessError(Exception):
    """Raised for any driver/pool failure. `original` is the driver error."""

    def __init__(self, operation: str, original: BaseException | None = None):
        self.operation = operation
        self.original = original
        detail = f"{type(original).__name__}: {original}" if original is not None else "unavailable"
        super().__init__(f"{operation} failed ({detail})")


def quote_identifier(name: str) -> str:
    return '"' + str(name).replace('"', '""') + '"'


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _configure_connection(db: aiosqlite.Connection, *, settings: Settings) -> None:
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL;")
    await db.execute("PRAGMA synchronous=NORMAL;")
    await db.execute(f"PRAGMA busy_timeout={max(100, int(settings.sqlite_busy_timeout_ms))};")


class StoreGateway:
    """Owns every connection to the telemetry database.

    Connections are opened lazily up to `db_pool_size` and recycled through an
    asyncio queue; callers waiting for a free connection suspend without
    blocking the loop. Each call is a single attempt: there is no retry here.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._idle: asyncio.Queue[Any] | None = None
        self._all: list[aiosqlite.Connection] = []
        self._opened = 0
        self._closed = False

    @property
    def pool_size(self) -> int:
        return max(1, int(self.settings.db_pool_size))

    async def open(self) -> None:
        """Create the pool and apply pending schema migrations."""
        self._closed = False
        self._idle = asyncio.Queue()
        self.settings.db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self.connection() as db:
            await apply_migrations(db)

    async def close(self) -> None:
        self._closed = True
        idle, self._idle = self._idle, None
        if idle is not None:
            idle.put_nowait(_POOL_CLOSED)
        conns, self._all = self._all, []
        self._opened = 0
        for db in conns:
            try:
                await db.close()
            except (sqlite3.Error, ValueError) as exc:
                logger.warning("Error closing database connection: {}", exc)

    async def _connect(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(str(self.settings.db_path))
        try:
            await _configure_connection(db, settings=self.settings)
        except Exception:
            await db.close()
            raise
        return db

    async def _checkout(self) -> aiosqlite.Connection:
        if self._closed or self._idle is None:
            raise DataAccessError("checkout", RuntimeError("store gateway is not open"))
        if self._idle.empty() and self._opened < self.pool_size:
            self._opened += 1
            try:
                db = await self._connect()
            except (sqlite3.Error, OSError) as exc:
                self._opened -= 1
                DB_ERRORS_TOTAL.labels(operation="connect").inc()
                raise DataAccessError("connect", exc) from exc
            self._all.append(db)
            return db
        idle = self._idle
        db = await idle.get()
        if db is _POOL_CLOSED:
            idle.put_nowait(_POOL_CLOSED)
            raise DataAccessError("checkout", RuntimeError("store gateway was closed"))
        return db

    def _checkin(self, db: aiosqlite.Connection) -> None:
        if self._idle is not None and db in self._all:
            self._idle.put_nowait(db)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        db = await self._checkout()
        try:
            yield db
        finally:
            self._checkin(db)

    async def query(self, sql: str, params: Sequence[Any] | Mapping[str, Any] = ()) -> list[dict[str, Any]]:
        """Run a read statement and return rows as dicts."""
        async with self.connection() as db:
            try:
                cur = await db.execute(sql, params)
                rows = await cur.fetchall()
                await cur.close()
            except (sqlite3.Error, ValueError) as exc:
                # aiosqlite raises ValueError once its connection is closed.
                DB_ERRORS_TOTAL.labels(operation="query").inc()
                raise DataAccessError("query", exc) from exc
        return [dict(row) for row in rows]

    async def insert(self, table: str, fields: Mapping[str, Any]) -> int:
        """Insert one row and return its generated id."""
        if not fields:
            raise ValueError("insert requires at least one field")
        columns = list(fields.keys())
        sql = "INSERT INTO {} ({}) VALUES ({})".format(
            quote_identifier(table),
            ", ".join(quote_identifier(c) for c in columns),
            ", ".join("?" for _ in columns),
        )
        async with self.connection() as db:
            try:
                cur = await db.execute(sql, [fields[c] for c in columns])
                row_id = int(cur.lastrowid)
                await cur.close()
                await db.commit()
            except (sqlite3.Error, ValueError) as exc:
                DB_ERRORS_TOTAL.labels(operation="insert").inc()
                try:
                    await db.rollback()
                except (sqlite3.Error, ValueError):
                    logger.warning("Rollback failed after insert error on {}", table)
                raise DataAccessError("insert", exc) from exc
        return row_id

    async def now(self) -> str:
        rows = await self.query("SELECT datetime('now') AS now")
        return str(rows[0]["now"]) if rows else ""


async def apply_migrations(db: aiosqlite.Connection, *, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply every `*.sql` file not yet recorded in schema_migrations."""
    migrations = sorted(p for p in migrations_dir.glob("*.sql") if p.is_file())

    await db.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (name TEXT PRIMARY KEY, applied_at TEXT NOT NULL)"
    )
    await db.commit()

    cur = await db.execute("SELECT name FROM schema_migrations")
    applied = {str(row["name"]) for row in await cur.fetchall()}

    newly_applied: list[str] = []
    for path in migrations:
        name = path.name
        if name in applied:
            continue
        await db.executescript(path.read_text(encoding="utf-8"))
        await db.execute(
            "INSERT INTO schema_migrations(name, applied_at) VALUES (?, ?)",
            (name, _utcnow_iso()),
        )
        await db.commit()
        newly_applied.append(name)
        logger.info("Applied migration {}", name)
    return newly_applied


async def init_db(*, settings: Settings | None = None) -> dict:
    gateway = StoreGateway(settings)
    try:
        await gateway.open()
        tables = await gateway.query(
            "SELECT name FROM sqlite_master WHERE type='table' "
            "AND name NOT IN ('schema_migrations', 'sqlite_sequence') ORDER BY name"
        )
    finally:
        await gateway.close()
    return {"db_path": str(gateway.settings.db_path), "tables": [t["name"] for t in tables]}
