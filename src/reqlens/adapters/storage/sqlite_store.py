"""SQLite backing store for the users/orders demo tables.

SQLite's ``EXPLAIN QUERY PLAN`` output carries no ``cost=`` figures, so
queries measured against this store always report a cost of 0.0.
"""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

import aiosqlite

from reqlens.core.errors import QueryError
from reqlens.core.models import QueryResult, Scalar

MEMORY = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name VARCHAR(100),
    email VARCHAR(100) UNIQUE,
    age INTEGER
);
CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    product VARCHAR(100),
    price INTEGER
);
CREATE INDEX IF NOT EXISTS idx_users_age ON users(age);
"""


class SQLiteBackingStore:
    """BackingStorePort over aiosqlite.

    ``execute`` is the shared query capability handed to the request
    pipeline. Each call runs in its own transaction: committed when the
    statement succeeds, rolled back when it fails. File databases open a
    connection per statement. A ``:memory:`` database lives only as long as
    its connection, so that one connection is kept until ``close``.
    """

    def __init__(self, db_path: str = MEMORY) -> None:
        self.db_path = db_path
        self._ready = False
        self._init_lock: asyncio.Lock | None = None
        self._memory_conn: aiosqlite.Connection | None = None

    @property
    def ready(self) -> bool:
        return self._ready

    async def _connect(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self.db_path)
        conn.row_factory = aiosqlite.Row
        return conn

    async def initialize(self) -> None:
        """Create the schema once; concurrent callers wait for the first.

        Raises:
            QueryError: If the database cannot be opened or the schema fails.
        """
        if self._ready:
            return
        # Created lazily so the lock binds to the running loop
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        async with self._init_lock:
            if self._ready:
                return
            try:
                if self.db_path == MEMORY:
                    conn = await self._connect()
                    self._memory_conn = conn
                    await conn.executescript(_SCHEMA)
                else:
                    async with aiosqlite.connect(self.db_path) as db:
                        await db.execute("PRAGMA journal_mode=WAL")
                        await db.executescript(_SCHEMA)
            except aiosqlite.Error as exc:
                await self.close()
                raise QueryError(f"Schema initialization failed: {exc}") from exc
            self._ready = True

    @asynccontextmanager
    async def _transaction(self, text: str) -> AsyncIterator[aiosqlite.Connection]:
        await self.initialize()
        db = self._memory_conn
        if db is None:
            try:
                db = await self._connect()
            except aiosqlite.Error as exc:
                raise QueryError(str(exc), text) from exc
        try:
            yield db
            await db.commit()
        except aiosqlite.Error as exc:
            # The statement error is what the caller needs to see
            with contextlib.suppress(aiosqlite.Error):
                await db.rollback()
            raise QueryError(str(exc), text) from exc
        finally:
            if db is not self._memory_conn:
                await db.close()

    async def execute(
        self, text: str, params: Sequence[Scalar] | None = None
    ) -> QueryResult:
        """Run one statement.

        Returns:
            Rows as dicts; ``row_count`` is the number of rows returned for
            statements that produce rows, otherwise the affected row count.

        Raises:
            QueryError: If SQLite rejects or fails the statement.
        """
        async with self._transaction(text) as db:
            async with db.execute(text, tuple(params or ())) as cursor:
                fetched = await cursor.fetchall()
                produces_rows = cursor.description is not None
                affected = cursor.rowcount

        rows = [dict(row) for row in fetched]
        row_count = len(rows) if produces_rows else max(affected, 0)
        return QueryResult(rows=rows, row_count=row_count)

    async def close(self) -> None:
        """Drop the in-memory connection; the next call starts a fresh schema."""
        if self._memory_conn is not None:
            conn, self._memory_conn = self._memory_conn, None
            await conn.close()
        self._ready = False
