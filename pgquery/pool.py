"""Query engine over a shared pool or one pinned connection."""

import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Sequence

import asyncpg

from .config import ConfigLike, PgQueryConfig, load_config
from .exceptions import PgConnectionError, PgError, PgQueryError
from .listener import wait_for_notification
from .sql import Columns, build_delete, build_insert, build_update, build_upsert
from .transaction import Operations, Transaction
from .types import ClientHandle, ConnectionSource, Notification, Pinned, Pooled, Row, TxIsolation

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class PgQuery:
    """Asynchronous query interface for one database target.

    Every call borrows a connection from the pool and returns it before the
    call completes. Child instances created by :meth:`transaction` are pinned
    to one connection instead, and every call on them runs on it.

    Example:
        db = PgQuery({"dsn": "postgresql://localhost/app", "maxPoolSize": 5})
        user_id = await db.insert("users", {"name": "Alice"}, "id")
        row = await db.fetch_one("SELECT * FROM users WHERE id = $1", [user_id])
        await db.close()
    """

    def __init__(
        self,
        config: ConfigLike = None,
        pool: Any = None,
        connector: Optional[Connector] = None,
    ):
        """Initialize the query interface.

        Args:
            config: PgQueryConfig, mapping of config keys, or DSN string.
            pool: Existing pool with async ``acquire()`` / ``release(conn)``.
                Not closed by :meth:`close`. Created lazily from ``config``
                when omitted.
            connector: Async callable opening a dedicated connection from a
                DSN. Defaults to ``asyncpg.connect``.
        """
        self.config: PgQueryConfig = load_config(config)
        self._connector: Connector = connector or asyncpg.connect
        self._source: Optional[ConnectionSource] = Pooled(pool) if pool is not None else None
        self._owned_pool: Any = None
        self._open_lock: Optional[asyncio.Lock] = None

    @property
    def dsn(self) -> str:
        return self.config.dsn

    @property
    def source(self) -> Optional[ConnectionSource]:
        """Current connection source, ``None`` until the pool is opened."""
        return self._source

    @property
    def is_pinned(self) -> bool:
        return isinstance(self._source, Pinned)

    async def __aenter__(self) -> "PgQuery":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Connection acquisition
    # ------------------------------------------------------------------

    def pinned(self, handle: ClientHandle) -> "PgQuery":
        """Create a child sharing this configuration, pinned to ``handle``."""
        child = PgQuery(self.config, connector=self._connector)
        child._source = Pinned(handle)
        return child

    async def open(self) -> ConnectionSource:
        """Create the pool on first use and return the connection source.

        Raises:
            PgConnectionError: If the pool cannot be created.
        """
        if self._source is not None:
            return self._source
        if self._open_lock is None:
            self._open_lock = asyncio.Lock()
        async with self._open_lock:
            if self._source is None:
                logger.debug(
                    f"Creating pool (min={self.config.min_pool_size}, max={self.config.max_pool_size})"
                )
                try:
                    pool = await asyncpg.create_pool(
                        self.config.dsn,
                        min_size=self.config.min_pool_size,
                        max_size=self.config.max_pool_size,
                    )
                except Exception as e:
                    raise PgConnectionError("Could not connect to database", cause=e) from e
                self._owned_pool = pool
                self._source = Pooled(pool)
        return self._source

    async def close(self) -> None:
        """Close the pool if this instance created it."""
        pool, self._owned_pool = self._owned_pool, None
        if pool is None:
            return
        self._source = None
        await pool.close()
        logger.debug("Pool closed")

    async def acquire_connection(self) -> ClientHandle:
        """Get a connection handle from the current source.

        Pinned sources return the pinned connection with a no-op release.

        Raises:
            PgConnectionError: If the pool cannot supply a connection.
        """
        source = await self.open()
        try:
            return await source.acquire()
        except PgError:
            raise
        except Exception as e:
            raise PgConnectionError("Could not connect to database", cause=e) from e

    async def acquire_dedicated_connection(self) -> ClientHandle:
        """Open a new non-pooled connection; releasing it closes it.

        Raises:
            PgConnectionError: On connect failure.
        """
        try:
            connection = await self._connector(self.config.dsn)
        except Exception as e:
            raise PgConnectionError("Could not connect to database", cause=e) from e
        logger.debug("Opened dedicated connection")
        return ClientHandle(connection, connection.close)

    # ------------------------------------------------------------------
    # Query execution
    # ------------------------------------------------------------------

    async def _run(self, method: str, sql: str, params: Optional[Sequence[Any]]) -> Any:
        args = tuple(params or ())
        handle = await self.acquire_connection()
        try:
            return await getattr(handle.connection, method)(sql, *args)
        except PgError:
            raise
        except Exception as e:
            raise PgQueryError("Query error", sql, args, cause=e) from e
        finally:
            await handle.release()

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Row]:
        """Execute a query and return the first row, or None if there are no rows.

        Raises:
            PgConnectionError: If no connection can be acquired.
            PgQueryError: On query execution error.
        """
        record = await self._run("fetchrow", sql, params)
        return Row.from_record(record) if record is not None else None

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Row]:
        """Execute a query and return all rows in result-set order."""
        records = await self._run("fetch", sql, params)
        return [Row.from_record(record) for record in records or []]

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> str:
        """Execute a statement, discarding rows.

        Returns:
            The command status tag, e.g. ``"UPDATE 3"``.
        """
        return await self._run("execute", sql, params)

    async def iter_rows(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> AsyncIterator[Row]:
        """Stream rows one at a time through a server-side cursor.

        The next row is not fetched until the consumer asks for it. The
        connection is released when iteration ends or the generator is
        closed; consumers that stop early should ``aclose()`` it.

        Raises:
            PgQueryError: If the stream reports an error. Rows already
                yielded stay delivered.
        """
        args = tuple(params or ())
        handle = await self.acquire_connection()
        records = _cursor(handle.connection, sql, args, self.config.stream_prefetch)
        try:
            async for record in records:
                yield Row.from_record(record)
        except PgError:
            raise
        except Exception as e:
            raise PgQueryError("Query error", sql, args, cause=e) from e
        finally:
            try:
                await records.aclose()
            finally:
                await handle.release()

    async def each_row(
        self,
        sql: str,
        params: Optional[Sequence[Any]],
        on_row: Callable[[Row], Any],
    ) -> int:
        """Call ``on_row`` for every row, in order.

        Awaitable results of ``on_row`` are awaited before the next row is
        fetched.

        Returns:
            Number of rows delivered.
        """
        count = 0
        rows = self.iter_rows(sql, params)
        try:
            async for row in rows:
                result = on_row(row)
                if inspect.isawaitable(result):
                    await result
                count += 1
        finally:
            await rows.aclose()
        return count

    # ------------------------------------------------------------------
    # Write helpers
    # ------------------------------------------------------------------

    async def insert(self, table: str, values: Columns, returning: Optional[str] = None) -> Any:
        """Insert one row.

        Returns:
            The ``returning`` column of the new row if requested, otherwise
            the command status tag.

        Raises:
            PgQueryError: On execution error, or if RETURNING yields no row.
        """
        statement = build_insert(table, values, returning)
        if not returning:
            return await self.execute(statement.sql, statement.params)
        row = await self.fetch_one(statement.sql, statement.params)
        if row is None:
            raise PgQueryError(
                "Insert returned no row",
                statement.sql,
                statement.params,
                detail=f"table {table}",
            )
        return row[returning]

    async def update(self, table: str, values: Columns, conditions: Columns) -> str:
        """Update rows matching every condition.

        Raises:
            PgBuilderError: If ``conditions`` is empty.
        """
        statement = build_update(table, values, conditions)
        return await self.execute(statement.sql, statement.params)

    async def upsert(self, table: str, values: Columns, conflict_keys: Columns) -> str:
        """Insert a row, or update its value columns on a key conflict."""
        statement = build_upsert(table, values, conflict_keys)
        return await self.execute(statement.sql, statement.params)

    async def remove(self, table: str, conditions: Columns = None) -> str:
        """Delete rows matching every condition; all rows when none are given."""
        statement = build_delete(table, conditions)
        return await self.execute(statement.sql, statement.params)

    # ------------------------------------------------------------------
    # Transactions and notifications
    # ------------------------------------------------------------------

    async def transaction(
        self, sequence: Operations, isolation: Optional[TxIsolation] = None
    ) -> Any:
        """Run operations in order inside one transaction.

        Each operation receives the transactional PgQuery. Commits when all
        succeed, otherwise rolls back and re-raises. Called on a pinned
        PgQuery, the operations run inside a SAVEPOINT of the open
        transaction instead.

        Returns:
            Result of the last operation.
        """
        return await Transaction(self, isolation).run(sequence)

    @asynccontextmanager
    async def begin(self, isolation: Optional[TxIsolation] = None) -> AsyncIterator["PgQuery"]:
        """Transaction scope yielding the pinned PgQuery.

        Usage:
            async with db.begin() as tx:
                await tx.insert("orders", {"item_id": 1})
        """
        tx = Transaction(self, isolation)
        query = await tx.start()
        try:
            yield query
        except BaseException as e:
            await tx.fail(e)
            raise
        else:
            await tx.finish()

    async def listen(self, channel: str) -> Notification:
        """Wait on a dedicated connection for a notification on ``channel``."""
        return await wait_for_notification(self, channel)

    async def notify(self, channel: str, payload: Optional[str] = None) -> None:
        """Send a notification on ``channel``; a missing payload is sent empty."""
        await self.execute("SELECT pg_notify($1, $2)", [channel, payload])


async def _cursor(
    connection: Any, sql: str, args: Sequence[Any], prefetch: int
) -> AsyncIterator[Any]:
    # Server-side cursors only exist inside a transaction.
    if connection.is_in_transaction():
        async for record in connection.cursor(sql, *args, prefetch=prefetch):
            yield record
    else:
        async with connection.transaction():
            async for record in connection.cursor(sql, *args, prefetch=prefetch):
                yield record
