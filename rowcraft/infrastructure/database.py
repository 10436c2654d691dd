"""Database Adapter — async SQLAlchemy engine behind the DatabaseAdapter Protocol.

Invariants:
    - Every SQLAlchemy exception is mapped to AdapterError (core/errors.py)
      with the attempted SQL attached, after being logged
    - Each adapter-level query()/execute() runs in its own short transaction
      (engine.begin()), committed on success and rolled back on failure
    - params[i] binds to placeholder(i + 1) == ":p{i+1}"
    - A transaction handle owns one connection until commit() or rollback()

Design Decisions:
    - SQLAlchemy textual SQL over a raw driver: one adapter serves asyncpg and
      aiosqlite, and the dialect's identifier preparer does the quoting
    - Named :pN binds: text() only understands named parameters, and numbering
      them keeps the renderer's positional contract intact
    - pool_pre_ping for non-SQLite URLs: stale connection detection
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Sequence

from sqlalchemy import inspect, text
from sqlalchemy.exc import (
    IntegrityError, OperationalError, DBAPIError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncConnection, AsyncEngine, AsyncTransaction, create_async_engine,
)

from rowcraft.config import Settings, get_settings
from rowcraft.core.adapter_protocols import ExecuteResult, QueryResult
from rowcraft.core.errors import AdapterError, ConstructionError

logger = logging.getLogger(__name__)

_LASTROWID_DIALECTS = frozenset({"sqlite", "mysql", "mariadb"})


def _bind(params: Sequence[Any] | None) -> dict[str, Any]:
    return {f"p{i}": value for i, value in enumerate(params or (), start=1)}


@asynccontextmanager
async def _translate_errors(
    operation: str, sql: str, params: Sequence[Any] | None,
) -> AsyncGenerator[None, None]:
    """Map SQLAlchemy exceptions to AdapterError with the SQL attached."""
    bound = list(params or ())
    extra = {"sql": sql, "operation": operation, "error_code": "ADAPTER_ERROR"}
    try:
        yield
    except IntegrityError as e:
        logger.error(f"DB integrity error: {e}", extra=extra)
        raise AdapterError(
            f"Integrity constraint violated: {e.orig}", operation, sql, bound,
        ) from e
    except OperationalError as e:
        logger.error(f"DB operational error: {e}", extra=extra)
        raise AdapterError(
            f"Connection or operational error: {e.orig}", operation, sql, bound,
        ) from e
    except DBAPIError as e:
        logger.error(f"DB driver error: {e}", extra=extra)
        raise AdapterError(
            f"Database driver error: {e.orig}", operation, sql, bound,
        ) from e
    except SQLAlchemyError as e:
        logger.error(f"SQLAlchemy error: {e}", extra=extra)
        raise AdapterError(
            f"Database operation failed: {e}", operation, sql, bound,
        ) from e


async def _query_on(
    conn: AsyncConnection, sql: str, params: Sequence[Any] | None,
) -> QueryResult:
    result = await conn.execute(text(sql), _bind(params))
    if not result.returns_rows:
        return QueryResult(rows=[], row_count=max(result.rowcount, 0))
    rows = [dict(row._mapping) for row in result]
    return QueryResult(rows=rows, row_count=len(rows))


async def _execute_on(
    conn: AsyncConnection, sql: str, params: Sequence[Any] | None,
) -> ExecuteResult:
    result = await conn.execute(text(sql), _bind(params))
    insert_id = None
    if conn.dialect.name in _LASTROWID_DIALECTS:
        insert_id = result.lastrowid
    return ExecuteResult(row_count=max(result.rowcount, 0), insert_id=insert_id)


class SQLAlchemyTransaction:
    """Transaction handle bound to one connection; same query/execute contract."""

    def __init__(
        self,
        adapter: "SQLAlchemyAdapter",
        connection: AsyncConnection,
        transaction: AsyncTransaction,
    ):
        self._adapter = adapter
        self._connection = connection
        self._transaction = transaction

    def escape_identifier(self, name: str) -> str:
        return self._adapter.escape_identifier(name)

    def placeholder(self, index: int) -> str:
        return self._adapter.placeholder(index)

    async def query(
        self, sql: str, params: Sequence[Any] | None = None,
    ) -> QueryResult:
        async with _translate_errors("query", sql, params):
            return await _query_on(self._connection, sql, params)

    async def execute(
        self, sql: str, params: Sequence[Any] | None = None,
    ) -> ExecuteResult:
        async with _translate_errors("execute", sql, params):
            return await _execute_on(self._connection, sql, params)

    async def commit(self) -> None:
        try:
            async with _translate_errors("commit", "COMMIT", None):
                await self._transaction.commit()
        finally:
            await self._connection.close()

    async def rollback(self) -> None:
        try:
            async with _translate_errors("rollback", "ROLLBACK", None):
                await self._transaction.rollback()
        finally:
            await self._connection.close()

    def is_active(self) -> bool:
        return self._transaction.is_active


class SQLAlchemyAdapter:
    """DatabaseAdapter over an async SQLAlchemy engine."""

    def __init__(
        self,
        database_url: str | None = None,
        echo: bool = False,
        engine: AsyncEngine | None = None,
        **engine_kwargs: Any,
    ):
        if engine is None:
            if not database_url:
                raise ConstructionError(
                    "SQLAlchemyAdapter needs a database_url or an engine",
                )
            engine = create_async_engine(database_url, echo=echo, **engine_kwargs)
        self.engine: AsyncEngine = engine

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def escape_identifier(self, name: str) -> str:
        return self.engine.dialect.identifier_preparer.quote_identifier(name)

    def placeholder(self, index: int) -> str:
        return f":p{index}"

    async def query(
        self, sql: str, params: Sequence[Any] | None = None,
    ) -> QueryResult:
        async with _translate_errors("query", sql, params):
            async with self.engine.begin() as conn:
                return await _query_on(conn, sql, params)

    async def execute(
        self, sql: str, params: Sequence[Any] | None = None,
    ) -> ExecuteResult:
        async with _translate_errors("execute", sql, params):
            async with self.engine.begin() as conn:
                return await _execute_on(conn, sql, params)

    async def begin_transaction(self) -> SQLAlchemyTransaction:
        async with _translate_errors("begin", "BEGIN", None):
            connection = await self.engine.connect()
            try:
                transaction = await connection.begin()
            except SQLAlchemyError:
                await connection.close()
                raise
        return SQLAlchemyTransaction(self, connection, transaction)

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[SQLAlchemyTransaction, None]:
        """Commit on success, roll back on any exception."""
        tx = await self.begin_transaction()
        try:
            yield tx
        except BaseException:
            if tx.is_active():
                await tx.rollback()
            raise
        if tx.is_active():
            await tx.commit()

    # ─── Maintenance ─────────────────────────────────────────────

    async def ping(self) -> bool:
        """Check database connectivity (for readiness probes)."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def table_exists(self, name: str) -> bool:
        async with _translate_errors("inspect", f"has_table({name})", None):
            async with self.engine.connect() as conn:
                return await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).has_table(name),
                )

    async def get_tables(self) -> list[str]:
        async with _translate_errors("inspect", "get_table_names()", None):
            async with self.engine.connect() as conn:
                names = await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).get_table_names(),
                )
        return sorted(names)

    async def truncate(self, name: str) -> None:
        """Remove every row; SQLite has no TRUNCATE, so it gets a bare DELETE."""
        table = self.escape_identifier(name)
        if self.dialect_name == "sqlite":
            await self.execute(f"DELETE FROM {table}")
        else:
            await self.execute(f"TRUNCATE TABLE {table}")

    async def drop_table(self, name: str) -> None:
        await self.execute(f"DROP TABLE IF EXISTS {self.escape_identifier(name)}")

    async def dispose(self) -> None:
        await self.engine.dispose()


def create_adapter(settings: Settings | None = None) -> SQLAlchemyAdapter:
    """Build the adapter described by settings (get_settings() by default)."""
    settings = settings or get_settings()
    engine_kwargs: dict[str, Any] = {}
    if not settings.database_url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
    logger.info(
        f"Creating database adapter for {settings.database_url.split('://', 1)[0]}",
    )
    return SQLAlchemyAdapter(
        settings.database_url, echo=settings.database_echo, **engine_kwargs,
    )
