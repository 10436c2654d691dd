"""Statement Execution — the single path every ORM statement takes to the adapter.

Invariants:
    - Every statement is logged (DEBUG, or INFO when settings.log_sql is on)
    - AdapterError passes through untouched
    - Any other adapter failure is re-raised as AdapterError with the SQL attached
    - No retries: one call, one attempt
"""

import logging
from typing import Any, Sequence

from rowcraft.config import get_settings
from rowcraft.core.adapter_protocols import (
    DatabaseAdapter, ExecuteResult, QueryResult, Transaction,
)
from rowcraft.core.errors import AdapterError, ErrorContext

logger = logging.getLogger(__name__)


def _log_statement(sql: str, model: str | None) -> None:
    level = logging.INFO if get_settings().log_sql else logging.DEBUG
    logger.log(level, "SQL: %s", sql, extra={"sql": sql, "model": model})


async def fetch_rows(
    adapter: DatabaseAdapter | Transaction,
    sql: str,
    params: Sequence[Any],
    model: str | None = None,
) -> QueryResult:
    """Run a row-returning statement."""
    _log_statement(sql, model)
    try:
        return await adapter.query(sql, list(params))
    except AdapterError:
        raise
    except Exception as e:
        logger.error(
            f"Query failed: {e}",
            extra={"sql": sql, "model": model, "error_code": "ADAPTER_ERROR"},
        )
        raise AdapterError(
            str(e), "query", sql, list(params), ErrorContext(model=model),
        ) from e


async def execute_statement(
    adapter: DatabaseAdapter | Transaction,
    sql: str,
    params: Sequence[Any],
    model: str | None = None,
) -> ExecuteResult:
    """Run a statement that returns no rows."""
    _log_statement(sql, model)
    try:
        return await adapter.execute(sql, list(params))
    except AdapterError:
        raise
    except Exception as e:
        logger.error(
            f"Execute failed: {e}",
            extra={"sql": sql, "model": model, "error_code": "ADAPTER_ERROR"},
        )
        raise AdapterError(
            str(e), "execute", sql, list(params), ErrorContext(model=model),
        ) from e
