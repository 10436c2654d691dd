"""Boundary Protocols — the capability set the ORM consumes from a database adapter.

Invariants:
    - Core and orm NEVER import a concrete adapter, only these Protocols
    - params are positional; params[i] binds to placeholder(i + 1)
    - Adapters raise AdapterError (core/errors.py) with the SQL attached

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - placeholder(index) belongs to the adapter: `$1`, `?` and `:p1` are all
      dialect conventions the renderer must not hard-code
"""

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence


@dataclass
class QueryResult:
    """Rows returned by a SELECT (or a statement with RETURNING)."""
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0


@dataclass
class ExecuteResult:
    """Outcome of an INSERT / UPDATE / DELETE."""
    row_count: int = 0
    insert_id: Any = None


class Transaction(Protocol):
    """Handle returned by begin_transaction(); same query/execute contract."""
    async def query(
        self, sql: str, params: Sequence[Any] | None = None,
    ) -> QueryResult: ...
    async def execute(
        self, sql: str, params: Sequence[Any] | None = None,
    ) -> ExecuteResult: ...
    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    def is_active(self) -> bool: ...


class DatabaseAdapter(Protocol):
    """Contract for SQL execution, implemented by infrastructure/database.py."""
    @property
    def dialect_name(self) -> str: ...
    def escape_identifier(self, name: str) -> str: ...
    def placeholder(self, index: int) -> str: ...
    async def query(
        self, sql: str, params: Sequence[Any] | None = None,
    ) -> QueryResult: ...
    async def execute(
        self, sql: str, params: Sequence[Any] | None = None,
    ) -> ExecuteResult: ...
    async def begin_transaction(self) -> Transaction: ...
