"""Query Builder — fluent clause accumulation, rendering, and async execution.

Invariants:
    - Builder methods mutate only this builder's SelectState and return self
    - to_sql() is pure: calling it twice without mutation yields identical output
    - first() / last() / count() / paginate() leave limit, offset, order and
      projection exactly as they found them
    - clone() shares no mutable state with the original
    - Malformed call shapes raise ConstructionError at call time
    - A builder bound to a record type hydrates rows into instances and merges
      that type's default scope at render time unless unscoped() was called
    - A scope's own clauses are AND-ed onto the rest as one group, so an
      or_where inside a scope never leaks across its neighbours

Design Decisions:
    - Default scope merged lazily (at render/execute time), so unscoped()
      anywhere in a chain suppresses it
    - last() without any ORDER BY returns whatever row the database yields
      first for the reversed (empty) ordering; row order is adapter-defined
"""

import math
from dataclasses import dataclass, field
from typing import Any, Generic, Iterable, Mapping, TYPE_CHECKING, TypeVar

from rowcraft.core.domain_types import (
    CompiledQuery, Connector, GroupClause, JoinClause, JoinKind, OrderClause,
    OrderDirection, PredicateClause, RawClause, SelectState, SimpleClause,
    WhereClause, WhereOperator, LIST_OPERATORS, NULL_OPERATORS,
)
from rowcraft.core.errors import ConstructionError, ErrorContext
from rowcraft.core.adapter_protocols import DatabaseAdapter
from rowcraft.core.sql_render import SqlRenderer
from rowcraft.orm.execution import fetch_rows

if TYPE_CHECKING:
    from rowcraft.orm.model import Model

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of results plus totals."""
    data: list[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 20
    total_pages: int = 0


def parse_direction(direction: str | OrderDirection) -> OrderDirection:
    if isinstance(direction, OrderDirection):
        return direction
    try:
        return OrderDirection(str(direction).strip().upper())
    except ValueError:
        raise ConstructionError(
            f"Order direction must be ASC or DESC, got {direction!r}",
        ) from None


def parse_operator(operator: str | WhereOperator) -> WhereOperator:
    if isinstance(operator, WhereOperator):
        return operator
    try:
        return WhereOperator(" ".join(str(operator).split()).upper())
    except ValueError:
        raise ConstructionError(f"Unsupported operator {operator!r}") from None


def run_scope(fn, query: "QueryBuilder", args: tuple, *, name: str, owner: str) -> "QueryBuilder":
    """Apply a scope function and check it handed a builder back."""
    result = fn(query, *args)
    if not isinstance(result, QueryBuilder):
        raise ConstructionError(
            f"Scope '{name}' on {owner} returned {type(result).__name__}, "
            "expected a QueryBuilder",
            ErrorContext(model=owner),
        )
    return result


class QueryBuilder:
    """Chainable SELECT builder over one table."""

    def __init__(
        self,
        adapter: DatabaseAdapter,
        table: str,
        model: "type[Model] | None" = None,
    ):
        self._adapter = adapter
        self._model = model
        self._state = SelectState(table=table)

    @property
    def table(self) -> str:
        return self._state.table

    @property
    def model(self) -> "type[Model] | None":
        return self._model

    def _owner_name(self) -> str:
        return self._model.__name__ if self._model else self._state.table

    def _error(self, message: str) -> ConstructionError:
        return ConstructionError(message, ErrorContext(model=self._owner_name()))

    # ─── Projection ──────────────────────────────────────────────

    def select(self, *columns: str) -> "QueryBuilder":
        """Replace the projection; select() with no columns resets to *."""
        self._state.select_columns = list(columns) if columns else ["*"]
        return self

    def distinct(self) -> "QueryBuilder":
        self._state.distinct = True
        return self

    # ─── WHERE / HAVING ──────────────────────────────────────────

    def _column(self, name: str) -> str:
        if self._model is None:
            return name
        return self._model.column_for(name)

    def _build_clause(
        self, condition: Any, args: tuple, connector: Connector,
    ) -> WhereClause:
        """Turn one of the three call shapes into a clause record.

        {col: value, ...}              -> PredicateClause
        "age > ?", 18                  -> RawClause (one arg per `?`)
        "email", "LIKE", "%@x.com"     -> SimpleClause
        """
        if isinstance(condition, Mapping):
            if args:
                raise self._error(
                    "Mapping conditions take no extra arguments",
                )
            if not condition:
                raise self._error("Mapping condition must not be empty")
            return PredicateClause(
                tuple((self._column(k), v) for k, v in condition.items()),
                connector,
            )

        if not isinstance(condition, str):
            raise self._error(
                f"Condition must be a mapping or a string, got "
                f"{type(condition).__name__}",
            )

        markers = condition.count("?")
        if markers or not args:
            if markers != len(args):
                raise self._error(
                    f"Fragment {condition!r} has {markers} placeholder(s) "
                    f"but {len(args)} argument(s) were given",
                )
            return RawClause(condition, tuple(args), connector)

        if len(args) == 1:
            raise self._error(
                f"where({condition!r}, {args[0]!r}) is missing a value: "
                "use (column, operator, value) or a '?' fragment",
            )
        if len(args) > 2:
            raise self._error(
                f"Too many arguments for column condition on {condition!r}",
            )

        operator = parse_operator(args[0])
        value = args[1]
        if operator in LIST_OPERATORS:
            if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
                raise self._error(
                    f"{operator.value} on {condition!r} needs a list of values",
                )
            value = tuple(value)
        elif operator in NULL_OPERATORS:
            value = None
        return SimpleClause(self._column(condition), operator, value, connector)

    def where(self, condition: Any, *args: Any) -> "QueryBuilder":
        self._state.where_clauses.append(
            self._build_clause(condition, args, Connector.AND),
        )
        return self

    def or_where(self, condition: Any, *args: Any) -> "QueryBuilder":
        self._state.where_clauses.append(
            self._build_clause(condition, args, Connector.OR),
        )
        return self

    def where_in(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        return self.where(column, WhereOperator.IN, list(values))

    def where_not_in(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        return self.where(column, WhereOperator.NOT_IN, list(values))

    def where_null(self, column: str) -> "QueryBuilder":
        return self.where(column, WhereOperator.IS_NULL, None)

    def where_not_null(self, column: str) -> "QueryBuilder":
        return self.where(column, WhereOperator.IS_NOT_NULL, None)

    def having(self, condition: Any, *args: Any) -> "QueryBuilder":
        self._state.having_clauses.append(
            self._build_clause(condition, args, Connector.AND),
        )
        return self

    def or_having(self, condition: Any, *args: Any) -> "QueryBuilder":
        self._state.having_clauses.append(
            self._build_clause(condition, args, Connector.OR),
        )
        return self

    # ─── JOIN / ORDER / GROUP / LIMIT ────────────────────────────

    def _join(
        self, kind: JoinKind, table: str, left: str, operator: str, right: str,
    ) -> "QueryBuilder":
        self._state.join_clauses.append(
            JoinClause(kind, table, left, operator, right),
        )
        return self

    def join(self, table: str, left: str, operator: str, right: str) -> "QueryBuilder":
        return self._join(JoinKind.INNER, table, left, operator, right)

    def left_join(self, table: str, left: str, operator: str, right: str) -> "QueryBuilder":
        return self._join(JoinKind.LEFT, table, left, operator, right)

    def right_join(self, table: str, left: str, operator: str, right: str) -> "QueryBuilder":
        return self._join(JoinKind.RIGHT, table, left, operator, right)

    def order(
        self, column: str, direction: str | OrderDirection = OrderDirection.ASC,
    ) -> "QueryBuilder":
        self._state.order_clauses.append(
            OrderClause(self._column(column), parse_direction(direction)),
        )
        return self

    def order_by(
        self, column: str, direction: str | OrderDirection = OrderDirection.ASC,
    ) -> "QueryBuilder":
        return self.order(column, direction)

    def group_by(self, *columns: str) -> "QueryBuilder":
        self._state.group_by_columns.extend(self._column(c) for c in columns)
        return self

    def _check_count(self, name: str, value: int | None) -> int | None:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise self._error(f"{name} must be a non-negative integer, got {value!r}")
        return value

    def limit(self, value: int | None) -> "QueryBuilder":
        self._state.limit = self._check_count("limit", value)
        return self

    def offset(self, value: int | None) -> "QueryBuilder":
        self._state.offset = self._check_count("offset", value)
        return self

    def take(self, value: int | None) -> "QueryBuilder":
        return self.limit(value)

    def skip(self, value: int | None) -> "QueryBuilder":
        return self.offset(value)

    # ─── Scopes ──────────────────────────────────────────────────

    def scope(self, name: str, *args: Any) -> "QueryBuilder":
        """Record a scope name; on a bound builder also apply the registered function."""
        query = self
        if self._model is not None:
            fn = self._model.__config__.scopes.get(name)
            if fn is not None:
                where_before = list(self._state.where_clauses)
                having_before = list(self._state.having_clauses)
                query = run_scope(fn, self, args, name=name, owner=self._owner_name())
                query._conjoin_added("where_clauses", where_before)
                query._conjoin_added("having_clauses", having_before)
        query._state.applied_scopes.add(name)
        return query

    def _conjoin_added(self, attr: str, before: list[WhereClause]) -> None:
        current = getattr(self._state, attr)
        added = _added_since(before, current)
        if added:
            setattr(self._state, attr, current[:len(before)] + _as_conjunct(added))

    def unscoped(self) -> "QueryBuilder":
        """Drop scope bookkeeping and bypass the default scope for this builder."""
        self._state.unscoped = True
        self._state.applied_scopes.clear()
        return self

    def has_scope(self, name: str) -> bool:
        return name in self._state.applied_scopes

    def is_unscoped(self) -> bool:
        return self._state.unscoped

    def get_applied_scopes(self) -> list[str]:
        return sorted(self._state.applied_scopes)

    def clone(self) -> "QueryBuilder":
        cloned = QueryBuilder(self._adapter, self._state.table, self._model)
        cloned._state = self._state.copy()
        return cloned

    # ─── Rendering ───────────────────────────────────────────────

    def _renderer(self) -> SqlRenderer:
        return SqlRenderer(self._adapter.escape_identifier, self._adapter.placeholder)

    def _composed_state(self) -> SelectState:
        """This builder's state with the bound type's default scope merged in."""
        own = self._state.copy()
        if self._model is None or own.unscoped:
            return own
        default = self._model.__config__.default_scope
        if default is None:
            return own

        base = QueryBuilder(self._adapter, own.table, self._model)
        base._state.unscoped = True
        if default.where:
            base.where(dict(default.where))
        if default.order:
            if isinstance(default.order, str):
                base.order(default.order)
            else:
                base.order(*default.order)
        if default.scope is not None:
            base = run_scope(
                default.scope, base, (), name="default", owner=self._owner_name(),
            )
        scoped = base._state

        own.where_clauses = _merge_conditions(
            _as_conjunct(scoped.where_clauses), own.where_clauses,
        )
        own.having_clauses = _merge_conditions(
            _as_conjunct(scoped.having_clauses), own.having_clauses,
        )
        own.join_clauses = scoped.join_clauses + own.join_clauses
        own.order_clauses = scoped.order_clauses + own.order_clauses
        own.group_by_columns = scoped.group_by_columns + own.group_by_columns
        if own.select_columns == ["*"]:
            own.select_columns = list(scoped.select_columns)
        own.distinct = own.distinct or scoped.distinct
        if own.limit is None:
            own.limit = scoped.limit
        if own.offset is None:
            own.offset = scoped.offset
        return own

    def to_sql(self) -> CompiledQuery:
        return self._renderer().render_select(self._composed_state())

    # ─── Execution ───────────────────────────────────────────────

    def _hydrate(self, rows: list[dict[str, Any]]) -> list[Any]:
        if self._model is None:
            return rows
        return [self._model._instantiate(row) for row in rows]

    async def _fetch(self, compiled: CompiledQuery) -> list[Any]:
        model_name = self._model.__name__ if self._model else None
        result = await fetch_rows(
            self._adapter, compiled.sql, compiled.params, model_name,
        )
        return self._hydrate(result.rows)

    async def all(self) -> list[Any]:
        return await self._fetch(self.to_sql())

    async def first(self) -> Any | None:
        """First row, with limit forced to 1 only for this call."""
        previous = self._state.limit
        self._state.limit = 1
        try:
            compiled = self.to_sql()
        finally:
            self._state.limit = previous
        rows = await self._fetch(compiled)
        return rows[0] if rows else None

    async def last(self) -> Any | None:
        """First row of the reversed ordering.

        Only meaningful when an ORDER BY is present; otherwise row order is
        adapter-defined.
        """
        state = self._composed_state()
        state.order_clauses = [
            OrderClause(o.column, o.direction.reversed())
            for o in state.order_clauses
        ]
        state.limit = 1
        rows = await self._fetch(self._renderer().render_select(state))
        return rows[0] if rows else None

    async def count(self) -> int:
        compiled = self._renderer().render_count(self._composed_state())
        model_name = self._model.__name__ if self._model else None
        result = await fetch_rows(
            self._adapter, compiled.sql, compiled.params, model_name,
        )
        if not result.rows:
            return 0
        return int(result.rows[0]["count"])

    async def exists(self) -> bool:
        return await self.count() > 0

    async def paginate(self, page: int = 1, per_page: int = 20) -> Page:
        if page < 1 or per_page < 1:
            raise self._error(
                f"paginate needs page >= 1 and per_page >= 1, got {page}, {per_page}",
            )
        total = await self.count()
        data = await (
            self.clone().limit(per_page).offset((page - 1) * per_page).all()
        )
        return Page(
            data=data,
            total=total,
            page=page,
            per_page=per_page,
            total_pages=math.ceil(total / per_page),
        )


def _merge_conditions(
    scoped: list[WhereClause], own: list[WhereClause],
) -> list[WhereClause]:
    """Default predicates first; the caller's own predicates grouped after them."""
    if not scoped:
        return own
    if not own:
        return list(scoped)
    if len(own) == 1 and own[0].connector is Connector.AND:
        return list(scoped) + own
    return list(scoped) + [GroupClause(tuple(own), Connector.AND)]


def _as_conjunct(clauses: list[WhereClause]) -> list[WhereClause]:
    """A scope's clauses as one AND-ed group once any of them is OR-connected."""
    if any(clause.connector is Connector.OR for clause in clauses):
        return [GroupClause(tuple(clauses), Connector.AND)]
    return list(clauses)


def _added_since(before: list[WhereClause], after: list[WhereClause]) -> list[WhereClause] | None:
    """Clauses appended after the `before` prefix, or None if the prefix was rewritten."""
    if len(after) < len(before):
        return None
    if any(a != b for a, b in zip(before, after)):
        return None
    return after[len(before):]
