"""SQL Rendering — turns a SelectState into SQL text plus ordered parameters.

Invariants:
    - PURE: same state in, same (sql, params) out; the state is never mutated
    - Placeholders are numbered left to right in the order they appear:
      WHERE, then HAVING. SELECT / JOIN / GROUP BY / ORDER BY add none,
      LIMIT and OFFSET are inlined integers
    - len(params) == number of placeholders emitted
    - Identifier-shaped columns are escaped per dot-separated segment;
      anything else (expressions, aggregates) is emitted verbatim

Design Decisions:
    - escape_identifier and placeholder are injected callables so the
      renderer stays dialect-agnostic; the adapter supplies both
"""

import re
from typing import Any, Callable, Sequence

from rowcraft.core.domain_types import (
    CompiledQuery, GroupClause, JoinClause, OrderClause, PredicateClause,
    RawClause, SelectState, SimpleClause, WhereClause,
    LIST_OPERATORS, NULL_OPERATORS,
)


_IDENTIFIER_PATH = re.compile(
    r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*(\.\*)?$",
)


class SqlRenderer:
    """Dialect hooks plus the clause-rendering routines that use them."""

    def __init__(
        self,
        escape_identifier: Callable[[str], str],
        placeholder: Callable[[int], str],
    ):
        self._escape = escape_identifier
        self._placeholder = placeholder

    def escape_column(self, column: str) -> str:
        """`users.email` -> `"users"."email"`; `COUNT(*)` stays as written."""
        if column == "*" or not _IDENTIFIER_PATH.match(column):
            return column
        return ".".join(
            part if part == "*" else self._escape(part)
            for part in column.split(".")
        )

    def escape_table(self, table: str) -> str:
        return self.escape_column(table)

    def _bind(self, params: list[Any], value: Any) -> str:
        params.append(value)
        return self._placeholder(len(params))

    # ─── WHERE / HAVING ──────────────────────────────────────────

    def render_conditions(
        self, clauses: Sequence[WhereClause], params: list[Any],
    ) -> str:
        parts: list[str] = []
        for index, clause in enumerate(clauses):
            prefix = "" if index == 0 else f" {clause.connector.value} "
            parts.append(prefix + self._render_clause(clause, params))
        return "".join(parts)

    def _render_clause(self, clause: WhereClause, params: list[Any]) -> str:
        if isinstance(clause, RawClause):
            return self._render_raw(clause, params)
        if isinstance(clause, PredicateClause):
            return self._render_predicate(clause, params)
        if isinstance(clause, GroupClause):
            return f"({self.render_conditions(clause.clauses, params)})"
        return self._render_simple(clause, params)

    def _render_raw(self, clause: RawClause, params: list[Any]) -> str:
        pieces = clause.sql.split("?")
        sql = pieces[0]
        for arg, rest in zip(clause.args, pieces[1:]):
            sql += self._bind(params, arg) + rest
        return sql

    def _render_predicate(
        self, clause: PredicateClause, params: list[Any],
    ) -> str:
        parts = []
        for column, value in clause.conditions:
            escaped = self.escape_column(column)
            if value is None:
                parts.append(f"{escaped} IS NULL")
            else:
                parts.append(f"{escaped} = {self._bind(params, value)}")
        return " AND ".join(parts)

    def _render_simple(self, clause: SimpleClause, params: list[Any]) -> str:
        column = self.escape_column(clause.column)
        operator = clause.operator.value
        if clause.operator in NULL_OPERATORS:
            return f"{column} {operator}"
        if clause.operator in LIST_OPERATORS:
            placeholders = ", ".join(
                self._bind(params, value) for value in clause.value
            )
            return f"{column} {operator} ({placeholders})"
        return f"{column} {operator} {self._bind(params, clause.value)}"

    # ─── Full statement ──────────────────────────────────────────

    def _render_join(self, join: JoinClause) -> str:
        return (
            f" {join.kind.value} JOIN {self.escape_table(join.table)}"
            f" ON {self.escape_column(join.on_left)} {join.on_operator}"
            f" {self.escape_column(join.on_right)}"
        )

    def _render_order(self, order: OrderClause) -> str:
        return f"{self.escape_column(order.column)} {order.direction.value}"

    def render_select(self, state: SelectState) -> CompiledQuery:
        params: list[Any] = []
        sql = "SELECT "
        if state.distinct:
            sql += "DISTINCT "
        sql += ", ".join(self.escape_column(c) for c in state.select_columns)
        sql += f" FROM {self.escape_table(state.table)}"

        for join in state.join_clauses:
            sql += self._render_join(join)

        if state.where_clauses:
            sql += " WHERE " + self.render_conditions(state.where_clauses, params)

        if state.group_by_columns:
            sql += " GROUP BY " + ", ".join(
                self.escape_column(c) for c in state.group_by_columns
            )

        if state.having_clauses:
            sql += " HAVING " + self.render_conditions(state.having_clauses, params)

        if state.order_clauses:
            sql += " ORDER BY " + ", ".join(
                self._render_order(o) for o in state.order_clauses
            )

        if state.limit is not None:
            sql += f" LIMIT {int(state.limit)}"
        if state.offset is not None:
            sql += f" OFFSET {int(state.offset)}"

        return CompiledQuery(sql, params)

    def render_count(self, state: SelectState) -> CompiledQuery:
        """COUNT(*) over the state, ignoring ORDER BY / LIMIT / OFFSET.

        Grouped or DISTINCT selections count their result rows through a
        derived table; plain selections count directly.
        """
        counting = state.copy()
        counting.order_clauses = []
        counting.limit = None
        counting.offset = None
        if counting.group_by_columns or counting.distinct:
            inner = self.render_select(counting)
            return CompiledQuery(
                f"SELECT COUNT(*) AS count FROM ({inner.sql}) AS counted_rows",
                inner.params,
            )
        counting.select_columns = ["COUNT(*) AS count"]
        return self.render_select(counting)
