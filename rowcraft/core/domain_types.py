"""Domain Types — enums and immutable clause records shared by builder and renderer.

Invariants:
    - Clause records are frozen; the builder replaces lists, never mutates entries
    - Every where/having clause carries the connector joining it to the previous one
    - All valid operators and directions encoded as Enums, never raw string matching

Design Decisions:
    - str Enums: render straight into SQL text and compare equal to plain strings
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple, Union


# ─── Enums ───────────────────────────────────────────────────────

class Connector(str, Enum):
    """Boolean connector between a clause and the clause before it."""
    AND = "AND"
    OR = "OR"


class JoinKind(str, Enum):
    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"


class OrderDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

    def reversed(self) -> "OrderDirection":
        return OrderDirection.DESC if self is OrderDirection.ASC else OrderDirection.ASC


class WhereOperator(str, Enum):
    """Operators accepted by the column/operator/value call shape."""
    EQ = "="
    NE = "!="
    NE_SQL = "<>"
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    ILIKE = "ILIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"


LIST_OPERATORS = frozenset({WhereOperator.IN, WhereOperator.NOT_IN})
NULL_OPERATORS = frozenset({WhereOperator.IS_NULL, WhereOperator.IS_NOT_NULL})


class AssociationKind(str, Enum):
    BELONGS_TO = "belongs_to"
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    HAS_MANY_THROUGH = "has_many_through"


# ─── Clause Records ──────────────────────────────────────────────

@dataclass(frozen=True)
class SimpleClause:
    """`column operator value`; value is a list for IN / NOT IN, unused for NULL checks."""
    column: str
    operator: WhereOperator
    value: Any = None
    connector: Connector = Connector.AND


@dataclass(frozen=True)
class PredicateClause:
    """Mapping of column -> value, each pair compared with `=` and ANDed together."""
    conditions: tuple[tuple[str, Any], ...]
    connector: Connector = Connector.AND


@dataclass(frozen=True)
class RawClause:
    """SQL fragment whose `?` markers consume `args` left to right."""
    sql: str
    args: tuple[Any, ...] = ()
    connector: Connector = Connector.AND


@dataclass(frozen=True)
class GroupClause:
    """Parenthesised sub-list of clauses."""
    clauses: tuple["WhereClause", ...] = field(default_factory=tuple)
    connector: Connector = Connector.AND


WhereClause = Union[SimpleClause, PredicateClause, RawClause, GroupClause]


@dataclass(frozen=True)
class JoinClause:
    kind: JoinKind
    table: str
    on_left: str
    on_operator: str
    on_right: str


@dataclass(frozen=True)
class OrderClause:
    column: str
    direction: OrderDirection = OrderDirection.ASC


class CompiledQuery(NamedTuple):
    """Rendered SQL text plus its positional parameters, in placeholder order."""
    sql: str
    params: list[Any]


# ─── Builder State ───────────────────────────────────────────────

@dataclass
class SelectState:
    """Everything a QueryBuilder accumulates. Owned by exactly one builder."""
    table: str
    select_columns: list[str] = field(default_factory=lambda: ["*"])
    distinct: bool = False
    where_clauses: list[WhereClause] = field(default_factory=list)
    having_clauses: list[WhereClause] = field(default_factory=list)
    join_clauses: list[JoinClause] = field(default_factory=list)
    order_clauses: list[OrderClause] = field(default_factory=list)
    group_by_columns: list[str] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    applied_scopes: set[str] = field(default_factory=set)
    unscoped: bool = False

    def copy(self) -> "SelectState":
        """Independent copy; clause records are frozen so list copies suffice."""
        return SelectState(
            table=self.table,
            select_columns=list(self.select_columns),
            distinct=self.distinct,
            where_clauses=list(self.where_clauses),
            having_clauses=list(self.having_clauses),
            join_clauses=list(self.join_clauses),
            order_clauses=list(self.order_clauses),
            group_by_columns=list(self.group_by_columns),
            limit=self.limit,
            offset=self.offset,
            applied_scopes=set(self.applied_scopes),
            unscoped=self.unscoped,
        )
