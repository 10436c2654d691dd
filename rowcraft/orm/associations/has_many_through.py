"""HasManyThrough — many-to-many over an explicit join table.

Invariants:
    - `through` is required; omitting it is a ConstructionError at definition time
    - Join column toward the owner defaults to <owner>_id, toward the target
      to <target>_id
    - add() is idempotent: an existing join row is left alone
    - add() / remove() / clear() touch only the join table, never target rows

Design Decisions:
    - add() checks for an existing join row first, so it stays idempotent on
      join tables without a unique index
    - On SQLite and PostgreSQL the INSERT also carries ON CONFLICT DO NOTHING;
      with a unique index on the key pair, a link added concurrently between
      the check and the INSERT is skipped instead of failing
"""

from typing import Any, TYPE_CHECKING

from rowcraft.core.domain_types import AssociationKind
from rowcraft.core.errors import ConstructionError, ErrorContext, InvalidStateError
from rowcraft.core.inflection import to_snake_case
from rowcraft.orm.associations.base import (
    Association, AssociationDefinition, CollectionHandle, TargetRef,
)
from rowcraft.orm.execution import execute_statement, fetch_rows

if TYPE_CHECKING:
    from rowcraft.orm.model import Model
    from rowcraft.orm.query_builder import QueryBuilder

_ON_CONFLICT_DIALECTS = frozenset({"sqlite", "postgresql"})


class HasManyThrough(Association):
    kind = AssociationKind.HAS_MANY_THROUGH

    def __init__(
        self,
        owner: "type[Model]",
        name: str,
        target: TargetRef,
        through: str | None = None,
        foreign_key: str | None = None,
        through_foreign_key: str | None = None,
        primary_key: str | None = None,
    ):
        if not through:
            raise ConstructionError(
                f"has_many_through '{name}' on {owner.__name__} requires a "
                "join table (through=...)",
                ErrorContext(model=owner.__name__, association=name),
            )
        super().__init__(owner, name, target, foreign_key, primary_key)
        self.through = through
        self._through_foreign_key = through_foreign_key

    @property
    def through_foreign_key(self) -> str:
        return (
            self._through_foreign_key
            or f"{to_snake_case(self.target.__name__)}_id"
        )

    def definition(self) -> AssociationDefinition:
        return AssociationDefinition(
            kind=self.kind,
            name=self.name,
            target=self.target,
            foreign_key=self.foreign_key,
            primary_key=self.primary_key,
            through=self.through,
            through_foreign_key=self.through_foreign_key,
        )

    def handle(self, record: "Model") -> "HasManyThroughHandle":
        return HasManyThroughHandle(self, record)


class HasManyThroughHandle(CollectionHandle):
    association: HasManyThrough

    def _scoped_query(self) -> "QueryBuilder":
        target = self.association.target
        target_table = target.get_table_name()
        through = self.association.through
        return (
            target.query()
            .select(f"{target_table}.*")
            .join(
                through,
                f"{target_table}.{target.get_primary_key()}",
                "=",
                f"{through}.{self.association.through_foreign_key}",
            )
            .where(f"{through}.{self.association.foreign_key}", "=", self._owner_key())
        )

    # ─── Join-table writes ───────────────────────────────────────

    def _target_key(self, record: "Model") -> Any:
        value = record._read_column(record.get_primary_key())
        if value is None:
            raise InvalidStateError(
                f"Cannot link an unsaved {type(record).__name__} through "
                f"'{self.association.name}'",
                ErrorContext(
                    model=self.association.owner.__name__,
                    association=self.association.name,
                ),
            )
        return value

    async def _link_exists(self, owner_key: Any, target_key: Any) -> bool:
        adapter = self.association.owner.get_adapter()
        escape = adapter.escape_identifier
        sql = (
            f"SELECT 1 AS linked FROM {escape(self.association.through)}"
            f" WHERE {escape(self.association.foreign_key)} = {adapter.placeholder(1)}"
            f" AND {escape(self.association.through_foreign_key)} = {adapter.placeholder(2)}"
            " LIMIT 1"
        )
        result = await fetch_rows(
            adapter, sql, [owner_key, target_key], self.association.owner.__name__,
        )
        return bool(result.rows)

    async def add(self, *records: "Model") -> None:
        """Insert one join row per target; targets already linked are skipped."""
        owner_key = self.association.require_owner_key(self.record, "add to")
        adapter = self.association.owner.get_adapter()
        escape = adapter.escape_identifier
        sql = (
            f"INSERT INTO {escape(self.association.through)}"
            f" ({escape(self.association.foreign_key)},"
            f" {escape(self.association.through_foreign_key)})"
            f" VALUES ({adapter.placeholder(1)}, {adapter.placeholder(2)})"
        )
        if adapter.dialect_name in _ON_CONFLICT_DIALECTS:
            sql += " ON CONFLICT DO NOTHING"
        for target in records:
            target_key = self._target_key(target)
            if await self._link_exists(owner_key, target_key):
                continue
            await execute_statement(
                adapter, sql, [owner_key, target_key], self.association.owner.__name__,
            )

    async def remove(self, *records: "Model") -> None:
        owner_key = self.association.require_owner_key(self.record, "remove from")
        adapter = self.association.owner.get_adapter()
        escape = adapter.escape_identifier
        sql = (
            f"DELETE FROM {escape(self.association.through)}"
            f" WHERE {escape(self.association.foreign_key)} = {adapter.placeholder(1)}"
            f" AND {escape(self.association.through_foreign_key)} = {adapter.placeholder(2)}"
        )
        for target in records:
            await execute_statement(
                adapter, sql, [owner_key, self._target_key(target)],
                self.association.owner.__name__,
            )

    async def clear(self) -> int:
        """Delete every join row for this owner; returns rows removed."""
        owner_key = self._owner_key()
        if owner_key is None:
            return 0
        adapter = self.association.owner.get_adapter()
        escape = adapter.escape_identifier
        sql = (
            f"DELETE FROM {escape(self.association.through)}"
            f" WHERE {escape(self.association.foreign_key)} = {adapter.placeholder(1)}"
        )
        result = await execute_statement(
            adapter, sql, [owner_key], self.association.owner.__name__,
        )
        return result.row_count

    async def create(
        self, attributes: dict[str, Any] | None = None, **kwargs: Any,
    ) -> "Model":
        """Insert a new target and link it."""
        self.association.require_owner_key(self.record, "create")
        target = await self.association.target.create(attributes, **kwargs)
        await self.add(target)
        return target
