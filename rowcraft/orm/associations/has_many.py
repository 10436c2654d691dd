"""HasMany — one owner, many targets carrying <owner>_id.

Invariants:
    - add() / remove() / clear() save each target individually; they are not
      atomic as a group unless the caller wraps them in a transaction
    - remove() and clear() null the foreign key; they never delete rows
    - clear() reaches rows hidden by the target's default scope as well
"""

from typing import Any, TYPE_CHECKING

from rowcraft.core.domain_types import AssociationKind
from rowcraft.orm.associations.base import Association, CollectionHandle

if TYPE_CHECKING:
    from rowcraft.orm.model import Model
    from rowcraft.orm.query_builder import QueryBuilder


class HasMany(Association):
    kind = AssociationKind.HAS_MANY

    def handle(self, record: "Model") -> "HasManyHandle":
        return HasManyHandle(self, record)


class HasManyHandle(CollectionHandle):
    association: HasMany

    def _scoped_query(self) -> "QueryBuilder":
        return self.association.target.query().where(
            {self.association.foreign_key: self._owner_key()},
        )

    def build(self, attributes: dict[str, Any] | None = None, **kwargs: Any) -> "Model":
        child = self.association.target(attributes, **kwargs)
        child._write_column(self.association.foreign_key, self._owner_key())
        return child

    async def create(
        self, attributes: dict[str, Any] | None = None, **kwargs: Any,
    ) -> "Model":
        self.association.require_owner_key(self.record, "create")
        child = self.build(attributes, **kwargs)
        await child.save()
        return child

    async def add(self, *records: "Model") -> None:
        owner_key = self.association.require_owner_key(self.record, "add to")
        for child in records:
            child._write_column(self.association.foreign_key, owner_key)
            await child.save()

    async def remove(self, *records: "Model") -> None:
        for child in records:
            child._write_column(self.association.foreign_key, None)
            await child.save()

    async def destroy_all(self) -> int:
        return await self._destroy_each(await self.all())

    async def destroy_by(self, conditions: dict[str, Any]) -> int:
        if self._owner_key() is None:
            return 0
        return await self._destroy_each(
            await self._scoped_query().where(conditions).all(),
        )

    async def clear(self) -> int:
        """Null the foreign key on every associated row, default scope or not."""
        if self._owner_key() is None:
            return 0
        children = await self._scoped_query().unscoped().all()
        for child in children:
            child._write_column(self.association.foreign_key, None)
            await child.save()
        return len(children)

    @staticmethod
    async def _destroy_each(children: list["Model"]) -> int:
        destroyed = 0
        for child in children:
            if await child.destroy():
                destroyed += 1
        return destroyed
