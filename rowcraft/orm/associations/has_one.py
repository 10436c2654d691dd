"""HasOne — the foreign key lives on the target (profiles.user_id -> users.id)."""

from typing import Any, TYPE_CHECKING

from rowcraft.core.domain_types import AssociationKind
from rowcraft.orm.associations.base import Association

if TYPE_CHECKING:
    from rowcraft.orm.model import Model


class HasOne(Association):
    kind = AssociationKind.HAS_ONE

    def handle(self, record: "Model") -> "HasOneHandle":
        return HasOneHandle(self, record)


class HasOneHandle:
    def __init__(self, association: HasOne, record: "Model"):
        self.association = association
        self.record = record

    async def get(self, reload: bool = False) -> "Model | None":
        cache = self.record._loaded_associations
        name = self.association.name
        if not reload and name in cache:
            return cache[name]

        owner_key = self.association.owner_key(self.record)
        if owner_key is None:
            return None
        child = await (
            self.association.target.query()
            .where({self.association.foreign_key: owner_key})
            .first()
        )
        cache[name] = child
        return child

    def build(self, attributes: dict[str, Any] | None = None, **kwargs: Any) -> "Model":
        child = self.association.target(attributes, **kwargs)
        child._write_column(
            self.association.foreign_key, self.association.owner_key(self.record),
        )
        return child

    async def create(
        self, attributes: dict[str, Any] | None = None, **kwargs: Any,
    ) -> "Model":
        self.association.require_owner_key(self.record, "create")
        child = self.build(attributes, **kwargs)
        await child.save()
        self.record._loaded_associations[self.association.name] = child
        return child

    async def set(self, target: "Model | None") -> None:
        """Attach `target` (saving it), or detach the current child when None."""
        foreign_key = self.association.foreign_key
        if target is None:
            existing = await self.get(reload=True)
            if existing is not None:
                existing._write_column(foreign_key, None)
                await existing.save()
            self.reset()
            return

        owner_key = self.association.require_owner_key(self.record, "set")
        target._write_column(foreign_key, owner_key)
        await target.save()
        self.record._loaded_associations[self.association.name] = target

    async def destroy(self) -> bool:
        existing = await self.get(reload=True)
        self.reset()
        if existing is None:
            return False
        return await existing.destroy()

    def reset(self) -> None:
        self.record._loaded_associations.pop(self.association.name, None)
