"""BelongsTo — the foreign key lives on the owner (posts.user_id -> users.id).

Invariants:
    - Default foreign key is <target>_id, default primary key is the target's
    - get() returns None without querying when the foreign key is None
    - The memo is tagged with the foreign key it was loaded for; changing the
      key by plain assignment makes the next get() refetch
    - set() only changes the owner in memory; the caller saves the owner
"""

from typing import Any, TYPE_CHECKING

from rowcraft.core.domain_types import AssociationKind
from rowcraft.core.inflection import to_snake_case
from rowcraft.orm.associations.base import Association

if TYPE_CHECKING:
    from rowcraft.orm.model import Model


class BelongsTo(Association):
    kind = AssociationKind.BELONGS_TO

    def default_foreign_key(self) -> str:
        return f"{to_snake_case(self.target.__name__)}_id"

    @property
    def primary_key(self) -> str:
        return self._primary_key or self.target.__config__.primary_key

    def handle(self, record: "Model") -> "BelongsToHandle":
        return BelongsToHandle(self, record)


class BelongsToHandle:
    """Accessor for one owner's parent record."""

    def __init__(self, association: BelongsTo, record: "Model"):
        self.association = association
        self.record = record

    async def get(self, reload: bool = False) -> "Model | None":
        """Parent record, memoised on the owner for the current foreign key."""
        value = self.record._read_column(self.association.foreign_key)
        if value is None:
            return None

        cache = self.record._loaded_associations
        name = self.association.name
        if not reload and name in cache:
            cached_key, parent = cache[name]
            if cached_key == value:
                return parent

        parent = await (
            self.association.target.query()
            .where({self.association.primary_key: value})
            .first()
        )
        cache[name] = (value, parent)
        return parent

    def set(self, target: "Model | None") -> None:
        """Point the owner's foreign key at `target` (or clear it)."""
        value = None if target is None else target._read_column(
            self.association.primary_key,
        )
        self.record._write_column(self.association.foreign_key, value)
        if value is None:
            self.record._loaded_associations.pop(self.association.name, None)
        else:
            self.record._loaded_associations[self.association.name] = (value, target)

    async def create(
        self, attributes: dict[str, Any] | None = None, **kwargs: Any,
    ) -> "Model":
        """Insert a new parent and point the owner at it."""
        parent = await self.association.target.create(attributes, **kwargs)
        self.set(parent)
        return parent

    def build(self, attributes: dict[str, Any] | None = None, **kwargs: Any) -> "Model":
        """Unsaved parent; the foreign key is copied only if the parent already has a key."""
        parent = self.association.target(attributes, **kwargs)
        if parent._read_column(self.association.primary_key) is not None:
            self.set(parent)
        return parent

    def reset(self) -> None:
        self.record._loaded_associations.pop(self.association.name, None)
