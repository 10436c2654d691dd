"""Association Base — target resolution, key conventions, shared collection reads.

Invariants:
    - The target is resolved on every use, never cached at registration time,
      so two record types may reference each other in either definition order
    - Readers never raise and never query when the owner's relevant key is
      None: singular reads give None, collection reads give [] / 0 / False
    - Writes that need a persisted owner raise InvalidStateError instead
"""

from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING, Union

from rowcraft.core.domain_types import AssociationKind
from rowcraft.core.errors import ConstructionError, ErrorContext, InvalidStateError
from rowcraft.core.inflection import to_snake_case

if TYPE_CHECKING:
    from rowcraft.orm.model import Model
    from rowcraft.orm.query_builder import QueryBuilder

TargetRef = Union[type, Callable[[], type]]


@dataclass(frozen=True)
class AssociationDefinition:
    """Resolved, read-only description of one association."""
    kind: AssociationKind
    name: str
    target: type
    foreign_key: str
    primary_key: str
    through: str | None = None
    through_foreign_key: str | None = None


class Association:
    """One declared relationship from `owner` to a target record type."""

    kind: AssociationKind

    def __init__(
        self,
        owner: "type[Model]",
        name: str,
        target: TargetRef,
        foreign_key: str | None = None,
        primary_key: str | None = None,
    ):
        if not callable(target):
            raise ConstructionError(
                f"Association '{name}' on {owner.__name__} needs a record type "
                "or a zero-argument function returning one",
                ErrorContext(model=owner.__name__, association=name),
            )
        self.owner = owner
        self.name = name
        self._target = target
        self._foreign_key = foreign_key
        self._primary_key = primary_key

    def _context(self) -> ErrorContext:
        return ErrorContext(model=self.owner.__name__, association=self.name)

    @property
    def target(self) -> "type[Model]":
        """Resolve the target type; a non-class target is called each time."""
        target = self._target if isinstance(self._target, type) else self._target()
        if not isinstance(target, type) or not hasattr(target, "__config__"):
            raise ConstructionError(
                f"Association '{self.name}' on {self.owner.__name__} resolved to "
                f"{target!r}, which is not a record type",
                self._context(),
            )
        return target

    @property
    def foreign_key(self) -> str:
        return self._foreign_key or self.default_foreign_key()

    def default_foreign_key(self) -> str:
        """<owner>_id; BelongsTo overrides with <target>_id."""
        return f"{to_snake_case(self.owner.__name__)}_id"

    @property
    def primary_key(self) -> str:
        """Key the foreign key points at; the owner's for has_* kinds."""
        return self._primary_key or self.owner.__config__.primary_key

    def definition(self) -> AssociationDefinition:
        return AssociationDefinition(
            kind=self.kind,
            name=self.name,
            target=self.target,
            foreign_key=self.foreign_key,
            primary_key=self.primary_key,
        )

    def owner_key(self, record: "Model") -> Any:
        return record._read_column(self.primary_key)

    def require_owner_key(self, record: "Model", action: str) -> Any:
        value = self.owner_key(record)
        if value is None:
            raise InvalidStateError(
                f"Cannot {action} '{self.name}' on an unsaved {self.owner.__name__}",
                self._context(),
            )
        return value

    def handle(self, record: "Model") -> Any:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.owner.__name__}.{self.name}>"


class CollectionHandle:
    """Read side shared by has_many and has_many_through handles."""

    def __init__(self, association: Association, record: "Model"):
        self.association = association
        self.record = record

    def _owner_key(self) -> Any:
        return self.association.owner_key(self.record)

    def _scoped_query(self) -> "QueryBuilder":
        raise NotImplementedError

    def query(self) -> "QueryBuilder":
        """Builder over the associated rows; matches nothing for an unsaved owner."""
        if self._owner_key() is None:
            return self.association.target.query().where("1 = 0")
        return self._scoped_query()

    async def all(self) -> list["Model"]:
        if self._owner_key() is None:
            return []
        return await self._scoped_query().all()

    async def first(self) -> "Model | None":
        if self._owner_key() is None:
            return None
        return await self._scoped_query().first()

    async def last(self) -> "Model | None":
        if self._owner_key() is None:
            return None
        return await self._scoped_query().last()

    async def count(self) -> int:
        if self._owner_key() is None:
            return 0
        return await self._scoped_query().count()

    async def exists(self) -> bool:
        if self._owner_key() is None:
            return False
        return await self._scoped_query().exists()

    async def find(self, conditions: dict[str, Any]) -> "Model | None":
        if self._owner_key() is None:
            return None
        return await self._scoped_query().where(conditions).first()

    def build(self, attributes: dict[str, Any] | None = None, **kwargs: Any) -> "Model":
        return self.association.target(attributes, **kwargs)
