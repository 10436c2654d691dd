"""Model Configuration — explicit per-record-type settings and registries.

Invariants:
    - Built exactly once per record type, when the class is defined
    - Owns that type's association map, scope registry and default scope;
      nothing is shared by name across types
    - Attribute <-> column mapping is total: unknown names pass through unchanged
    - A subclass starts from a copy of its parent's registries
"""

from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

from rowcraft.core.inflection import class_to_table_name, to_snake_case
from rowcraft.core.scopes import DefaultScope, ScopeRegistry

if TYPE_CHECKING:
    from rowcraft.orm.associations.base import Association


@dataclass
class ModelConfig:
    """Everything the engine needs to know about one record type."""
    name: str
    table_name: str
    primary_key: str = "id"
    timestamps: bool = False
    attributes: tuple[str, ...] = ()
    map_attributes: bool = True
    associations: dict[str, "Association"] = field(default_factory=dict)
    scopes: ScopeRegistry | None = None
    default_scope: DefaultScope | None = None
    _to_column: dict[str, str] = field(default_factory=dict, repr=False)
    _to_attribute: dict[str, str] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        if self.scopes is None:
            self.scopes = ScopeRegistry(self.name)
        if self.map_attributes:
            self._to_column = {a: to_snake_case(a) for a in self.attributes}
        else:
            self._to_column = {a: a for a in self.attributes}
        self._to_attribute = {c: a for a, c in self._to_column.items()}

    @classmethod
    def for_class(cls, model: type, parent: "ModelConfig | None") -> "ModelConfig":
        """Read the declarative class attributes of `model`."""
        config = cls(
            name=model.__name__,
            table_name=(
                model.__dict__.get("table_name")
                or class_to_table_name(model.__name__)
            ),
            primary_key=getattr(model, "primary_key", "id") or "id",
            timestamps=bool(getattr(model, "timestamps", False)),
            attributes=tuple(getattr(model, "attributes", ()) or ()),
            map_attributes=bool(getattr(model, "map_attributes", True)),
        )
        if parent is not None:
            config.associations = dict(parent.associations)
            config.scopes = parent.scopes.copy(model.__name__)
            config.default_scope = parent.default_scope
        return config

    def column_for(self, attribute: str) -> str:
        return self._to_column.get(attribute, attribute)

    def attribute_for(self, column: str) -> str:
        return self._to_attribute.get(column, column)

    def columns_from(self, values: dict[str, Any]) -> dict[str, Any]:
        """Attribute-keyed mapping -> column-keyed mapping."""
        return {self.column_for(k): v for k, v in values.items()}

    def attributes_from(self, row: dict[str, Any]) -> dict[str, Any]:
        """Column-keyed row -> attribute-keyed mapping."""
        return {self.attribute_for(k): v for k, v in row.items()}

    @property
    def primary_key_attribute(self) -> str:
        return self.attribute_for(self.primary_key)
