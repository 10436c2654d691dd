"""Model — ActiveRecord-style record base class.

Invariants:
    - Lifecycle is New -> Persisted -> Destroyed; only a New record INSERTs
    - Saving a Persisted record UPDATEs only changed attributes; no changes
      means no statement and a True result
    - Immediately after a successful save() or reload(), has_changes() is False
    - destroy() / reload() on a New record raise InvalidStateError
    - Each record type owns one ModelConfig (__config__), built when the class
      is defined; registries are never shared by name across types
    - Attribute values live in one mapping keyed by attribute name; the
      snapshot taken at load/save time is the only baseline for dirty tracking

Design Decisions:
    - Declared attributes are data descriptors; undeclared columns returned by
      the database pass through and stay readable as attributes
    - Only explicitly assigned attributes are inserted, so column defaults in
      the database are not overwritten with NULL
    - Associations are reached through relation(name) (or the same-named
      property), which returns a handle memoised per instance
    - Validation and callbacks are not part of save(); callers veto a save by
      not calling it
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, TypeVar

from rowcraft.core.adapter_protocols import DatabaseAdapter
from rowcraft.core.errors import (
    ConstructionError, ErrorContext, InvalidStateError, RecordNotFoundError,
)
from rowcraft.core.scopes import DefaultScope, ScopeFunction
from rowcraft.orm.associations import (
    Association, AssociationDefinition, BelongsTo, HasMany, HasManyThrough,
    HasOne,
)
from rowcraft.orm.associations.base import TargetRef
from rowcraft.orm.execution import execute_statement, fetch_rows
from rowcraft.orm.model_config import ModelConfig
from rowcraft.orm.query_builder import QueryBuilder

logger = logging.getLogger(__name__)

M = TypeVar("M", bound="Model")

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"


# ─── Descriptors ─────────────────────────────────────────────────


class AttributeField:
    """Data descriptor for one declared attribute."""

    def __init__(self, name: str):
        self.name = name

    def __get__(self, instance: "Model | None", owner: type) -> Any:
        if instance is None:
            return self
        return instance._values.get(self.name)

    def __set__(self, instance: "Model", value: Any) -> None:
        instance._values[self.name] = value


class AssociationProperty:
    """`record.<name>` -> record.relation(name)."""

    def __init__(self, name: str):
        self.name = name

    def __get__(self, instance: "Model | None", owner: type) -> Any:
        if instance is None:
            return self
        return instance.relation(self.name)

    def __set__(self, instance: "Model", value: Any) -> None:
        raise AttributeError(
            f"'{self.name}' is an association; use "
            f"relation('{self.name}').set(...) instead",
        )


class ScopeMethod:
    """`Type.<scope>(*args)` -> Type.scoped(scope, *args)."""

    def __init__(self, name: str):
        self.name = name

    def __get__(self, instance: "Model | None", owner: type) -> Any:
        def apply(*args: Any) -> QueryBuilder:
            return owner.scoped(self.name, *args)
        apply.__name__ = self.name
        return apply


class ClassOrInstanceMethod:
    """Dispatch to one function on the class and another on an instance."""

    def __init__(self, class_fn, instance_fn):
        self.class_fn = class_fn
        self.instance_fn = instance_fn
        self.__doc__ = instance_fn.__doc__

    def __get__(self, instance: "Model | None", owner: type) -> Any:
        if instance is None:
            return self.class_fn.__get__(owner, type(owner))
        return self.instance_fn.__get__(instance, owner)


_INSTALLABLE = (AssociationProperty, ScopeMethod)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ─── Class-or-instance operations ────────────────────────────────


async def _update_by_id(
    cls, record_id: Any, attributes: dict[str, Any] | None = None, **kwargs: Any,
):
    """Load by primary key (unscoped), assign, save; RecordNotFoundError if missing."""
    record = await cls._find_unscoped(record_id)
    if record is None:
        raise RecordNotFoundError(cls.__name__, record_id)
    record.assign(attributes, **kwargs)
    await record.save()
    return record


async def _update_instance(
    self, attributes: dict[str, Any] | None = None, **kwargs: Any,
) -> bool:
    """Assign the given attributes and save."""
    self.assign(attributes, **kwargs)
    return await self.save()


async def _destroy_by_id(cls, record_id: Any) -> bool:
    """DELETE by primary key; True when a row was removed."""
    adapter = cls.get_adapter()
    escape = adapter.escape_identifier
    sql = (
        f"DELETE FROM {escape(cls.get_table_name())}"
        f" WHERE {escape(cls.get_primary_key())} = {adapter.placeholder(1)}"
    )
    result = await execute_statement(adapter, sql, [record_id], cls.__name__)
    return result.row_count > 0


async def _destroy_instance(self) -> bool:
    """DELETE this record; InvalidStateError on a New record."""
    cls = type(self)
    if self._is_new_record:
        raise InvalidStateError(
            f"Cannot destroy a new {cls.__name__}", ErrorContext(model=cls.__name__),
        )
    removed = await _destroy_by_id(cls, self._persisted_id())
    self._is_destroyed = True
    self._loaded_associations.clear()
    logger.debug(
        f"{cls.__name__} {self.get_id()!r} destroyed (removed={removed})",
        extra={"model": cls.__name__, "row_count": int(removed)},
    )
    return removed


# ─── Model ───────────────────────────────────────────────────────


class Model:
    """Base class for persisted record types.

    Subclasses declare:
        table_name      -- defaults to the pluralized snake_case class name
        primary_key     -- column name, default "id"
        timestamps      -- stamp created_at / updated_at, default False
        attributes      -- declared attribute names
        map_attributes  -- camelCase attribute <-> snake_case column, default True
    """

    table_name: str | None = None
    primary_key: str = "id"
    timestamps: bool = False
    attributes: tuple[str, ...] = ()
    map_attributes: bool = True

    __config__: ModelConfig
    _adapter: DatabaseAdapter | None = None

    def __init_subclass__(cls, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        parent = next(
            (b.__dict__["__config__"] for b in cls.__mro__[1:]
             if "__config__" in b.__dict__),
            None,
        )
        cls.__config__ = ModelConfig.for_class(cls, parent)
        for name in cls.__config__.attributes:
            if hasattr(Model, name):
                raise ConstructionError(
                    f"Attribute '{name}' on {cls.__name__} shadows a Model member",
                    ErrorContext(model=cls.__name__),
                )
            setattr(cls, name, AttributeField(name))

    def __init__(self, attributes: dict[str, Any] | None = None, **kwargs: Any):
        self._init_state()
        self.assign(attributes, **kwargs)

    def _init_state(self) -> None:
        state = self.__dict__
        state["_values"] = {}
        state["_original"] = {}
        state["_is_new_record"] = True
        state["_is_destroyed"] = False
        state["_loaded_associations"] = {}
        state["_relations"] = {}

    # ─── Attribute access ────────────────────────────────────────

    def __getattr__(self, name: str) -> Any:
        values = self.__dict__.get("_values")
        if values is not None and name in values:
            return values[name]
        raise AttributeError(f"{type(self).__name__} has no attribute {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or hasattr(type(self), name):
            object.__setattr__(self, name, value)
        else:
            self._values[name] = value

    def assign(self, attributes: dict[str, Any] | None = None, **kwargs: Any) -> None:
        """Set several attributes at once; column names are accepted too."""
        config = self.__config__
        for key, value in {**(attributes or {}), **kwargs}.items():
            self._values[config.attribute_for(key)] = value

    def _read_column(self, column: str) -> Any:
        return self._values.get(self.__config__.attribute_for(column))

    def _write_column(self, column: str, value: Any) -> None:
        self._values[self.__config__.attribute_for(column)] = value

    def _load_row(self, row: dict[str, Any]) -> None:
        values = self.__config__.attributes_from(row)
        self.__dict__["_values"] = values
        self.__dict__["_original"] = dict(values)
        self.__dict__["_is_new_record"] = False

    def _persisted_id(self) -> Any:
        """Primary key as last loaded, so a changed key still targets its row."""
        return self._original.get(self.__config__.primary_key_attribute)

    @classmethod
    def _instantiate(cls: type[M], row: dict[str, Any]) -> M:
        record = cls.__new__(cls)
        record._init_state()
        record._load_row(row)
        return record

    # ─── Adapter / naming ────────────────────────────────────────

    @classmethod
    def set_adapter(cls, adapter: DatabaseAdapter) -> None:
        """Share `adapter` with this type and every subclass without its own."""
        cls._adapter = adapter

    @classmethod
    def get_adapter(cls) -> DatabaseAdapter:
        if cls._adapter is None:
            raise ConstructionError(
                f"No database adapter set for {cls.__name__}; "
                "call Model.set_adapter() first",
                ErrorContext(model=cls.__name__),
            )
        return cls._adapter

    @classmethod
    def get_table_name(cls) -> str:
        return cls.__config__.table_name

    @classmethod
    def get_primary_key(cls) -> str:
        return cls.__config__.primary_key

    @classmethod
    def has_timestamps(cls) -> bool:
        return cls.__config__.timestamps

    @classmethod
    def column_for(cls, attribute: str) -> str:
        return cls.__config__.column_for(attribute)

    @classmethod
    def attribute_for(cls, column: str) -> str:
        return cls.__config__.attribute_for(column)

    # ─── Reads ───────────────────────────────────────────────────

    @classmethod
    def query(cls) -> QueryBuilder:
        return QueryBuilder(cls.get_adapter(), cls.get_table_name(), cls)

    @classmethod
    async def find(cls: type[M], record_id: Any) -> M | None:
        return await cls.query().where({cls.get_primary_key(): record_id}).first()

    @classmethod
    async def find_or_fail(cls: type[M], record_id: Any) -> M:
        record = await cls.find(record_id)
        if record is None:
            raise RecordNotFoundError(cls.__name__, record_id)
        return record

    @classmethod
    async def _find_unscoped(cls: type[M], record_id: Any) -> M | None:
        return await (
            cls.query().unscoped().where({cls.get_primary_key(): record_id}).first()
        )

    @classmethod
    async def find_by(cls: type[M], conditions: dict[str, Any]) -> M | None:
        return await cls.query().where(conditions).first()

    @classmethod
    async def all(cls: type[M]) -> list[M]:
        return await cls.query().all()

    @classmethod
    async def first(cls: type[M]) -> M | None:
        return await cls.query().first()

    @classmethod
    async def last(cls: type[M]) -> M | None:
        return await cls.query().last()

    @classmethod
    async def count(cls, conditions: dict[str, Any] | None = None) -> int:
        query = cls.query()
        if conditions:
            query.where(conditions)
        return await query.count()

    @classmethod
    async def exists(cls, conditions: dict[str, Any] | None = None) -> bool:
        query = cls.query()
        if conditions:
            query.where(conditions)
        return await query.exists()

    @classmethod
    def where(cls, condition: Any, *args: Any) -> QueryBuilder:
        return cls.query().where(condition, *args)

    @classmethod
    def order_by(cls, column: str, direction: str = "ASC") -> QueryBuilder:
        return cls.query().order_by(column, direction)

    @classmethod
    def limit(cls, value: int) -> QueryBuilder:
        return cls.query().limit(value)

    @classmethod
    def unscoped(cls) -> QueryBuilder:
        return cls.query().unscoped()

    # ─── Writes ──────────────────────────────────────────────────

    @classmethod
    async def create(
        cls: type[M], attributes: dict[str, Any] | None = None, **kwargs: Any,
    ) -> M:
        """Construct, save, and return the record."""
        record = cls(attributes, **kwargs)
        await record.save()
        return record

    update = ClassOrInstanceMethod(_update_by_id, _update_instance)
    destroy = ClassOrInstanceMethod(_destroy_by_id, _destroy_instance)

    async def save(self) -> bool:
        """INSERT a New record, otherwise UPDATE its changed attributes."""
        if self._is_destroyed:
            raise InvalidStateError(
                f"Cannot save a destroyed {type(self).__name__}",
                ErrorContext(model=type(self).__name__),
            )
        if self._is_new_record:
            return await self._perform_insert()
        return await self._perform_update()

    def _insert_columns(self) -> dict[str, Any]:
        config = self.__config__
        pk_attr = config.primary_key_attribute
        columns = {
            config.column_for(attr): value
            for attr, value in self._values.items()
            if not (attr == pk_attr and value is None)
        }
        if config.timestamps:
            now = _now()
            for column in (CREATED_AT, UPDATED_AT):
                if columns.get(column) is None:
                    columns[column] = now
                    self._write_column(column, now)
        return columns

    async def _perform_insert(self) -> bool:
        cls = type(self)
        adapter = cls.get_adapter()
        escape = adapter.escape_identifier
        columns = self._insert_columns()
        table = escape(cls.get_table_name())
        if columns:
            names = ", ".join(escape(c) for c in columns)
            placeholders = ", ".join(
                adapter.placeholder(i) for i in range(1, len(columns) + 1)
            )
            sql = f"INSERT INTO {table} ({names}) VALUES ({placeholders}) RETURNING *"
        else:
            sql = f"INSERT INTO {table} DEFAULT VALUES RETURNING *"

        result = await fetch_rows(adapter, sql, list(columns.values()), cls.__name__)
        if not result.rows:
            logger.warning(
                f"INSERT into {cls.get_table_name()} returned no row",
                extra={"model": cls.__name__, "sql": sql},
            )
            return False
        self._load_row(result.rows[0])
        self._loaded_associations.clear()
        return True

    async def _perform_update(self) -> bool:
        cls = type(self)
        changes = self.get_changes()
        if not changes:
            return True

        config = self.__config__
        if config.timestamps and UPDATED_AT not in config.columns_from(changes):
            self._write_column(UPDATED_AT, _now())
            changes = self.get_changes()

        columns = config.columns_from(changes)
        adapter = cls.get_adapter()
        escape = adapter.escape_identifier
        assignments = ", ".join(
            f"{escape(column)} = {adapter.placeholder(i)}"
            for i, column in enumerate(columns, start=1)
        )
        params = list(columns.values()) + [self._persisted_id()]
        sql = (
            f"UPDATE {escape(cls.get_table_name())} SET {assignments}"
            f" WHERE {escape(cls.get_primary_key())} = {adapter.placeholder(len(params))}"
            " RETURNING *"
        )
        result = await fetch_rows(adapter, sql, params, cls.__name__)
        if not result.rows:
            logger.warning(
                f"UPDATE matched no {cls.__name__} row for id {self._persisted_id()!r}",
                extra={"model": cls.__name__, "sql": sql},
            )
            return False
        self._load_row(result.rows[0])
        return True

    async def reload(self: M) -> M:
        """Re-read this record by primary key, ignoring the default scope."""
        cls = type(self)
        if self._is_new_record:
            raise InvalidStateError(
                f"Cannot reload a new {cls.__name__}", ErrorContext(model=cls.__name__),
            )
        record_id = self._persisted_id()
        fresh = await cls._find_unscoped(record_id)
        if fresh is None:
            raise RecordNotFoundError(cls.__name__, record_id)
        self._load_row(fresh._values_as_row())
        self._loaded_associations.clear()
        return self

    def _values_as_row(self) -> dict[str, Any]:
        return self.__config__.columns_from(self._values)

    # ─── State ───────────────────────────────────────────────────

    @property
    def is_new_record(self) -> bool:
        return self._is_new_record

    @property
    def is_persisted(self) -> bool:
        return not self._is_new_record and not self._is_destroyed

    def get_id(self) -> Any:
        return self._values.get(self.__config__.primary_key_attribute)

    def get_changes(self) -> dict[str, Any]:
        """Attributes whose current value differs from the snapshot, with current values."""
        changes = {}
        for key in self._values.keys() | self._original.keys():
            current = self._values.get(key)
            if current != self._original.get(key):
                changes[key] = current
        return changes

    def has_changes(self) -> bool:
        return bool(self.get_changes())

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        if self.get_id() is None:
            return self is other
        return self.get_id() == other.get_id()

    def __hash__(self) -> int:
        if self.get_id() is None:
            return id(self)
        return hash((type(self), self.get_id()))

    def __repr__(self) -> str:
        state = "new" if self._is_new_record else f"id={self.get_id()!r}"
        return f"<{type(self).__name__} {state}>"

    # ─── Scopes ──────────────────────────────────────────────────

    @classmethod
    def scope(cls, name: str, fn: ScopeFunction) -> None:
        """Register a named scope; also reachable as Type.<name>(*args)."""
        cls.__config__.scopes.register(name, fn)
        cls._install(name, ScopeMethod(name))

    @classmethod
    def scoped(cls, name: str, *args: Any) -> QueryBuilder:
        if not cls.__config__.scopes.has(name):
            raise ConstructionError(
                f"Unknown scope '{name}' on {cls.__name__}",
                ErrorContext(model=cls.__name__),
            )
        return cls.query().scope(name, *args)

    @classmethod
    def default_scope(
        cls,
        where: dict[str, Any] | None = None,
        order: str | tuple[str, str] | None = None,
        scope: ScopeFunction | None = None,
    ) -> None:
        cls.__config__.default_scope = DefaultScope(
            where=dict(where) if where else None, order=order, scope=scope,
        )

    @classmethod
    def reset_default_scope(cls) -> None:
        cls.__config__.default_scope = None

    # ─── Associations ────────────────────────────────────────────

    @classmethod
    def _install(cls, name: str, accessor: Any) -> None:
        """Put an accessor on the class unless `name` is already a real member."""
        existing = next(
            (b.__dict__[name] for b in cls.__mro__ if name in b.__dict__), None,
        )
        if existing is not None and not isinstance(existing, _INSTALLABLE):
            logger.warning(
                f"{cls.__name__}.{name} already exists; not installing an accessor",
                extra={"model": cls.__name__},
            )
            return
        setattr(cls, name, accessor)

    @classmethod
    def _register(cls, association: Association) -> Association:
        if association.name in cls.__config__.associations:
            logger.debug(
                f"Replacing association {cls.__name__}.{association.name}",
                extra={"model": cls.__name__, "association": association.name},
            )
        cls.__config__.associations[association.name] = association
        cls._install(association.name, AssociationProperty(association.name))
        return association

    @classmethod
    def belongs_to(
        cls,
        name: str,
        target: TargetRef,
        foreign_key: str | None = None,
        primary_key: str | None = None,
    ) -> BelongsTo:
        return cls._register(BelongsTo(cls, name, target, foreign_key, primary_key))

    @classmethod
    def has_one(
        cls,
        name: str,
        target: TargetRef,
        foreign_key: str | None = None,
        primary_key: str | None = None,
    ) -> HasOne:
        return cls._register(HasOne(cls, name, target, foreign_key, primary_key))

    @classmethod
    def has_many(
        cls,
        name: str,
        target: TargetRef,
        foreign_key: str | None = None,
        primary_key: str | None = None,
    ) -> HasMany:
        return cls._register(HasMany(cls, name, target, foreign_key, primary_key))

    @classmethod
    def has_many_through(
        cls,
        name: str,
        target: TargetRef,
        through: str | None = None,
        foreign_key: str | None = None,
        through_foreign_key: str | None = None,
        primary_key: str | None = None,
    ) -> HasManyThrough:
        return cls._register(HasManyThrough(
            cls, name, target,
            through=through,
            foreign_key=foreign_key,
            through_foreign_key=through_foreign_key,
            primary_key=primary_key,
        ))

    @classmethod
    def get_associations(cls) -> dict[str, AssociationDefinition]:
        return {
            name: association.definition()
            for name, association in cls.__config__.associations.items()
        }

    def relation(self, name: str) -> Any:
        """Handle for association `name`, created once per instance."""
        association = self.__config__.associations.get(name)
        if association is None:
            raise ConstructionError(
                f"Unknown association '{name}' on {type(self).__name__}",
                ErrorContext(model=type(self).__name__, association=name),
            )
        cached = self._relations.get(name)
        if cached is not None and cached.association is association:
            return cached
        handle = association.handle(self)
        self._relations[name] = handle
        return handle
