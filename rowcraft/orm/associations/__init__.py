from rowcraft.orm.associations.base import (
    Association, AssociationDefinition, CollectionHandle,
)
from rowcraft.orm.associations.belongs_to import BelongsTo, BelongsToHandle
from rowcraft.orm.associations.has_many import HasMany, HasManyHandle
from rowcraft.orm.associations.has_many_through import (
    HasManyThrough, HasManyThroughHandle,
)
from rowcraft.orm.associations.has_one import HasOne, HasOneHandle

__all__ = [
    "Association",
    "AssociationDefinition",
    "BelongsTo",
    "BelongsToHandle",
    "CollectionHandle",
    "HasMany",
    "HasManyHandle",
    "HasManyThrough",
    "HasManyThroughHandle",
    "HasOne",
    "HasOneHandle",
]
