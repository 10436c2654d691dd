"""rowcraft — async ActiveRecord-style persistence over SQLAlchemy.

Invariants:
    - Importing the package opens no connections and configures no logging

Design Decisions:
    - The names most applications need are re-exported here; everything else
      is imported from its own module
"""

from rowcraft.core.errors import (  # noqa: F401
    AdapterError, ConstructionError, InvalidStateError, RecordNotFoundError,
    RowcraftError,
)
from rowcraft.infrastructure.database import (  # noqa: F401
    SQLAlchemyAdapter, create_adapter,
)
from rowcraft.orm.model import Model  # noqa: F401
from rowcraft.orm.query_builder import Page, QueryBuilder  # noqa: F401
