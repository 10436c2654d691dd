"""Scopes — named query transformations and the per-type default scope.

Invariants:
    - One ScopeRegistry per record type, owned by that type's ModelConfig
    - register() is last-write-wins
    - Applying a scope only adds predicates / orderings, never removes them
    - A scope function must return a query builder (possibly the one it received)

Design Decisions:
    - Registries are plain objects held by the record type's config rather than
      process-wide maps keyed by class name: two types with the same name in
      different modules cannot collide
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping

from rowcraft.core.errors import ConstructionError, ErrorContext

# (query_builder, *args) -> query_builder
ScopeFunction = Callable[..., Any]


class ScopeRegistry:
    """Scope name -> function for one record type."""

    def __init__(self, owner_name: str):
        self.owner_name = owner_name
        self._scopes: dict[str, ScopeFunction] = {}

    def register(self, name: str, fn: ScopeFunction) -> None:
        if not callable(fn):
            raise ConstructionError(
                f"Scope '{name}' on {self.owner_name} must be callable",
                ErrorContext(model=self.owner_name),
            )
        self._scopes[name] = fn

    def get(self, name: str) -> ScopeFunction | None:
        return self._scopes.get(name)

    def has(self, name: str) -> bool:
        return name in self._scopes

    def remove(self, name: str) -> None:
        self._scopes.pop(name, None)

    def clear(self) -> None:
        self._scopes.clear()

    def names(self) -> list[str]:
        return list(self._scopes)

    def copy(self, owner_name: str) -> "ScopeRegistry":
        registry = ScopeRegistry(owner_name)
        registry._scopes = dict(self._scopes)
        return registry

    def __iter__(self) -> Iterator[str]:
        return iter(self._scopes)

    def __len__(self) -> int:
        return len(self._scopes)


@dataclass(frozen=True)
class DefaultScope:
    """Declarative scope merged into every query of a type unless unscoped().

    order accepts "column" or ("column", "DESC"); scope is a scope function
    applied after where/order.
    """
    where: Mapping[str, Any] | None = None
    order: str | tuple[str, str] | None = None
    scope: ScopeFunction | None = None
