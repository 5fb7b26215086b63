"""
Generic registry mapping configuration names to component constructors.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, Iterable, TypeVar

from .exceptions import UnknownComponentError

T = TypeVar("T")


class Registry(Generic[T]):
    """
    A small thread-safe registry of named constructors.

    Keys are case-insensitive. Supports usage as a decorator:

        @source_registry.register("tournament")
        class TournamentSelection(SelectionMethod): ...
    """

    def __init__(self, name: str = "component") -> None:
        self._name = name
        self._items: dict[str, T] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def register(self, key: str, item: T | None = None, *, override: bool = False) -> Callable[[T], T] | T:
        """
        Register an item with the given key.

        Args:
            key: The unique name for the item.
            item: The item to register. If None, returns a decorator.
            override: If True, overwrite an existing key. If False, raise ValueError on duplicate.
        """
        normalized = key.strip().lower()

        def _do_register(obj: T) -> T:
            with self._lock:
                if normalized in self._items and not override:
                    raise ValueError(f"Key '{key}' already exists in registry '{self._name}'")
                self._items[normalized] = obj
            return obj

        if item is None:
            return _do_register
        return _do_register(item)

    def get(self, key: str, default: Any = ...) -> T:
        """
        Retrieve an item by key.

        Raises:
            UnknownComponentError: if the key is missing and no default was given.
        """
        normalized = key.strip().lower()
        if normalized not in self._items:
            if default is not ...:
                return default
            raise UnknownComponentError(self._name, key, self.list())
        return self._items[normalized]

    def list(self) -> list[str]:
        """Return a sorted list of registered keys."""
        return sorted(self._items.keys())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.strip().lower() in self._items

    def __getitem__(self, key: str) -> T:
        return self.get(key)

    def __iter__(self) -> Iterable[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> Iterable[tuple[str, T]]:
        return self._items.items()


__all__ = ["Registry"]
