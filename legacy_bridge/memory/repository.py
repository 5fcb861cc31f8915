"""Keyed record storage behind the vector index, graph, and workflow table.

Every shared mutable map in the system goes through a ``Repository`` so a
concurrent-safe or persistent backend can replace the in-memory one without
touching callers. Only the in-memory backend ships; persistence is
process-lifetime.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Iterator

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Abstract keyed store of records of type ``T``."""

    @abstractmethod
    def get(self, key: str) -> T | None:
        """Return the record for ``key``, or None."""
        ...

    @abstractmethod
    def put(self, key: str, record: T) -> None:
        """Insert or overwrite the record for ``key``."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it existed."""
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        ...

    @abstractmethod
    def values(self) -> Iterator[T]:
        ...

    @abstractmethod
    def clear(self) -> int:
        """Remove every record. Returns how many were removed."""
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def items(self) -> Iterator[tuple[str, T]]:
        for key in self.keys():
            record = self.get(key)
            if record is not None:
                yield key, record


class InMemoryRepository(Repository[T]):
    """Dict-backed repository. Insertion order is preserved."""

    def __init__(self) -> None:
        self._data: dict[str, T] = {}

    def get(self, key: str) -> T | None:
        return self._data.get(key)

    def put(self, key: str, record: T) -> None:
        self._data[key] = record

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        # Snapshot so callers can delete while iterating.
        return list(self._data.keys())

    def values(self) -> Iterator[T]:
        return iter(list(self._data.values()))

    def clear(self) -> int:
        count = len(self._data)
        self._data.clear()
        return count

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data
