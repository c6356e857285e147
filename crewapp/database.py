from collections.abc import Callable, MutableMapping
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

K = TypeVar("K")
V = TypeVar("V", bound=BaseModel)


class InMemoryKeyValueDatabase(Generic[K, V]):
    """
    Simple in-memory key/value record store.

    Stands in for the hosted database: single-row reads and writes are
    atomic, there are no cross-row transactions.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}

    def put(self, key: K, value: V) -> None:
        self._store[key] = value

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def all(self) -> list[V]:
        return list(self._store.values())

    def find(self, predicate: Callable[[V], bool]) -> list[V]:
        return [v for v in self._store.values() if predicate(v)]

    def update_if(
        self,
        key: K,
        condition: Callable[[V], bool],
        changes: dict[str, Any],
    ) -> V | None:
        """
        Atomically apply `changes` to the row if `condition` holds for it.
        Returns the updated row, or None if the row is missing or the
        condition failed.
        """
        value = self._store.get(key)
        if value is None or not condition(value):
            return None
        updated = value.model_copy(update=changes)
        self._store[key] = updated
        return updated
