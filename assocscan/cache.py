from __future__ import annotations

import hashlib
import threading
from typing import Callable, Generic, Hashable, Iterable, TypeVar

V = TypeVar("V")


def stable_hash(items: Iterable[str]) -> str:
    h = hashlib.md5()
    for item in sorted(items):
        h.update(item.encode("utf-8"))
        h.update(b"\n")
    return h.hexdigest()[:12]


class LookupCache(Generic[V]):
    """
    In-memory memo for the lifetime of one run. Keys must be hashable; loaders run once per key.
    """

    def __init__(self) -> None:
        self._data: dict[Hashable, V] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get_or_load(self, key: Hashable, loader: Callable[[], V]) -> V:
        with self._lock:
            if key in self._data:
                self.hits += 1
                return self._data[key]
            self.misses += 1
            value = loader()
            self._data[key] = value
            return value

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
