"""Content-hash fingerprints and the shared result cache."""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Iterable, Mapping
from typing import Generic, TypeVar

V = TypeVar("V")


def sha256_hex(content: str) -> str:
    """SHA-256 hex digest of UTF-8 encoded ``content``."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def fingerprint(parts: Iterable[tuple[str, str | None]]) -> str:
    """Combine labelled parts into a single digest.

    Each part is hashed on its own and folded in with its label, so that
    ``("a", "bc")`` and ``("ab", "c")`` never collide.
    """
    digest = hashlib.sha256()
    for label, value in parts:
        digest.update(f"{label}:".encode())
        digest.update(b"-" if value is None else sha256_hex(value).encode())
        digest.update(b";")
    return digest.hexdigest()


def mapping_text(values: Mapping[str, object]) -> str:
    """Order-independent textual form of a string map."""
    return "\n".join(f"{key}={values[key]}" for key in sorted(values))


def changed_entries(previous: Mapping[str, str], current: Mapping[str, str]) -> set[str]:
    """Names whose content hash differs between two snapshots."""
    names = set(previous) | set(current)
    return {name for name in names if previous.get(name) != current.get(name)}


class ResultCache(Generic[V]):
    """Process-lifetime memo keyed by content fingerprints.

    Reads take no lock. Writes use ``dict.setdefault`` so that when two
    callers race on one key, both compute but only the first stored value is
    retained and returned to everyone.
    """

    def __init__(self) -> None:
        self._store: dict[str, V] = {}

    def get(self, key: str) -> V | None:
        """Cached value or ``None``."""
        return self._store.get(key)

    def put(self, key: str, value: V) -> V:
        """Store ``value`` unless a value is already retained; return the retained one."""
        return self._store.setdefault(key, value)

    def get_or_compute(self, key: str, compute: Callable[[], V]) -> V:
        """Return the cached value, computing and storing it on a miss."""
        cached = self._store.get(key)
        if cached is not None:
            return cached
        return self.put(key, compute())

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)

    def size(self) -> int:
        """Number of retained entries."""
        return len(self._store)

    def clear(self) -> int:
        """Drop every entry; return how many there were."""
        count = len(self._store)
        self._store.clear()
        return count
