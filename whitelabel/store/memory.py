"""In-process artifact cache with lazy TTL expiry."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from whitelabel.models.artifact import ArtifactKey, CachedArtifact


@dataclass(frozen=True, slots=True)
class CacheEntry:
    artifact: CachedArtifact
    cached_at: float


class MemoryCache:
    """Dict of immutable entries keyed by artifact path.

    Entries are replaced, never mutated, so a reader always sees a complete
    artifact. Expired entries are dropped on lookup.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: ArtifactKey) -> CachedArtifact | None:
        entry = self._entries.get(key.path)
        if entry is None:
            return None
        if self._clock() - entry.cached_at >= self.ttl_seconds:
            self._entries.pop(key.path, None)
            return None
        return entry.artifact

    def set(self, artifact: CachedArtifact) -> None:
        self._entries[artifact.key.path] = CacheEntry(artifact=artifact, cached_at=self._clock())

    def delete(self, key: ArtifactKey) -> bool:
        return self._entries.pop(key.path, None) is not None

    def clear(self) -> int:
        count = len(self._entries)
        self._entries = {}
        return count

    def __len__(self) -> int:
        return len(self._entries)
