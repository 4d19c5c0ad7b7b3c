"""Redis-backed local artifact cache with native TTL.

Keys: whitelabel:artifact:{kind}/{industry}/{artifact_id}.json
Values: JSON envelope ``{"cached_at": <epoch>, "artifact": {...}}``
TTL: Native Redis TTL, plus a ``cached_at`` check on read so entries written
with a longer TTL by another process still honour ours.
"""

from __future__ import annotations

import json
import time
from typing import TYPE_CHECKING, TypedDict, cast

import redis
import structlog

from whitelabel.models.artifact import CachedArtifact

if TYPE_CHECKING:
    from collections.abc import Callable

    from whitelabel.config import Settings
    from whitelabel.models.artifact import ArtifactKey

logger = structlog.get_logger()


class LocalCacheStatsDict(TypedDict):
    """Statistics about the local artifact cache."""

    total: int
    by_kind: dict[str, int]


class LocalArtifactCache:
    _PREFIX = "whitelabel:artifact"

    def __init__(self, settings: Settings, clock: Callable[[], float] = time.time) -> None:
        # redis-py stubs: sync Redis.from_url returns Redis[bytes] by default
        self._client: redis.Redis = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
        )
        self._ttl_seconds = settings.local_cache_ttl_seconds
        self._clock = clock

    def _make_key(self, key: ArtifactKey) -> str:
        return f"{self._PREFIX}:{key.path}"

    def get(self, key: ArtifactKey) -> CachedArtifact | None:
        """Get a cached artifact, or None if miss/expired."""
        redis_key = self._make_key(key)
        raw = cast("str | None", self._client.get(redis_key))
        if raw is None:
            return None
        try:
            envelope = json.loads(raw)
            if self._clock() - float(envelope["cached_at"]) >= self._ttl_seconds:
                self._client.delete(redis_key)
                return None
            artifact = CachedArtifact.model_validate(envelope["artifact"])
        except (ValueError, KeyError, TypeError):
            logger.warning("local_cache_corrupt_entry", key=redis_key)
            self._client.delete(redis_key)
            return None
        logger.debug("local_cache_hit", key=str(key))
        return artifact

    def set(self, artifact: CachedArtifact) -> None:
        envelope = {
            "cached_at": self._clock(),
            "artifact": artifact.model_dump(mode="json"),
        }
        self._client.set(
            self._make_key(artifact.key), json.dumps(envelope), ex=self._ttl_seconds
        )
        logger.debug("local_cache_saved", key=str(artifact.key))

    def delete(self, key: ArtifactKey) -> bool:
        return bool(self._client.delete(self._make_key(key)))

    def _scan(self) -> list[str]:
        keys: list[str] = []
        cursor: int = 0
        while True:
            # redis-py stubs return Awaitable|Any for sync calls, cast to actual type
            scan_result = cast(
                "tuple[int, list[str]]",
                self._client.scan(cursor, match=f"{self._PREFIX}:*", count=100),
            )
            cursor, batch = scan_result
            keys.extend(batch)
            if cursor == 0:
                break
        return keys

    def purge_all(self) -> int:
        """Delete all artifact cache keys. Returns count deleted."""
        keys = self._scan()
        if not keys:
            return 0
        return cast("int", self._client.delete(*keys))

    def stats(self) -> LocalCacheStatsDict:
        by_kind: dict[str, int] = {}
        keys = self._scan()
        for key in keys:
            # Key format: whitelabel:artifact:{kind}/{industry}/{id}.json
            path = str(key).split(":", 2)[-1]
            kind = path.split("/", 1)[0]
            by_kind[kind] = by_kind.get(kind, 0) + 1
        return LocalCacheStatsDict(total=len(keys), by_kind=by_kind)

    def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return bool(self._client.ping())
        except redis.ConnectionError:
            return False
