"""Layered config store: memory -> local (Redis) -> durable object store -> bundled.

The first layer that answers populates the cache layers above it before the
artifact is returned. Saving goes to the durable store only and evicts the
key from every cache layer.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, TypedDict

import redis
import structlog
from pydantic import BaseModel, ValidationError

from whitelabel.errors import ArtifactExistsError, ArtifactValidationError, ObjectStoreError
from whitelabel.metrics import config_store_lookups_total
from whitelabel.models.artifact import (
    ArtifactKey,
    ArtifactKind,
    CachedArtifact,
    EntityTemplate,
    TemplatePack,
)
from whitelabel.models.theme import ThemeOverride
from whitelabel.store.bundled import BundledDefaults
from whitelabel.store.local import LocalArtifactCache
from whitelabel.store.memory import MemoryCache

if TYPE_CHECKING:
    from whitelabel.config import Settings
    from whitelabel.protocols import ObjectStore

logger = structlog.get_logger()

ARTIFACT_SCHEMAS: dict[ArtifactKind, type[BaseModel]] = {
    ArtifactKind.TEMPLATE_PACK: TemplatePack,
    ArtifactKind.THEME: ThemeOverride,
    ArtifactKind.ENTITY_TEMPLATE: EntityTemplate,
}


class ConfigStoreStatsDict(TypedDict):
    memory_entries: int
    local: dict[str, Any] | None
    durable_bucket: str


def parse_artifact(artifact: CachedArtifact) -> BaseModel:
    """Validate *artifact* against the schema for its kind. Raises ArtifactValidationError."""
    return validate_artifact(artifact.key, artifact.content)


def validate_artifact(key: ArtifactKey, content: bytes) -> BaseModel:
    schema = ARTIFACT_SCHEMAS[key.kind]
    try:
        model = schema.model_validate_json(content)
    except ValidationError as exc:
        raise ArtifactValidationError(f"{key}: {exc.error_count()} schema error(s): {exc}") from exc

    if isinstance(model, TemplatePack):
        if model.industry != key.industry:
            raise ArtifactValidationError(
                f"{key}: pack industry {model.industry!r} does not match key industry"
            )
        if model.id != key.artifact_id:
            raise ArtifactValidationError(f"{key}: pack id {model.id!r} does not match key id")
    return model


class ConfigStore:
    def __init__(
        self,
        object_store: ObjectStore,
        bucket: str,
        memory: MemoryCache | None = None,
        local: LocalArtifactCache | None = None,
        bundled: BundledDefaults | None = None,
    ) -> None:
        self.object_store = object_store
        self.bucket = bucket
        self.memory = memory if memory is not None else MemoryCache(ttl_seconds=300)
        self.local = local
        self.bundled = bundled if bundled is not None else BundledDefaults()

    @classmethod
    def from_settings(cls, settings: Settings, object_store: ObjectStore) -> ConfigStore:
        """Build the store; the Redis layer is skipped when unconfigured or unreachable."""
        local: LocalArtifactCache | None = None
        if settings.redis_url:
            try:
                candidate = LocalArtifactCache(settings)
                if candidate.ping():
                    local = candidate
                    logger.info("Local artifact cache enabled via Redis")
                else:
                    logger.warning("Redis not reachable, local artifact cache disabled")
            except (redis.RedisError, ValueError):
                logger.warning(
                    "Redis cache init failed, proceeding without local cache", exc_info=True
                )
        return cls(
            object_store=object_store,
            bucket=settings.artifact_bucket,
            memory=MemoryCache(ttl_seconds=settings.memory_cache_ttl_seconds),
            local=local,
        )

    # --- Local layer helpers (best effort) ---

    def _local_get(self, key: ArtifactKey) -> CachedArtifact | None:
        if self.local is None:
            return None
        try:
            return self.local.get(key)
        except redis.RedisError:
            logger.debug("local_cache_read_failed", key=str(key))
            return None

    def _local_set(self, artifact: CachedArtifact) -> None:
        if self.local is None:
            return
        try:
            self.local.set(artifact)
        except redis.RedisError:
            logger.debug("local_cache_write_failed", key=str(artifact.key))

    def _local_delete(self, key: ArtifactKey) -> None:
        if self.local is None:
            return
        try:
            self.local.delete(key)
        except redis.RedisError:
            logger.warning("local_cache_delete_failed", key=str(key))

    # --- Public API ---

    async def load(self, key: ArtifactKey) -> CachedArtifact | None:
        """Return the artifact for *key* from the fastest layer that has it, or None."""
        artifact = self.memory.get(key)
        if artifact is not None:
            config_store_lookups_total.labels(layer="memory").inc()
            return artifact

        artifact = self._local_get(key)
        if artifact is not None:
            config_store_lookups_total.labels(layer="local").inc()
            self.memory.set(artifact)
            return artifact

        durable_error: ObjectStoreError | None = None
        try:
            content = await self.object_store.get(self.bucket, key.path)
        except ObjectStoreError as exc:
            logger.warning("Durable store read failed", key=str(key), error=str(exc))
            durable_error = exc
            content = None
        if content is not None:
            config_store_lookups_total.labels(layer="object_store").inc()
            return self._populate(CachedArtifact.from_content(key, content))

        content = self.bundled.get(key)
        if content is not None:
            config_store_lookups_total.labels(layer="bundled").inc()
            return self._populate(CachedArtifact.from_content(key, content))

        if durable_error is not None:
            raise durable_error
        config_store_lookups_total.labels(layer="miss").inc()
        logger.debug("Artifact not found", key=str(key))
        return None

    def _populate(self, artifact: CachedArtifact) -> CachedArtifact:
        self._local_set(artifact)
        self.memory.set(artifact)
        return artifact

    async def save(
        self,
        key: ArtifactKey,
        data: bytes | dict[str, Any] | BaseModel,
        *,
        overwrite: bool = False,
    ) -> CachedArtifact:
        """Validate and persist an artifact to the durable store, then evict cached copies.

        Raises ArtifactValidationError or ArtifactExistsError.
        """
        if isinstance(data, BaseModel):
            content = data.model_dump_json(indent=2).encode()
        elif isinstance(data, dict):
            content = json.dumps(data, indent=2).encode()
        else:
            content = data
        validate_artifact(key, content)

        try:
            info = await self.object_store.put(self.bucket, key.path, content, overwrite=overwrite)
        except FileExistsError as exc:
            raise ArtifactExistsError(
                f"{key} already exists; pass overwrite to replace it"
            ) from exc

        self.invalidate(key)
        logger.info("Artifact saved", key=str(key), size=info.size, overwrite=overwrite)
        return CachedArtifact.from_content(key, content, last_modified=info.last_modified)

    def invalidate(self, key: ArtifactKey) -> None:
        """Evict *key* from every cache layer."""
        self.memory.delete(key)
        self._local_delete(key)
        logger.debug("Artifact invalidated", key=str(key))

    def invalidate_all(self) -> int:
        """Evict everything from every cache layer. Returns entries removed."""
        removed = self.memory.clear()
        if self.local is not None:
            try:
                removed += self.local.purge_all()
            except redis.RedisError:
                logger.warning("local_cache_purge_failed")
        logger.info("Config store caches cleared", removed=removed)
        return removed

    async def list_artifacts(
        self, kind: ArtifactKind, industry: str | None = None
    ) -> list[ArtifactKey]:
        """Keys available for *kind* across the durable store and bundled defaults."""
        prefix = f"{kind.value}/{industry}/" if industry else f"{kind.value}/"
        keys = {k.path: k for k in self.bundled.keys(kind, industry)}
        for info in await self.object_store.list(self.bucket, prefix):
            if not info.path.endswith(".json"):
                continue
            try:
                key = ArtifactKey.parse(info.path)
            except ValueError:
                continue
            keys[key.path] = key
        return [keys[path] for path in sorted(keys)]

    def stats(self) -> ConfigStoreStatsDict:
        local_stats: dict[str, Any] | None = None
        if self.local is not None:
            try:
                local_stats = dict(self.local.stats())
            except redis.RedisError:
                local_stats = {"error": "unreachable"}
        return ConfigStoreStatsDict(
            memory_entries=len(self.memory),
            local=local_stats,
            durable_bucket=self.bucket,
        )


async def load_industry_theme(store: ConfigStore, industry: str) -> ThemeOverride | None:
    """The industry's default theme override, or None when no layer has one."""
    artifact = await store.load(
        ArtifactKey(kind=ArtifactKind.THEME, industry=industry, artifact_id="default")
    )
    if artifact is None:
        return None
    theme = parse_artifact(artifact)
    if not isinstance(theme, ThemeOverride):
        raise ArtifactValidationError(f"{artifact.key} is not a theme")
    return theme
