"""Layered configuration artifact store."""

from whitelabel.store.bundled import BundledDefaults
from whitelabel.store.config_store import (
    ConfigStore,
    ConfigStoreStatsDict,
    load_industry_theme,
    parse_artifact,
    validate_artifact,
)
from whitelabel.store.local import LocalArtifactCache, LocalCacheStatsDict
from whitelabel.store.memory import CacheEntry, MemoryCache

__all__ = [
    "BundledDefaults",
    "CacheEntry",
    "ConfigStore",
    "ConfigStoreStatsDict",
    "LocalArtifactCache",
    "LocalCacheStatsDict",
    "MemoryCache",
    "load_industry_theme",
    "parse_artifact",
    "validate_artifact",
]
