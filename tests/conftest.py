"""Shared test fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from whitelabel.config import Settings
from whitelabel.db import Database
from whitelabel.domains import DomainRegistry
from whitelabel.models.deployment import DeploymentConfig
from whitelabel.orchestrator import DeploymentOrchestrator
from whitelabel.providers import (
    InMemoryObjectStore,
    ObjectStoreThemeSink,
    StaticVerificationProvider,
    StubCertificateProvider,
)
from whitelabel.store import ConfigStore, MemoryCache

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterator
    from pathlib import Path

    from whitelabel.models.deployment import Deployment
    from whitelabel.models.theme import ResolvedTheme


class RecordingThemeSink(ObjectStoreThemeSink):
    """Theme sink that also remembers which deployments it was applied for."""

    def __init__(self, store: InMemoryObjectStore, bucket: str) -> None:
        super().__init__(store, bucket)
        self.applied: list[str] = []

    async def apply(self, deployment: Deployment, theme: ResolvedTheme) -> None:
        await super().apply(deployment, theme)
        self.applied.append(deployment.id)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        redis_url="",
        cloudflare_api_token="",
        verification_poll_interval=0.01,
        verification_max_attempts=3,
        verification_idle_interval=0.02,
        certificate_poll_interval=0.01,
        certificate_timeout_seconds=2.0,
        certificate_wait_seconds=2.0,
        step_timeout_seconds=5.0,
        provider_max_retries=1,
        log_level="DEBUG",
        log_format="console",
        _env_file=None,
    )


@pytest.fixture()
def db(tmp_path: Path) -> Iterator[Database]:
    db = Database(tmp_path / "test.db")
    db.init_schema()
    yield db
    db.close()


@pytest.fixture()
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture()
def verifier() -> StaticVerificationProvider:
    return StaticVerificationProvider()


@pytest.fixture()
def certificates() -> StubCertificateProvider:
    return StubCertificateProvider()


@pytest.fixture()
async def registry(
    db: Database,
    settings: Settings,
    verifier: StaticVerificationProvider,
    certificates: StubCertificateProvider,
) -> AsyncIterator[DomainRegistry]:
    registry = DomainRegistry(db.Session, settings, verifier, certificates)
    yield registry
    await registry.close()


@pytest.fixture()
def config_store(object_store: InMemoryObjectStore, settings: Settings) -> ConfigStore:
    return ConfigStore(
        object_store=object_store,
        bucket=settings.artifact_bucket,
        memory=MemoryCache(ttl_seconds=60),
    )


@pytest.fixture()
def sink(object_store: InMemoryObjectStore, settings: Settings) -> RecordingThemeSink:
    return RecordingThemeSink(object_store, settings.artifact_bucket)


@pytest.fixture()
async def orchestrator(
    db: Database,
    settings: Settings,
    registry: DomainRegistry,
    config_store: ConfigStore,
    sink: RecordingThemeSink,
    object_store: InMemoryObjectStore,
) -> AsyncIterator[DeploymentOrchestrator]:
    orchestrator = DeploymentOrchestrator(
        db=db,
        settings=settings,
        registry=registry,
        config_store=config_store,
        branding_sink=sink,
        object_store=object_store,
    )
    yield orchestrator
    await orchestrator.shutdown()


@pytest.fixture()
def make_config() -> Callable[..., DeploymentConfig]:
    def _make(**overrides: object) -> DeploymentConfig:
        fields: dict[str, object] = {
            "organization_id": "org-1",
            "name": "Acme Salon",
            "industry": "salon_beauty",
        }
        fields.update(overrides)
        return DeploymentConfig.model_validate(fields)

    return _make
