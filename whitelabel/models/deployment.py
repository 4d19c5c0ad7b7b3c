"""Deployment model: central state for one white-label provisioning run."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from whitelabel.models.base import ExtensibleModel, utcnow
from whitelabel.models.theme import ThemeOverride


class DeploymentStatus(StrEnum):
    PREPARING = "preparing"
    DEPLOYING = "deploying"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({DeploymentStatus.ACTIVE, DeploymentStatus.FAILED})
IN_PROGRESS_STATUSES = frozenset({DeploymentStatus.PREPARING, DeploymentStatus.DEPLOYING})


class FeatureFlags(ExtensibleModel):
    dashboard: bool = True
    entities: bool = True
    transactions: bool = True
    reports: bool = True
    analytics: bool = True


class DeploymentConfig(BaseModel):
    """Caller-supplied configuration for a new deployment."""

    model_config = ConfigDict(frozen=True)

    organization_id: str
    name: str
    industry: str = "generic_business"
    template_pack_id: str = "standard"
    custom_domain: str | None = None
    subdomain: str | None = None
    theme: ThemeOverride = Field(default_factory=ThemeOverride)
    feature_flags: FeatureFlags = Field(default_factory=FeatureFlags)
    enabled_modules: list[str] = Field(default_factory=list)

    @field_validator("name", "organization_id", "industry", "template_pack_id")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("custom_domain", "subdomain")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


class DeploymentUpdate(BaseModel):
    """Partial changes accepted for an active deployment."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    theme: ThemeOverride | None = None
    feature_flags: FeatureFlags | None = None
    enabled_modules: list[str] | None = None


class Deployment(BaseModel):
    """A branded, optionally custom-domain instance of the platform for one tenant."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    organization_id: str
    name: str
    status: DeploymentStatus = DeploymentStatus.PREPARING
    config: DeploymentConfig

    # Derived during provisioning
    url: str = ""
    region: str = ""
    certificate_id: str | None = None
    domain_claim_id: str | None = None
    current_step: int = 0
    status_message: str = ""

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deployed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class Progress(BaseModel):
    """Snapshot of a deployment's position in the step sequence."""

    model_config = ConfigDict(frozen=True)

    deployment_id: str
    step_name: str
    current_step: int
    total_steps: int
    percent_complete: float = Field(ge=0, le=100)
    message: str = ""
    estimated_seconds_remaining: int = 0
