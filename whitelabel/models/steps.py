"""Result models persisted for each provisioning step."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from whitelabel.models.base import BaseStepResult
from whitelabel.models.domain import SSLStatus, VerificationStatus
from whitelabel.models.theme import ResolvedTheme


class DomainSetupResult(BaseStepResult):
    step_name: str = "domain_setup"

    claim_id: str
    fqdn: str
    verification_status: VerificationStatus
    verification_checks: int = 0


class TemplatePackResult(BaseStepResult):
    step_name: str = "template_pack"

    pack_id: str
    industry: str
    pack_version: str
    checksum: str
    modules_installed: list[str] = Field(default_factory=list)
    entity_types: list[str] = Field(default_factory=list)


class BrandingResult(BaseStepResult):
    step_name: str = "branding"

    theme: ResolvedTheme
    contrast_ratio: float | None = None
    industry_default_found: bool = False


class BrandAsset(BaseModel):
    """One logical asset and the variants the rendering layer should produce."""

    model_config = ConfigDict(frozen=True)

    name: str
    source: str
    sizes: list[str] = Field(default_factory=list)
    formats: list[str] = Field(default_factory=list)
    background_color: str | None = None


class BrandAssetsResult(BaseStepResult):
    step_name: str = "brand_assets"

    manifest_path: str
    assets: list[BrandAsset] = Field(default_factory=list)


class CacheRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern: str
    cache_control: str
    ttl_seconds: int = 0


class CdnResult(BaseStepResult):
    step_name: str = "cdn"

    region: str
    origin: str
    hostnames: list[str] = Field(default_factory=list)
    rules: list[CacheRule] = Field(default_factory=list)
    config_path: str = ""


class AnalyticsResult(BaseStepResult):
    step_name: str = "analytics"

    enabled: bool
    tracking_id: str = ""
    config_path: str = ""


class FinalizeResult(BaseStepResult):
    step_name: str = "finalize"

    url: str
    health_checks: dict[str, bool] = Field(default_factory=dict)
    certificate_id: str | None = None
    ssl_status: SSLStatus | None = None
