"""Re-exports all Pydantic models."""

from whitelabel.models.artifact import (
    ArtifactKey,
    ArtifactKind,
    ArtifactMetadata,
    CachedArtifact,
    EntityTemplate,
    TemplateField,
    TemplatePack,
)
from whitelabel.models.base import BaseStepResult, ExtensibleModel
from whitelabel.models.deployment import (
    Deployment,
    DeploymentConfig,
    DeploymentStatus,
    DeploymentUpdate,
    FeatureFlags,
    Progress,
)
from whitelabel.models.domain import (
    CertificateHandle,
    DNSRecord,
    DomainClaim,
    RecordStatus,
    RecordType,
    SSLStatus,
    VerificationResult,
    VerificationStatus,
)
from whitelabel.models.steps import (
    AnalyticsResult,
    BrandAsset,
    BrandAssetsResult,
    BrandingResult,
    CacheRule,
    CdnResult,
    DomainSetupResult,
    FinalizeResult,
    TemplatePackResult,
)
from whitelabel.models.theme import (
    ResolvedTheme,
    ShadowIntensity,
    ThemeOverride,
    ThemeValidation,
)

__all__ = [
    "AnalyticsResult",
    "ArtifactKey",
    "ArtifactKind",
    "ArtifactMetadata",
    "BaseStepResult",
    "BrandAsset",
    "BrandAssetsResult",
    "BrandingResult",
    "CacheRule",
    "CachedArtifact",
    "CdnResult",
    "CertificateHandle",
    "DNSRecord",
    "Deployment",
    "DeploymentConfig",
    "DeploymentStatus",
    "DeploymentUpdate",
    "DomainClaim",
    "DomainSetupResult",
    "EntityTemplate",
    "ExtensibleModel",
    "FeatureFlags",
    "FinalizeResult",
    "Progress",
    "RecordStatus",
    "RecordType",
    "ResolvedTheme",
    "SSLStatus",
    "ShadowIntensity",
    "TemplateField",
    "TemplatePack",
    "TemplatePackResult",
    "ThemeOverride",
    "ThemeValidation",
    "VerificationResult",
    "VerificationStatus",
]
