"""Import all steps to trigger registration."""

from whitelabel.steps.s1_domain_setup import DomainSetupStep  # noqa: F401
from whitelabel.steps.s2_template_pack import TemplatePackStep  # noqa: F401
from whitelabel.steps.s3_branding import BrandingStep  # noqa: F401
from whitelabel.steps.s4_brand_assets import BrandAssetsStep  # noqa: F401
from whitelabel.steps.s5_cdn import CdnStep  # noqa: F401
from whitelabel.steps.s6_analytics import AnalyticsStep  # noqa: F401
from whitelabel.steps.s7_finalize import FinalizeStep  # noqa: F401
