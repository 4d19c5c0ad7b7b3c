"""Step 3: Branding: resolve the theme and hand it to the rendering layer."""

from __future__ import annotations

from typing import TYPE_CHECKING

from whitelabel import branding
from whitelabel.errors import ThemeInvalidError
from whitelabel.models.steps import BrandingResult
from whitelabel.steps.base import AbstractStep, StepContext, register_step
from whitelabel.store import load_industry_theme

if TYPE_CHECKING:
    from pydantic import BaseModel


@register_step
class BrandingStep(AbstractStep):
    name = "branding"
    step_number = 3
    title = "Applying branding"

    async def run(self, ctx: StepContext) -> BaseModel:
        industry_default = await load_industry_theme(
            ctx.config_store, ctx.deployment.config.industry
        )
        theme = branding.resolve(industry_default, ctx.deployment.config.theme)
        validation = branding.validate_with_settings(theme, ctx.settings)
        if not validation.valid:
            raise ThemeInvalidError(validation.errors)

        ctx.state.theme = theme
        await ctx.branding_sink.apply(ctx.deployment, theme)
        ctx.state.theme_applied = True

        return BrandingResult(
            deployment_id=ctx.deployment.id,
            theme=theme,
            contrast_ratio=validation.contrast_ratio,
            industry_default_found=industry_default is not None,
        )
