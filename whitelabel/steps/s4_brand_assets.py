"""Step 4: Brand assets: plan logo, favicon and social-card variants."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from whitelabel.models.steps import BrandAsset, BrandAssetsResult
from whitelabel.steps.base import AbstractStep, StepContext, deployment_path, register_step

if TYPE_CHECKING:
    from pydantic import BaseModel

    from whitelabel.models.theme import ResolvedTheme


def _monogram(name: str) -> str:
    initials = "".join(word[0] for word in name.split() if word[:1].isalnum())[:2]
    return f"generated:monogram:{initials.upper() or 'W'}"


def _source_formats(source: str) -> list[str]:
    if source.lower().endswith(".svg") or source.startswith("generated:"):
        return ["svg", "png", "webp"]
    return ["png", "webp"]


def build_manifest(name: str, theme: ResolvedTheme) -> list[BrandAsset]:
    logo = theme.logo_url or _monogram(name)
    favicon = theme.favicon_url or logo
    return [
        BrandAsset(
            name="logo",
            source=logo,
            sizes=["64", "128", "256", "512"],
            formats=_source_formats(logo),
        ),
        BrandAsset(
            name="favicon", source=favicon, sizes=["16", "32", "48"], formats=["ico", "png"]
        ),
        BrandAsset(
            name="apple-touch-icon",
            source=favicon,
            sizes=["180"],
            formats=["png"],
            background_color=theme.background_color,
        ),
        BrandAsset(
            name="social-card",
            source=logo,
            sizes=["1200x630"],
            formats=["png"],
            background_color=theme.primary_color,
        ),
    ]


@register_step
class BrandAssetsStep(AbstractStep):
    name = "brand_assets"
    step_number = 4
    title = "Processing brand assets"

    async def run(self, ctx: StepContext) -> BaseModel:
        theme = ctx.state.theme
        if theme is None:
            raise RuntimeError("brand_assets requires a resolved theme from the branding step")

        assets = build_manifest(ctx.deployment.name, theme)
        path = deployment_path(ctx.deployment.id, "assets/manifest.json")
        await ctx.object_store.put(
            ctx.settings.artifact_bucket,
            path,
            json.dumps([a.model_dump() for a in assets], indent=2).encode(),
            overwrite=True,
        )
        return BrandAssetsResult(deployment_id=ctx.deployment.id, manifest_path=path, assets=assets)
