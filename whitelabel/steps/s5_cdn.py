"""Step 5: CDN: caching rules, origin and region for the deployment."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from whitelabel.models.steps import CacheRule, CdnResult
from whitelabel.steps.base import AbstractStep, StepContext, deployment_path, register_step
from whitelabel.steps.s7_finalize import public_hostname

if TYPE_CHECKING:
    from pydantic import BaseModel

CACHE_RULES = (
    CacheRule(
        pattern="/assets/*",
        cache_control="public, max-age=31536000, immutable",
        ttl_seconds=31536000,
    ),
    CacheRule(pattern="/theme.css", cache_control="public, max-age=300", ttl_seconds=300),
    CacheRule(
        pattern="/*.html", cache_control="public, max-age=60, must-revalidate", ttl_seconds=60
    ),
    CacheRule(pattern="/api/*", cache_control="no-store"),
)


@register_step
class CdnStep(AbstractStep):
    name = "cdn"
    step_number = 5
    title = "Configuring CDN and caching"

    async def run(self, ctx: StepContext) -> BaseModel:
        region = ctx.settings.default_region
        hostnames = [public_hostname(ctx.deployment, ctx.settings)]
        if ctx.deployment.config.custom_domain and not ctx.deployment.config.subdomain:
            hostnames.append(f"www.{hostnames[0]}")

        result = CdnResult(
            deployment_id=ctx.deployment.id,
            region=region,
            origin=f"https://{ctx.settings.ingress_hostname}",
            hostnames=hostnames,
            rules=list(CACHE_RULES),
            config_path=deployment_path(ctx.deployment.id, "cdn.json"),
        )
        await ctx.object_store.put(
            ctx.settings.artifact_bucket,
            result.config_path,
            json.dumps(
                {
                    "region": result.region,
                    "origin": result.origin,
                    "hostnames": result.hostnames,
                    "rules": [r.model_dump() for r in result.rules],
                },
                indent=2,
            ).encode(),
            overwrite=True,
        )
        ctx.state.region = region
        ctx.update_deployment(region=region)
        return result
