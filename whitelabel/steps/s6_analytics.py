"""Step 6: Analytics: issue a tracking id when the analytics flag is on."""

from __future__ import annotations

import json
import uuid
from typing import TYPE_CHECKING

from whitelabel.models.steps import AnalyticsResult
from whitelabel.steps.base import AbstractStep, StepContext, deployment_path, register_step

if TYPE_CHECKING:
    from pydantic import BaseModel


@register_step
class AnalyticsStep(AbstractStep):
    name = "analytics"
    step_number = 6
    title = "Setting up analytics"

    async def run(self, ctx: StepContext) -> BaseModel:
        enabled = ctx.deployment.config.feature_flags.analytics
        tracking_id = f"wl-{uuid.uuid4().hex[:16]}" if enabled else ""
        path = deployment_path(ctx.deployment.id, "analytics.json")
        await ctx.object_store.put(
            ctx.settings.artifact_bucket,
            path,
            json.dumps({"enabled": enabled, "tracking_id": tracking_id}).encode(),
            overwrite=True,
        )
        return AnalyticsResult(
            deployment_id=ctx.deployment.id,
            enabled=enabled,
            tracking_id=tracking_id,
            config_path=path,
        )
