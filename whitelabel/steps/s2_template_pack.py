"""Step 2: Template pack: load and validate the industry module bundle."""

from __future__ import annotations

from typing import TYPE_CHECKING

from whitelabel.errors import ArtifactValidationError, NotFoundError
from whitelabel.models.artifact import ArtifactKey, ArtifactKind, TemplatePack
from whitelabel.models.steps import TemplatePackResult
from whitelabel.steps.base import AbstractStep, StepContext, register_step
from whitelabel.store import parse_artifact

if TYPE_CHECKING:
    from pydantic import BaseModel


@register_step
class TemplatePackStep(AbstractStep):
    name = "template_pack"
    step_number = 2
    title = "Installing template pack"

    async def run(self, ctx: StepContext) -> BaseModel:
        config = ctx.deployment.config
        key = ArtifactKey(
            kind=ArtifactKind.TEMPLATE_PACK,
            industry=config.industry,
            artifact_id=config.template_pack_id,
        )
        artifact = await ctx.config_store.load(key)
        if artifact is None:
            raise NotFoundError(f"Template pack {key} not found in any layer")

        pack = parse_artifact(artifact)
        if not isinstance(pack, TemplatePack):
            raise ArtifactValidationError(f"{key} is not a template pack")

        missing = sorted(set(config.enabled_modules) - set(pack.modules))
        if missing:
            raise ArtifactValidationError(
                f"Modules {', '.join(missing)} are not offered by template pack {key}"
            )

        ctx.state.template_pack = pack
        return TemplatePackResult(
            deployment_id=ctx.deployment.id,
            pack_id=pack.id,
            industry=pack.industry,
            pack_version=pack.version,
            checksum=artifact.metadata.checksum,
            modules_installed=list(config.enabled_modules or pack.modules),
            entity_types=[e.entity_type for e in pack.entities],
        )
