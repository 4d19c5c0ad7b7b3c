"""Branding sink that publishes resolved themes as static files."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from whitelabel.branding import render_css_variables

if TYPE_CHECKING:
    from whitelabel.models.deployment import Deployment
    from whitelabel.models.theme import ResolvedTheme
    from whitelabel.protocols import ObjectStore

logger = structlog.get_logger()


def deployment_prefix(deployment_id: str) -> str:
    return f"deployments/{deployment_id}"


class ObjectStoreThemeSink:
    """Writes ``theme.css`` and ``theme.json`` under the deployment's prefix."""

    def __init__(self, store: ObjectStore, bucket: str) -> None:
        self.store = store
        self.bucket = bucket

    async def apply(self, deployment: Deployment, theme: ResolvedTheme) -> None:
        prefix = deployment_prefix(deployment.id)
        await self.store.put(
            self.bucket,
            f"{prefix}/theme.css",
            render_css_variables(theme).encode(),
            overwrite=True,
        )
        await self.store.put(
            self.bucket,
            f"{prefix}/theme.json",
            theme.model_dump_json(indent=2).encode(),
            overwrite=True,
        )
        logger.info("Theme published", deployment_id=deployment.id, prefix=prefix)
