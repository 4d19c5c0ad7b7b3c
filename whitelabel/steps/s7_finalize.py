"""Step 7: Finalize: public URL, health checks and certificate attachment."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

from whitelabel.errors import CertificateProviderError, ProviderError
from whitelabel.models.domain import SSLStatus
from whitelabel.models.steps import FinalizeResult
from whitelabel.steps.base import AbstractStep, StepContext, register_step

if TYPE_CHECKING:
    from pydantic import BaseModel

    from whitelabel.config import Settings
    from whitelabel.models.deployment import Deployment

logger = structlog.get_logger()

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def platform_slug(deployment: Deployment) -> str:
    """Platform subdomain: the requested subdomain, else the name plus a short id."""
    if deployment.config.subdomain:
        return deployment.config.subdomain
    base = _SLUG_RE.sub("-", deployment.name.lower()).strip("-")[:40].strip("-")
    return f"{base or 'app'}-{deployment.id[:6]}"


def public_hostname(deployment: Deployment, settings: Settings) -> str:
    config = deployment.config
    if config.custom_domain:
        if config.subdomain:
            return f"{config.subdomain}.{config.custom_domain}"
        return config.custom_domain
    return f"{platform_slug(deployment)}.{settings.platform_base_domain}"


@register_step
class FinalizeStep(AbstractStep):
    name = "finalize"
    step_number = 7
    title = "Finalizing and running health checks"

    async def run(self, ctx: StepContext) -> BaseModel:
        deployment = ctx.deployment
        url = f"https://{public_hostname(deployment, ctx.settings)}"

        recorded = {r["step_name"] for r in ctx.db.get_all_step_results(deployment.id)}
        expected = {"template_pack", "branding", "brand_assets", "cdn", "analytics"}
        if deployment.config.custom_domain:
            expected.add("domain_setup")

        checks = {
            "steps_recorded": expected <= recorded,
            "theme_applied": ctx.state.theme_applied,
        }

        certificate_id: str | None = None
        ssl_status: SSLStatus | None = None
        if deployment.config.custom_domain:
            claim_id = ctx.state.claim_id or deployment.domain_claim_id
            if claim_id is None:
                raise ProviderError("custom domain deployment has no domain claim")
            claim = ctx.registry.get_claim(claim_id)
            checks["domain_verified"] = claim.is_verified
            if claim.is_verified:
                ctx.report(f"Waiting for the TLS certificate for {claim.fqdn}")
                claim = await ctx.registry.wait_for_certificate(
                    claim_id, timeout=ctx.settings.certificate_wait_seconds
                )
            ssl_status = claim.ssl_status
            if ssl_status == SSLStatus.FAILED:
                raise CertificateProviderError(f"Certificate issuance failed for {claim.fqdn}")
            if ssl_status == SSLStatus.ACTIVE:
                certificate_id = claim.certificate_id
            else:
                logger.info("Certificate still pending at activation", claim_id=claim_id)

        failed = sorted(name for name, ok in checks.items() if not ok)
        if failed:
            raise ProviderError(f"Health checks failed: {', '.join(failed)}")

        if certificate_id:
            ctx.update_deployment(url=url, certificate_id=certificate_id)
        else:
            # A certificate settling later is attached by the registry listener
            ctx.update_deployment(url=url)
        return FinalizeResult(
            deployment_id=deployment.id,
            url=url,
            health_checks=checks,
            certificate_id=certificate_id,
            ssl_status=ssl_status,
        )
