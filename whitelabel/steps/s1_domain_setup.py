"""Step 1: Domain setup: claim the custom domain and wait for DNS verification."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from whitelabel.errors import DomainClaimExpiredError
from whitelabel.models.domain import VerificationStatus
from whitelabel.models.steps import DomainSetupResult
from whitelabel.steps.base import AbstractStep, StepContext, register_step

if TYPE_CHECKING:
    from pydantic import BaseModel

logger = structlog.get_logger()


@register_step
class DomainSetupStep(AbstractStep):
    """Polls verification quickly for a bounded number of checks, then slowly.

    The deployment stays ``deploying`` while DNS is pending; the claim TTL,
    not the step timeout, ends the wait.
    """

    name = "domain_setup"
    step_number = 1
    title = "Configuring custom domain"
    uses_step_timeout = False

    def should_skip(self, ctx: StepContext) -> bool:
        return not ctx.deployment.config.custom_domain

    async def run(self, ctx: StepContext) -> BaseModel:
        config = ctx.deployment.config
        settings = ctx.settings
        claim = await ctx.registry.add_domain(
            ctx.deployment.organization_id,
            config.custom_domain or "",
            config.subdomain,
        )
        ctx.state.claim_id = claim.id
        ctx.state.fqdn = claim.fqdn
        ctx.update_deployment(domain_claim_id=claim.id)

        checks = 0
        while True:
            checks += 1
            result = await ctx.registry.verify(claim.id)
            if result.verified:
                break
            if result.status == VerificationStatus.EXPIRED:
                raise DomainClaimExpiredError(
                    f"Claim for {claim.fqdn} expired after {checks} verification checks"
                )

            if checks < settings.verification_max_attempts:
                interval = settings.verification_poll_interval
                ctx.report(
                    f"Waiting for DNS propagation for {claim.fqdn} "
                    f"(check {checks}/{settings.verification_max_attempts})"
                )
            else:
                interval = settings.verification_idle_interval
                ctx.report(
                    f"DNS records for {claim.fqdn} not found after {checks} checks; "
                    "still waiting for the domain owner to publish them"
                )
            logger.debug("Domain pending", claim_id=claim.id, checks=checks, retry_in=interval)
            await asyncio.sleep(interval)

        return DomainSetupResult(
            deployment_id=ctx.deployment.id,
            claim_id=claim.id,
            fqdn=claim.fqdn,
            verification_status=result.status,
            verification_checks=checks,
        )
