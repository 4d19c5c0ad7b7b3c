"""Deployment orchestrator: runs provisioning steps for white-label deployments."""

from __future__ import annotations

import asyncio
import contextlib
import time as time_mod
import uuid
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

import structlog

from whitelabel import branding
from whitelabel.errors import (
    DomainInUseError,
    InvalidStateTransition,
    NotFoundError,
    StepTimeoutError,
    ThemeInvalidError,
    ValidationError,
)
from whitelabel.logging import deployment_context
from whitelabel.metrics import (
    deployments_in_flight,
    deployments_total,
    step_duration_seconds,
    step_executions_total,
)
from whitelabel.models.artifact import ArtifactKey, ArtifactKind, TemplatePack
from whitelabel.models.base import utcnow
from whitelabel.models.deployment import (
    IN_PROGRESS_STATUSES,
    Deployment,
    DeploymentConfig,
    DeploymentStatus,
    DeploymentUpdate,
    Progress,
)
from whitelabel.models.domain import SSLStatus
from whitelabel.models.steps import BrandingResult
from whitelabel.models.theme import ThemeOverride
from whitelabel.providers.sink import deployment_prefix
from whitelabel.state_machine import transition
from whitelabel.steps.base import TOTAL_STEPS, AbstractStep, RunState, StepContext, ordered_steps
from whitelabel.steps.s3_branding import BrandingStep
from whitelabel.store import load_industry_theme, parse_artifact

if TYPE_CHECKING:
    from whitelabel.config import Settings
    from whitelabel.db import Database
    from whitelabel.domains import DomainRegistry
    from whitelabel.models.domain import DomainClaim
    from whitelabel.models.theme import ResolvedTheme, ThemeValidation
    from whitelabel.protocols import BrandingSink, ObjectStore
    from whitelabel.store import ConfigStore

logger = structlog.get_logger()


@dataclass(slots=True)
class _RunProgress:
    step_name: str = "queued"
    current_step: int = 0
    completed_steps: int = 0
    message: str = "Waiting to start"


def merge_theme_overrides(base: ThemeOverride, changes: ThemeOverride) -> ThemeOverride:
    """Apply *changes* field by field over *base*; extensions are merged too."""
    return ThemeOverride.model_validate(
        {
            **base.explicit_fields(),
            **changes.explicit_fields(),
            "extensions": {**base.extensions, **changes.extensions},
        }
    )


class DeploymentOrchestrator:
    """Creates deployments and provisions each one in its own background task.

    Steps within a deployment run strictly in order; separate deployments
    provision concurrently. The background task is the only writer of a
    deployment while it is ``preparing`` or ``deploying``, apart from the
    certificate id, which is attached whenever the claim's certificate
    becomes active. ``delete`` cancels the task and waits before touching
    the record.
    """

    def __init__(
        self,
        db: Database,
        settings: Settings,
        registry: DomainRegistry,
        config_store: ConfigStore,
        branding_sink: BrandingSink,
        object_store: ObjectStore,
    ):
        self.db = db
        self.settings = settings
        self.registry = registry
        self.config_store = config_store
        self.branding_sink = branding_sink
        self.object_store = object_store
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._progress: dict[str, _RunProgress] = {}
        self._deleting: set[str] = set()
        registry.add_settled_listener(self._attach_certificate)
        # Ensure steps are imported and registered
        import whitelabel.steps  # noqa: F401

    # --- Creation ---

    async def _resolve_theme(
        self, config: DeploymentConfig
    ) -> tuple[ResolvedTheme, ThemeValidation]:
        industry_default = await load_industry_theme(self.config_store, config.industry)
        theme = branding.resolve(industry_default, config.theme)
        validation = branding.validate_with_settings(theme, self.settings)
        if not validation.valid:
            raise ThemeInvalidError(validation.errors)
        return theme, validation

    def _validate_config(self, config: DeploymentConfig) -> DeploymentConfig:
        if not config.name:
            raise ValidationError("Deployment name is required")
        if not config.organization_id:
            raise ValidationError("organization_id is required")
        if not config.industry:
            raise ValidationError("industry is required")

        if config.custom_domain:
            domain, subdomain = self.registry.validate_domain(
                config.custom_domain, config.subdomain
            )
            if self.registry.is_claimed(domain, subdomain):
                fqdn = f"{subdomain}.{domain}" if subdomain else domain
                raise DomainInUseError(f"{fqdn} is already claimed")
            return config.model_copy(update={"custom_domain": domain, "subdomain": subdomain})

        if config.subdomain:
            # Without a custom domain the subdomain is the platform slug
            _, subdomain = self.registry.validate_domain(
                self.settings.platform_base_domain, config.subdomain
            )
            if subdomain and "." in subdomain:
                raise ValidationError(f"Platform subdomain {subdomain!r} must be a single label")
            return config.model_copy(update={"subdomain": subdomain})
        return config

    async def create_deployment(self, config: DeploymentConfig) -> Deployment:
        """Validate *config*, persist a ``preparing`` deployment and start provisioning.

        Raises ValidationError or ConflictError subclasses before anything is
        persisted.
        """
        config = self._validate_config(config)
        await self._resolve_theme(config)

        deployment = Deployment(
            organization_id=config.organization_id,
            name=config.name,
            config=config,
        )
        self.db.create_deployment(deployment)
        self.db.log_event(
            "deployment_created",
            f"Deployment {deployment.name!r} created",
            deployment_id=deployment.id,
        )
        deployments_total.labels(status=DeploymentStatus.PREPARING.value).inc()
        logger.info(
            "Deployment created",
            deployment_id=deployment.id,
            organization_id=deployment.organization_id,
            custom_domain=config.custom_domain,
        )

        self._progress[deployment.id] = _RunProgress()
        self._tasks[deployment.id] = asyncio.create_task(
            self._run(deployment.id), name=f"deployment-{deployment.id}"
        )
        return deployment

    # --- Provisioning ---

    def _require(self, deployment_id: str) -> Deployment:
        deployment = self.db.get_deployment(deployment_id)
        if deployment is None:
            raise NotFoundError(f"Deployment {deployment_id} not found")
        return deployment

    def _update_fields(self, deployment_id: str, **fields: Any) -> Deployment | None:
        deployment = self.db.get_deployment(deployment_id)
        if deployment is None:
            return None
        deployment = deployment.model_copy(update={**fields, "updated_at": utcnow()})
        self.db.save_deployment(deployment)
        return deployment

    def _set_status(
        self, deployment_id: str, status: DeploymentStatus, message: str | None = None
    ) -> Deployment:
        deployment = transition(self._require(deployment_id), status, message=message)
        self.db.save_deployment(deployment)
        deployments_total.labels(status=status.value).inc()
        return deployment

    def _report(self, deployment_id: str, message: str) -> None:
        progress = self._progress.get(deployment_id)
        if progress is not None:
            progress.message = message
        logger.debug("Progress", deployment_id=deployment_id, message=message)

    def _context(self, deployment: Deployment, state: RunState, correlation_id: str) -> StepContext:
        return StepContext(
            db=self.db,
            settings=self.settings,
            deployment=deployment,
            registry=self.registry,
            config_store=self.config_store,
            object_store=self.object_store,
            branding_sink=self.branding_sink,
            state=state,
            report=partial(self._report, deployment.id),
            update_deployment=partial(self._update_fields, deployment.id),
            correlation_id=correlation_id,
        )

    async def _run_step(self, step: AbstractStep, ctx: StepContext) -> None:
        deployment_id = ctx.deployment.id
        timeout = step.effective_timeout(self.settings)

        logger.info("Running step", step=step.name, step_num=step.step_number)
        self.db.log_event(
            "step_start",
            f"Running step {step.name}",
            deployment_id=deployment_id,
            step_name=step.name,
        )
        _t0 = time_mod.monotonic()
        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                result = await step.run(ctx)
        except TimeoutError as exc:
            if not deadline.expired():
                # Raised by the step itself, e.g. a provider call with its own timeout
                step_executions_total.labels(step_name=step.name, status="error").inc()
                raise
            step_executions_total.labels(step_name=step.name, status="timeout").inc()
            raise StepTimeoutError(f"Step {step.name} timed out after {timeout:g}s") from exc
        except asyncio.CancelledError:
            step_executions_total.labels(step_name=step.name, status="cancelled").inc()
            self.db.log_event(
                "step_cancelled",
                f"Step {step.name} cancelled",
                deployment_id=deployment_id,
                step_name=step.name,
            )
            raise
        except Exception:
            step_executions_total.labels(step_name=step.name, status="error").inc()
            raise
        step_duration_seconds.labels(step_name=step.name).observe(time_mod.monotonic() - _t0)
        step_executions_total.labels(step_name=step.name, status="success").inc()

        self.db.save_step_result(
            deployment_id=deployment_id,
            step_name=step.name,
            step_number=step.step_number,
            data_json=result.model_dump_json(),
        )
        self.db.log_event(
            "step_complete",
            f"Step {step.name} completed",
            deployment_id=deployment_id,
            step_name=step.name,
        )

    async def _run(self, deployment_id: str) -> None:
        correlation_id = uuid.uuid4().hex[:12]
        with deployment_context(deployment_id, correlation_id):
            await self._provision(deployment_id, correlation_id)

    async def _provision(self, deployment_id: str, correlation_id: str) -> None:
        progress = self._progress.setdefault(deployment_id, _RunProgress())
        deployments_in_flight.inc()
        step: AbstractStep | None = None
        try:
            self._set_status(deployment_id, DeploymentStatus.DEPLOYING)
            self.db.log_event(
                "deployment_start", "Provisioning started", deployment_id=deployment_id
            )

            state = RunState()
            for step in ordered_steps():
                progress.step_name = step.name
                progress.current_step = step.step_number
                progress.message = step.title
                deployment = self._update_fields(deployment_id, current_step=step.step_number)
                if deployment is None:
                    raise NotFoundError(f"Deployment {deployment_id} disappeared mid-provisioning")

                ctx = self._context(deployment, state, correlation_id)
                if step.should_skip(ctx):
                    logger.info("Step skipped", step=step.name, step_num=step.step_number)
                    step_executions_total.labels(step_name=step.name, status="skipped").inc()
                    self.db.log_event(
                        "step_skipped",
                        f"Step {step.name} skipped",
                        deployment_id=deployment_id,
                        step_name=step.name,
                    )
                else:
                    await self._run_step(step, ctx)
                progress.completed_steps = step.step_number

            self._set_status(deployment_id, DeploymentStatus.ACTIVE, message="Deployment active")
            self.db.log_event(
                "deployment_active", "All steps completed", deployment_id=deployment_id
            )
            logger.info("Deployment active")
        except asyncio.CancelledError:
            if deployment_id not in self._deleting:
                logger.warning("Provisioning cancelled", step=step.name if step else None)
                with contextlib.suppress(NotFoundError, InvalidStateTransition):
                    self._set_status(
                        deployment_id, DeploymentStatus.FAILED, message="Provisioning cancelled"
                    )
            raise
        except Exception as exc:
            step_name = step.name if step else ""
            message = f"{step_name}: {exc}" if step_name else str(exc)
            logger.error("Step failed", step=step_name, error=str(exc))
            self.db.log_event(
                "step_error", str(exc), deployment_id=deployment_id, step_name=step_name
            )
            try:
                self._set_status(deployment_id, DeploymentStatus.FAILED, message=message)
            except (NotFoundError, InvalidStateTransition):
                logger.warning("Could not mark deployment failed", exc_info=True)
            else:
                self.db.log_event("deployment_failed", message, deployment_id=deployment_id)
        finally:
            deployments_in_flight.dec()
            self._progress.pop(deployment_id, None)
            self._tasks.pop(deployment_id, None)

    # --- Queries ---

    def get_progress(self, deployment_id: str) -> Progress | None:
        """Progress snapshot, or None once the deployment is terminal or unknown."""
        deployment = self.db.get_deployment(deployment_id)
        if deployment is None or deployment.status not in IN_PROGRESS_STATUSES:
            return None
        progress = self._progress.get(deployment_id)
        if progress is None:
            progress = _RunProgress(current_step=deployment.current_step)
        completed = progress.completed_steps
        return Progress(
            deployment_id=deployment_id,
            step_name=progress.step_name,
            current_step=progress.current_step,
            total_steps=TOTAL_STEPS,
            percent_complete=round(completed / TOTAL_STEPS * 100, 2),
            message=progress.message,
            estimated_seconds_remaining=(
                (TOTAL_STEPS - completed) * self.settings.estimated_step_seconds
            ),
        )

    def get_deployment(self, deployment_id: str) -> Deployment:
        return self._require(deployment_id)

    def list_deployments(self, organization_id: str | None = None) -> list[Deployment]:
        return self.db.list_deployments(organization_id=organization_id)

    # --- Administrative transitions ---

    def suspend(self, deployment_id: str) -> Deployment:
        """Suspend an active deployment. Idempotent when already suspended."""
        deployment = self._require(deployment_id)
        if deployment.status == DeploymentStatus.SUSPENDED:
            return deployment
        deployment = self._set_status(
            deployment_id, DeploymentStatus.SUSPENDED, message="Suspended"
        )
        self.db.log_event(
            "deployment_suspended", "Deployment suspended", deployment_id=deployment_id
        )
        logger.info("Deployment suspended", deployment_id=deployment_id)
        return deployment

    async def _check_modules(self, config: DeploymentConfig) -> None:
        key = ArtifactKey(
            kind=ArtifactKind.TEMPLATE_PACK,
            industry=config.industry,
            artifact_id=config.template_pack_id,
        )
        artifact = await self.config_store.load(key)
        if artifact is None:
            raise NotFoundError(f"Template pack {key} not found in any layer")
        pack = parse_artifact(artifact)
        if not isinstance(pack, TemplatePack):
            raise ValidationError(f"{key} is not a template pack")
        missing = sorted(set(config.enabled_modules) - set(pack.modules))
        if missing:
            raise ValidationError(
                f"Modules {', '.join(missing)} are not offered by template pack {key}"
            )

    async def update(self, deployment_id: str, changes: DeploymentUpdate) -> Deployment:
        """Apply branding and feature changes to an active deployment.

        The theme is re-resolved and re-validated, and the branding sink is
        invoked once; nothing else is re-provisioned.
        """
        deployment = self._require(deployment_id)
        if deployment.status != DeploymentStatus.ACTIVE:
            raise InvalidStateTransition(
                f"Deployment {deployment_id}: update requires active, not {deployment.status.value}"
            )

        config_update: dict[str, object] = {}
        if changes.name is not None:
            if not changes.name.strip():
                raise ValidationError("Deployment name must not be empty")
            config_update["name"] = changes.name.strip()
        if changes.theme is not None:
            config_update["theme"] = merge_theme_overrides(deployment.config.theme, changes.theme)
        if changes.feature_flags is not None:
            config_update["feature_flags"] = changes.feature_flags
        if changes.enabled_modules is not None:
            config_update["enabled_modules"] = list(changes.enabled_modules)
        config = deployment.config.model_copy(update=config_update)

        if changes.enabled_modules is not None:
            await self._check_modules(config)
        theme, validation = await self._resolve_theme(config)

        deployment = deployment.model_copy(
            update={"name": config.name, "config": config, "updated_at": utcnow()}
        )
        await self.branding_sink.apply(deployment, theme)
        self.db.save_deployment(deployment)
        self.db.save_step_result(
            deployment_id=deployment_id,
            step_name="branding",
            step_number=BrandingStep.step_number,
            data_json=BrandingResult(
                deployment_id=deployment_id,
                theme=theme,
                contrast_ratio=validation.contrast_ratio,
            ).model_dump_json(),
        )
        self.db.log_event(
            "deployment_updated",
            f"Updated {', '.join(sorted(config_update)) or 'nothing'}",
            deployment_id=deployment_id,
        )
        logger.info("Deployment updated", deployment_id=deployment_id, fields=sorted(config_update))
        return deployment

    def _attach_certificate(self, claim: DomainClaim) -> None:
        if claim.ssl_status != SSLStatus.ACTIVE or not claim.certificate_id:
            return
        deployment = self.db.find_deployment_by_claim(claim.id)
        if deployment is None or deployment.certificate_id == claim.certificate_id:
            return
        self._update_fields(deployment.id, certificate_id=claim.certificate_id)
        self.db.log_event(
            "certificate_attached",
            f"Certificate {claim.certificate_id} attached",
            deployment_id=deployment.id,
        )
        logger.info(
            "Certificate attached",
            deployment_id=deployment.id,
            certificate_id=claim.certificate_id,
        )

    def _owned_claim_id(self, deployment: Deployment) -> str | None:
        if deployment.domain_claim_id:
            return deployment.domain_claim_id
        config = deployment.config
        if not config.custom_domain:
            return None
        # Claim created but not yet recorded when provisioning was cancelled
        claim = self.registry.find_claim(config.custom_domain, config.subdomain)
        if claim is None or claim.organization_id != deployment.organization_id:
            return None
        for other in self.db.list_deployments(organization_id=deployment.organization_id):
            if other.id != deployment.id and other.domain_claim_id == claim.id:
                return None
        return claim.id

    async def delete(self, deployment_id: str) -> None:
        """Delete a deployment from any state.

        An in-flight provisioning task is cancelled and awaited first, then
        the domain claim is released (revoking its certificate) and the
        deployment's objects, step results and record are removed.
        """
        self._require(deployment_id)

        task = self._tasks.get(deployment_id)
        if task is not None and not task.done():
            self._deleting.add(deployment_id)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        # A task cancelled before it started never reaches its own cleanup
        self._tasks.pop(deployment_id, None)
        self._progress.pop(deployment_id, None)
        try:
            deployment = self._require(deployment_id)
            claim_id = self._owned_claim_id(deployment)
            if claim_id is not None:
                try:
                    await self.registry.delete_claim(claim_id)
                except NotFoundError:
                    logger.info("Domain claim already gone", claim_id=claim_id)
                except Exception:
                    if deployment.status in IN_PROGRESS_STATUSES:
                        self._set_status(
                            deployment_id,
                            DeploymentStatus.FAILED,
                            message="Deletion failed while releasing the domain claim",
                        )
                    raise

            bucket = self.settings.artifact_bucket
            prefix = deployment_prefix(deployment_id) + "/"
            for info in await self.object_store.list(bucket, prefix):
                await self.object_store.delete(bucket, info.path)

            self.db.delete_deployment(deployment_id)
        finally:
            self._deleting.discard(deployment_id)

        deployments_total.labels(status="deleted").inc()
        self.db.log_event("deployment_deleted", f"Deployment {deployment_id} deleted")
        logger.info("Deployment deleted", deployment_id=deployment_id, claim_id=claim_id)

    # --- Task control ---

    async def wait_for(self, deployment_id: str, timeout: float | None = None) -> Deployment | None:
        """Wait for provisioning to finish; return the latest snapshot.

        The task keeps running if *timeout* elapses first. Returns None when
        the deployment was deleted.
        """
        task = self._tasks.get(deployment_id)
        if task is not None and not task.done():
            await asyncio.wait({task}, timeout=timeout)
        return self.db.get_deployment(deployment_id)

    async def shutdown(self) -> None:
        """Cancel in-flight provisioning and certificate work."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.registry.close()
        logger.info("Orchestrator shut down", cancelled=len(tasks))
