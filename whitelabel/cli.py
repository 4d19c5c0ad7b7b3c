"""Click CLI entry point for the white-label orchestrator."""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from whitelabel.config import Settings
from whitelabel.db import Database
from whitelabel.domains import DomainRegistry
from whitelabel.errors import WhitelabelError
from whitelabel.logging import configure_logging
from whitelabel.models.artifact import ArtifactKey, ArtifactKind
from whitelabel.models.deployment import IN_PROGRESS_STATUSES, DeploymentConfig
from whitelabel.models.theme import ThemeOverride
from whitelabel.orchestrator import DeploymentOrchestrator
from whitelabel.providers import Providers, build_providers
from whitelabel.store import ConfigStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


@dataclass
class _Stack:
    db: Database
    providers: Providers
    registry: DomainRegistry
    config_store: ConfigStore
    orchestrator: DeploymentOrchestrator


def _get_db(settings: Settings) -> Database:
    settings.ensure_data_dir()
    db = Database(settings.db_path)
    db.init_schema()
    return db


def _build_stack(settings: Settings) -> _Stack:
    db = _get_db(settings)
    providers = build_providers(settings)
    registry = DomainRegistry(db.Session, settings, providers.verifier, providers.certificates)
    config_store = ConfigStore.from_settings(settings, providers.object_store)
    orchestrator = DeploymentOrchestrator(
        db=db,
        settings=settings,
        registry=registry,
        config_store=config_store,
        branding_sink=providers.branding_sink,
        object_store=providers.object_store,
    )
    return _Stack(db, providers, registry, config_store, orchestrator)


def _run(ctx: click.Context, fn: Callable[[_Stack], Awaitable[Any]]) -> Any:
    """Build the stack, run *fn* on a fresh event loop, and tear everything down."""
    stack = _build_stack(ctx.obj["settings"])

    async def _main() -> Any:
        try:
            return await fn(stack)
        finally:
            await stack.orchestrator.shutdown()

    try:
        return asyncio.run(_main())
    except WhitelabelError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    finally:
        stack.db.close()


def _parse_key(raw: str) -> ArtifactKey:
    try:
        return ArtifactKey.parse(raw)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Hera white-label deployment orchestrator."""
    ctx.ensure_object(dict)
    settings = Settings()
    log_level = "DEBUG" if verbose else settings.log_level
    configure_logging(log_level=log_level, log_format=settings.log_format)
    ctx.obj["settings"] = settings
    ctx.obj["verbose"] = verbose


# --- Deployments ---


@cli.command()
@click.argument("name")
@click.option("--org", "organization_id", required=True, help="Owning organization id")
@click.option("--industry", default="generic_business", show_default=True)
@click.option("--template-pack", "template_pack_id", default="standard", show_default=True)
@click.option("--domain", "custom_domain", default=None, help="Custom domain to attach")
@click.option("--subdomain", default=None, help="Subdomain of the custom or platform domain")
@click.option(
    "--theme",
    "theme_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with a theme override",
)
@click.option("--module", "modules", multiple=True, help="Enabled module (repeatable)")
@click.option("--no-analytics", is_flag=True, help="Disable the analytics feature flag")
@click.option("--timeout", type=float, default=None, help="Give up waiting after N seconds")
@click.pass_context
def deploy(
    ctx: click.Context,
    name: str,
    organization_id: str,
    industry: str,
    template_pack_id: str,
    custom_domain: str | None,
    subdomain: str | None,
    theme_file: Path | None,
    modules: tuple[str, ...],
    no_analytics: bool,
    timeout: float | None,
) -> None:
    """Create a deployment and wait for provisioning to finish."""
    theme = ThemeOverride()
    if theme_file is not None:
        theme = ThemeOverride.model_validate(json.loads(theme_file.read_text()))
    config = DeploymentConfig(
        organization_id=organization_id,
        name=name,
        industry=industry,
        template_pack_id=template_pack_id,
        custom_domain=custom_domain,
        subdomain=subdomain,
        theme=theme,
        feature_flags={"analytics": not no_analytics},
        enabled_modules=list(modules),
    )

    async def _deploy(stack: _Stack) -> None:
        orchestrator = stack.orchestrator
        deployment = await orchestrator.create_deployment(config)
        click.echo(f"Created deployment {deployment.id} ({deployment.name})")

        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        records_shown = False
        while True:
            current = await orchestrator.wait_for(deployment.id, timeout=1.0)
            if current is None:
                click.echo("Deployment was deleted.")
                return
            if current.domain_claim_id and not records_shown:
                records_shown = True
                claim = stack.registry.get_claim(current.domain_claim_id)
                click.echo("Publish these DNS records:")
                for record in claim.records:
                    click.echo(f"  {record.type.value:<6} {record.name:<40} {record.value}")
            if current.status not in IN_PROGRESS_STATUSES:
                break
            if deadline is not None and loop.time() >= deadline:
                progress = orchestrator.get_progress(current.id)
                if progress is not None:
                    click.echo(f"Still at step {progress.current_step}: {progress.message}")
                click.echo("Timed out waiting; provisioning stops with this process.", err=True)
                return

        click.echo(f"Status: {current.status.value}")
        if current.url:
            click.echo(f"URL: {current.url}")
        if current.status_message:
            click.echo(f"Message: {current.status_message}")

    _run(ctx, _deploy)


@cli.command()
@click.argument("deployment_id")
@click.option("--log", "show_log", is_flag=True, help="Show the deployment event log")
@click.option("--step", default=None, help="Print one step's stored result")
@click.pass_context
def status(ctx: click.Context, deployment_id: str, show_log: bool, step: str | None) -> None:
    """Show a deployment's state, step results and log."""
    settings = ctx.obj["settings"]
    db = _get_db(settings)
    try:
        deployment = db.get_deployment(deployment_id)
        if deployment is None:
            click.echo(f"Deployment {deployment_id} not found.", err=True)
            sys.exit(1)

        click.echo(f"Deployment {deployment.id}: {deployment.name}")
        click.echo(f"  Organization: {deployment.organization_id}")
        click.echo(f"  Status: {deployment.status.value}")
        click.echo(f"  Step: {deployment.current_step}/7")
        if deployment.url:
            click.echo(f"  URL: {deployment.url}")
        if deployment.region:
            click.echo(f"  Region: {deployment.region}")
        if deployment.certificate_id:
            click.echo(f"  Certificate: {deployment.certificate_id}")
        if deployment.status_message:
            click.echo(f"  Message: {deployment.status_message}")

        if step:
            result = db.get_step_result(deployment_id, step)
            if result:
                click.echo(f"\nStep '{step}' result:")
                click.echo(json.dumps(result["data"], indent=2))
            else:
                click.echo(f"No result for step '{step}'")
        else:
            results = db.get_all_step_results(deployment_id)
            if results:
                click.echo("\nCompleted steps:")
                for r in results:
                    click.echo(f"  Step {r['step_number']}: {r['step_name']}")

        if show_log:
            click.echo("\nDeployment log:")
            for entry in db.get_log(deployment_id):
                click.echo(f"  [{entry['created_at']}] {entry['event']}: {entry['message']}")
    finally:
        db.close()


@cli.command("list")
@click.option("--org", "organization_id", default=None, help="Filter by organization")
@click.pass_context
def list_deployments(ctx: click.Context, organization_id: str | None) -> None:
    """List deployments."""
    settings = ctx.obj["settings"]
    db = _get_db(settings)
    try:
        deployments = db.list_deployments(organization_id=organization_id)
        if not deployments:
            click.echo("No deployments found.")
            return
        for d in deployments:
            click.echo(
                f"  {d.id}  {d.status.value:<10} step {d.current_step}/7  "
                f"{d.organization_id}  {d.name}  {d.url}"
            )
    finally:
        db.close()


@cli.command()
@click.argument("deployment_id")
@click.pass_context
def suspend(ctx: click.Context, deployment_id: str) -> None:
    """Suspend an active deployment."""

    async def _suspend(stack: _Stack) -> None:
        deployment = stack.orchestrator.suspend(deployment_id)
        click.echo(f"Deployment {deployment.id} is {deployment.status.value}")

    _run(ctx, _suspend)


@cli.command()
@click.argument("deployment_id")
@click.confirmation_option(prompt="Delete this deployment and release its domain?")
@click.pass_context
def delete(ctx: click.Context, deployment_id: str) -> None:
    """Delete a deployment, releasing its domain claim and certificate."""

    async def _delete(stack: _Stack) -> None:
        await stack.orchestrator.delete(deployment_id)
        click.echo(f"Deleted deployment {deployment_id}")

    _run(ctx, _delete)


# --- Domains ---


@cli.group()
def domain() -> None:
    """Custom-domain claims."""


@domain.command("add")
@click.argument("organization_id")
@click.argument("domain_name")
@click.option("--subdomain", default=None)
@click.pass_context
def domain_add(
    ctx: click.Context, organization_id: str, domain_name: str, subdomain: str | None
) -> None:
    """Claim DOMAIN_NAME for ORGANIZATION_ID and print the records to publish."""

    async def _add(stack: _Stack) -> None:
        claim = await stack.registry.add_domain(organization_id, domain_name, subdomain)
        click.echo(f"Claim {claim.id} for {claim.fqdn} (expires {claim.expires_at:%Y-%m-%d})")
        for record in claim.records:
            flag = "required" if record.required else "optional"
            click.echo(f"  {record.type.value:<6} {record.name:<40} {record.value}  [{flag}]")

    _run(ctx, _add)


@domain.command("records")
@click.argument("claim_id")
@click.pass_context
def domain_records(ctx: click.Context, claim_id: str) -> None:
    """Show a claim's DNS records and their status."""

    async def _records(stack: _Stack) -> None:
        claim = stack.registry.get_claim(claim_id)
        click.echo(f"{claim.fqdn}: {claim.verification_status.value}")
        for record in claim.records:
            click.echo(
                f"  {record.type.value:<6} {record.name:<40} {record.value}  "
                f"ttl={record.ttl} {record.status.value}"
            )

    _run(ctx, _records)


@domain.command("verify")
@click.argument("claim_id")
@click.option("--wait-certificate", type=float, default=0.0, help="Seconds to wait for TLS")
@click.pass_context
def domain_verify(ctx: click.Context, claim_id: str, wait_certificate: float) -> None:
    """Check a claim's DNS records now."""

    async def _verify(stack: _Stack) -> None:
        result = await stack.registry.verify(claim_id)
        click.echo(f"Verified: {result.verified} ({result.status.value})")
        for step in result.next_steps:
            click.echo(f"  - {step}")
        if result.estimated_time:
            click.echo(f"Estimated time: {result.estimated_time}")
        if result.verified and wait_certificate > 0:
            claim = await stack.registry.wait_for_certificate(claim_id, timeout=wait_certificate)
            ssl = claim.ssl_status.value if claim.ssl_status else "none"
            click.echo(f"SSL: {ssl}")

    _run(ctx, _verify)


@domain.command("list")
@click.argument("organization_id")
@click.pass_context
def domain_list(ctx: click.Context, organization_id: str) -> None:
    """List an organization's claims."""

    async def _list(stack: _Stack) -> None:
        claims = stack.registry.list_for_organization(organization_id)
        if not claims:
            click.echo("No domain claims found.")
            return
        for claim in claims:
            ssl = claim.ssl_status.value if claim.ssl_status else "-"
            click.echo(
                f"  {claim.id}  {claim.fqdn:<40} {claim.verification_status.value:<9} ssl={ssl}"
            )

    _run(ctx, _list)


@domain.command("remove")
@click.argument("claim_id")
@click.pass_context
def domain_remove(ctx: click.Context, claim_id: str) -> None:
    """Delete a claim, revoking any issued certificate."""

    async def _remove(stack: _Stack) -> None:
        await stack.registry.delete_claim(claim_id)
        click.echo(f"Removed claim {claim_id}")

    _run(ctx, _remove)


@domain.command("expire")
@click.pass_context
def domain_expire(ctx: click.Context) -> None:
    """Expire pending claims older than the claim TTL."""

    async def _expire(stack: _Stack) -> None:
        count = stack.registry.expire_stale()
        click.echo(f"Expired {count} stale claims")

    _run(ctx, _expire)


# --- Config store ---


@cli.group()
def cache() -> None:
    """Config store caches."""


@cache.command("stats")
@click.pass_context
def cache_stats(ctx: click.Context) -> None:
    """Show cache layer statistics."""

    async def _stats(stack: _Stack) -> None:
        click.echo(json.dumps(stack.config_store.stats(), indent=2))

    _run(ctx, _stats)


@cache.command("invalidate")
@click.argument("key", required=False)
@click.option("--all", "invalidate_all", is_flag=True, help="Evict every cached artifact")
@click.pass_context
def cache_invalidate(ctx: click.Context, key: str | None, invalidate_all: bool) -> None:
    """Evict KEY (kind/industry/id) or everything from the caches."""
    if not key and not invalidate_all:
        click.echo("Error: provide an artifact key or use --all", err=True)
        sys.exit(1)
    artifact_key = _parse_key(key) if key else None

    async def _invalidate(stack: _Stack) -> None:
        if artifact_key is None:
            removed = stack.config_store.invalidate_all()
            click.echo(f"Evicted {removed} cached entries")
        else:
            stack.config_store.invalidate(artifact_key)
            click.echo(f"Evicted {artifact_key}")

    _run(ctx, _invalidate)


@cli.group()
def artifact() -> None:
    """Configuration artifacts."""


@artifact.command("upload")
@click.argument("key")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--overwrite", is_flag=True, help="Replace an existing artifact")
@click.pass_context
def artifact_upload(ctx: click.Context, key: str, path: Path, overwrite: bool) -> None:
    """Validate and upload the JSON file at PATH as KEY (kind/industry/id)."""
    artifact_key = _parse_key(key)
    content = path.read_bytes()

    async def _upload(stack: _Stack) -> None:
        saved = await stack.config_store.save(artifact_key, content, overwrite=overwrite)
        click.echo(f"Uploaded {saved.key} ({saved.metadata.size} bytes, v{saved.metadata.version})")

    _run(ctx, _upload)


@artifact.command("list")
@click.argument("kind", type=click.Choice([k.value for k in ArtifactKind]))
@click.option("--industry", default=None)
@click.pass_context
def artifact_list(ctx: click.Context, kind: str, industry: str | None) -> None:
    """List artifacts of KIND across the durable store and bundled defaults."""

    async def _list(stack: _Stack) -> None:
        keys = await stack.config_store.list_artifacts(ArtifactKind(kind), industry)
        if not keys:
            click.echo("No artifacts found.")
            return
        for k in keys:
            click.echo(f"  {k}")

    _run(ctx, _list)
