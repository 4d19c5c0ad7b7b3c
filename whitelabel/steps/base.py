"""Abstract base class for provisioning steps and step context."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from whitelabel.providers.sink import deployment_prefix

if TYPE_CHECKING:
    from collections.abc import Callable

    from pydantic import BaseModel

    from whitelabel.config import Settings
    from whitelabel.db import Database
    from whitelabel.domains import DomainRegistry
    from whitelabel.models.artifact import TemplatePack
    from whitelabel.models.deployment import Deployment
    from whitelabel.models.theme import ResolvedTheme
    from whitelabel.protocols import BrandingSink, ObjectStore
    from whitelabel.store import ConfigStore

logger = structlog.get_logger()

TOTAL_STEPS = 7


@dataclass(slots=True)
class RunState:
    """Values produced by earlier steps and read by later ones within one run."""

    claim_id: str | None = None
    fqdn: str | None = None
    template_pack: TemplatePack | None = None
    theme: ResolvedTheme | None = None
    theme_applied: bool = False
    region: str = ""


@dataclass(frozen=True, slots=True)
class StepContext:
    """Bundles everything a step needs to execute."""

    db: Database
    settings: Settings
    deployment: Deployment
    registry: DomainRegistry
    config_store: ConfigStore
    object_store: ObjectStore
    branding_sink: BrandingSink
    state: RunState = field(default_factory=RunState)
    report: Callable[[str], None] = lambda _message: None
    update_deployment: Callable[..., Any] = lambda **_fields: None
    correlation_id: str = ""


class AbstractStep(ABC):
    """Base class for all provisioning steps."""

    name: str = ""
    step_number: int = -1
    title: str = ""
    # None means the orchestrator's default step timeout applies
    timeout_seconds: float | None = None
    # Steps bounded by their own policy (e.g. a claim TTL) opt out of the timeout
    uses_step_timeout: bool = True

    @abstractmethod
    async def run(self, ctx: StepContext) -> BaseModel:
        """Execute this step. Returns a Pydantic model to be stored."""
        ...

    def should_skip(self, _ctx: StepContext) -> bool:
        """Override to skip this step conditionally (e.g., no custom domain)."""
        return False

    def effective_timeout(self, settings: Settings) -> float | None:
        if not self.uses_step_timeout:
            return None
        return self.timeout_seconds or settings.step_timeout_seconds


# Global step registry
_step_registry: dict[int, AbstractStep] = {}


def register_step(cls: type[AbstractStep]) -> type[AbstractStep]:
    """Decorator that registers a step class by its step_number."""
    instance = cls()
    if not 1 <= instance.step_number <= TOTAL_STEPS:
        raise ValueError(f"Step {cls.__name__} must define step_number in 1..{TOTAL_STEPS}")
    if instance.step_number in _step_registry:
        existing = _step_registry[instance.step_number]
        raise ValueError(
            f"Step number {instance.step_number} already registered by "
            f"{existing.__class__.__name__}"
        )
    _step_registry[instance.step_number] = instance
    logger.debug("Registered step", step_number=instance.step_number, step_name=instance.name)
    return cls


def ordered_steps() -> list[AbstractStep]:
    return [_step_registry[n] for n in sorted(_step_registry)]


def deployment_path(deployment_id: str, name: str) -> str:
    return f"{deployment_prefix(deployment_id)}/{name}"
