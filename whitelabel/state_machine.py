"""Deployment lifecycle transitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from whitelabel.errors import InvalidStateTransition
from whitelabel.models.base import utcnow
from whitelabel.models.deployment import Deployment, DeploymentStatus

if TYPE_CHECKING:
    from datetime import datetime

# Deletion is allowed from every state and is handled outside this table.
ALLOWED_TRANSITIONS: dict[DeploymentStatus, frozenset[DeploymentStatus]] = {
    DeploymentStatus.PREPARING: frozenset({DeploymentStatus.DEPLOYING, DeploymentStatus.FAILED}),
    DeploymentStatus.DEPLOYING: frozenset({DeploymentStatus.ACTIVE, DeploymentStatus.FAILED}),
    DeploymentStatus.ACTIVE: frozenset({DeploymentStatus.SUSPENDED}),
    DeploymentStatus.SUSPENDED: frozenset(),
    DeploymentStatus.FAILED: frozenset(),
}


def can_transition(current: DeploymentStatus, new: DeploymentStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def transition(
    deployment: Deployment,
    new_status: DeploymentStatus,
    *,
    message: str | None = None,
    now: datetime | None = None,
) -> Deployment:
    """Return a copy of *deployment* moved to *new_status*.

    Same-state transitions are no-ops. ``deployed_at`` is stamped the first
    time a deployment reaches ``active`` and never cleared afterwards.
    """
    if deployment.status == new_status:
        return deployment

    if not can_transition(deployment.status, new_status):
        raise InvalidStateTransition(
            f"Deployment {deployment.id}: cannot transition from "
            f"{deployment.status.value} to {new_status.value}"
        )

    now = now or utcnow()
    update: dict[str, object] = {"status": new_status, "updated_at": now}
    if new_status == DeploymentStatus.ACTIVE and deployment.deployed_at is None:
        update["deployed_at"] = now
    if message is not None:
        update["status_message"] = message
    return deployment.model_copy(update=update)
