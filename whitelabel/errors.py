"""Error taxonomy for provisioning, domains and the config store.

Validation and conflict errors are raised synchronously to callers and never
leave a persisted record behind. Provider errors raised inside a background
provisioning run are recorded on the deployment instead of propagating.
"""

from __future__ import annotations


class WhitelabelError(Exception):
    """Base class for all white-label errors."""


# --- Validation ---


class ValidationError(WhitelabelError):
    """Invalid input, rejected before any state change."""


class DomainInvalidError(ValidationError):
    """Domain or subdomain is not a valid hostname."""


class ThemeInvalidError(ValidationError):
    """Resolved theme failed validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Theme validation failed")


class ArtifactValidationError(ValidationError):
    """Artifact content does not match the schema for its kind."""


# --- Conflicts ---


class ConflictError(WhitelabelError):
    """Request conflicts with existing state."""


class DomainInUseError(ConflictError):
    """The (domain, subdomain) tuple is already claimed."""


class ArtifactExistsError(ConflictError):
    """Artifact already exists and overwrite was not requested."""


class InvalidStateTransition(ConflictError):
    """Operation is not allowed from the deployment's current state."""


# --- Providers ---


class ProviderError(WhitelabelError):
    """A verification, certificate or storage backend failed."""


class VerificationProviderError(ProviderError):
    pass


class CertificateProviderError(ProviderError):
    pass


class ObjectStoreError(ProviderError):
    pass


class StepTimeoutError(ProviderError):
    """A provisioning step exceeded its time limit."""


class DomainClaimExpiredError(ProviderError):
    """A pending domain claim hit its TTL before DNS verified."""


# --- Lookup ---


class NotFoundError(WhitelabelError):
    """Unknown deployment, claim or artifact."""
