"""Pluggable backends for verification, certificates, storage and theming.

Business logic only sees the Protocols in ``whitelabel.protocols``;
``build_providers`` picks concrete implementations from settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from whitelabel.providers.cloudflare import CloudflareCertificateProvider
from whitelabel.providers.dns import DnsOverHttpsVerifier
from whitelabel.providers.filesystem import FilesystemObjectStore
from whitelabel.providers.memory import (
    InMemoryObjectStore,
    StaticVerificationProvider,
    StubCertificateProvider,
    absolute_name,
)
from whitelabel.providers.sink import ObjectStoreThemeSink, deployment_prefix

if TYPE_CHECKING:
    from whitelabel.config import Settings
    from whitelabel.protocols import (
        BrandingSink,
        CertificateProvider,
        ObjectStore,
        VerificationProvider,
    )


@dataclass(frozen=True, slots=True)
class Providers:
    verifier: VerificationProvider
    certificates: CertificateProvider
    object_store: ObjectStore
    branding_sink: BrandingSink


def build_providers(settings: Settings) -> Providers:
    """Wire provider implementations from *settings*."""
    if settings.verification_backend == "doh":
        verifier: VerificationProvider = DnsOverHttpsVerifier(
            endpoint=settings.doh_endpoint,
            max_retries=settings.provider_max_retries,
        )
    else:
        verifier = StaticVerificationProvider(accept_all=True)

    certificates = CloudflareCertificateProvider(
        api_token=settings.cloudflare_api_token,
        zone_id=settings.cloudflare_zone_id,
        max_retries=settings.provider_max_retries,
    )
    object_store = FilesystemObjectStore(settings.resolved_object_store_root)
    return Providers(
        verifier=verifier,
        certificates=certificates,
        object_store=object_store,
        branding_sink=ObjectStoreThemeSink(object_store, settings.artifact_bucket),
    )


__all__ = [
    "CloudflareCertificateProvider",
    "DnsOverHttpsVerifier",
    "FilesystemObjectStore",
    "InMemoryObjectStore",
    "ObjectStoreThemeSink",
    "Providers",
    "StaticVerificationProvider",
    "StubCertificateProvider",
    "absolute_name",
    "build_providers",
    "deployment_prefix",
]
