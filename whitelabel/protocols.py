"""Port interfaces (Protocols) for pluggable provisioning backends."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from whitelabel.models.deployment import Deployment
    from whitelabel.models.domain import CertificateHandle, DNSRecord
    from whitelabel.models.theme import ResolvedTheme


class ObjectInfo(BaseModel):
    """Listing entry returned by an object store."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    path: str
    size: int
    last_modified: datetime
    etag: str = ""


@runtime_checkable
class VerificationProvider(Protocol):
    """Checks that a tenant published the DNS records a claim requires."""

    async def check_record(self, record: DNSRecord, domain: str) -> bool: ...

    async def lookup_txt(self, name: str, domain: str) -> str: ...


@runtime_checkable
class CertificateProvider(Protocol):
    """Issues and revokes TLS certificates for verified hostnames.

    ``issue`` returns as soon as the request is accepted; completion is
    observed by polling ``status``.
    """

    async def issue(self, domain: str) -> CertificateHandle: ...

    async def status(self, handle: CertificateHandle) -> CertificateHandle: ...

    async def revoke(self, handle: CertificateHandle) -> None: ...


@runtime_checkable
class ObjectStore(Protocol):
    """Durable blob storage for configuration artifacts and deployment outputs."""

    async def get(self, bucket: str, path: str) -> bytes | None: ...

    async def put(
        self, bucket: str, path: str, data: bytes, *, overwrite: bool = False
    ) -> ObjectInfo: ...

    async def list(self, bucket: str, prefix: str = "") -> list[ObjectInfo]: ...

    async def delete(self, bucket: str, path: str) -> bool: ...


@runtime_checkable
class BrandingSink(Protocol):
    """Consumer of validated themes (the rendering layer)."""

    async def apply(self, deployment: Deployment, theme: ResolvedTheme) -> None: ...
