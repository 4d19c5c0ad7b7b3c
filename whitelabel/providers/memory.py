"""In-process providers for development and tests.

Each mirrors a real backend closely enough to drive the orchestrator end to
end: published records are checked exactly, certificates activate after a
configurable number of polls, and objects live in a dict.
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import timedelta

import structlog

from whitelabel.errors import (
    CertificateProviderError,
    ObjectStoreError,
    VerificationProviderError,
)
from whitelabel.models.base import utcnow
from whitelabel.models.domain import CertificateHandle, DNSRecord, RecordType, SSLStatus
from whitelabel.protocols import ObjectInfo

logger = structlog.get_logger()


def absolute_name(name: str, domain: str) -> str:
    """Expand a registrar-relative record name (``@`` is the apex) to an FQDN."""
    labels = [label for label in name.split(".") if label and label != "@"]
    return ".".join([*labels, domain]) if labels else domain


class StaticVerificationProvider:
    """Verification against an in-memory table of published records.

    With ``accept_all`` every record check passes and TXT lookups echo the
    expected value, which is the usual development setting.
    """

    def __init__(self, accept_all: bool = False) -> None:
        self.accept_all = accept_all
        self._published: dict[tuple[str, RecordType], str] = {}
        # Last expected value seen per record in accept_all mode
        self._echoed: dict[tuple[str, RecordType], str] = {}
        self._failing: dict[RecordType, str] = {}
        self._raising: set[RecordType] = set()
        self.checks = 0

    def publish(self, record: DNSRecord, domain: str, value: str | None = None) -> None:
        self._published[(absolute_name(record.name, domain), record.type)] = (
            record.value if value is None else value
        )

    def publish_all(self, records: list[DNSRecord], domain: str) -> None:
        for record in records:
            self.publish(record, domain)

    def unpublish_all(self) -> None:
        self._published.clear()
        self._echoed.clear()

    def fail(self, record_type: RecordType, reason: str = "record not found") -> None:
        """Make checks for *record_type* return False regardless of what is published."""
        self._failing[record_type] = reason

    def break_backend(self, record_type: RecordType) -> None:
        """Make checks for *record_type* raise, simulating an unreachable resolver."""
        self._raising.add(record_type)

    def heal(self) -> None:
        self._failing.clear()
        self._raising.clear()

    async def check_record(self, record: DNSRecord, domain: str) -> bool:
        self.checks += 1
        if record.type in self._raising:
            raise VerificationProviderError(f"resolver unavailable for {record.type} lookups")
        if record.type in self._failing:
            return False
        key = (absolute_name(record.name, domain), record.type)
        if self.accept_all and key not in self._published:
            # Anything not explicitly published counts as published with the expected value
            self._echoed[key] = record.value
            return True
        return self._published.get(key) == record.value

    async def lookup_txt(self, name: str, domain: str) -> str:
        if RecordType.TXT in self._raising:
            raise VerificationProviderError("resolver unavailable for TXT lookups")
        if RecordType.TXT in self._failing:
            return ""
        key = (absolute_name(name, domain), RecordType.TXT)
        if key in self._published:
            return self._published[key]
        return self._echoed.get(key, "") if self.accept_all else ""


class StubCertificateProvider:
    """Certificates that turn ``active`` after *polls_until_active* status calls.

    Counts ``issue`` and ``revoke`` per handle so tests can assert exactly-once
    semantics.
    """

    def __init__(
        self,
        polls_until_active: int = 1,
        fail_issuance: bool = False,
        validity_days: int = 90,
    ) -> None:
        self.polls_until_active = polls_until_active
        self.fail_issuance = fail_issuance
        self.validity_days = validity_days
        self.issued: dict[str, CertificateHandle] = {}
        self.revoked: list[str] = []
        self.issue_calls = 0
        self._polls: dict[str, int] = {}

    @property
    def revoke_calls(self) -> int:
        return len(self.revoked)

    async def issue(self, domain: str) -> CertificateHandle:
        self.issue_calls += 1
        handle = CertificateHandle(id=f"cert-{uuid.uuid4().hex[:12]}", domain=domain)
        self.issued[handle.id] = handle
        self._polls[handle.id] = 0
        logger.debug("Stub certificate issued", certificate_id=handle.id, domain=domain)
        return handle

    async def status(self, handle: CertificateHandle) -> CertificateHandle:
        if handle.id not in self.issued:
            raise CertificateProviderError(f"Unknown certificate {handle.id}")
        if handle.id in self.revoked:
            return handle.model_copy(update={"status": SSLStatus.FAILED, "detail": "revoked"})
        if self.fail_issuance:
            return handle.model_copy(
                update={"status": SSLStatus.FAILED, "detail": "CA rejected the request"}
            )
        self._polls[handle.id] += 1
        if self._polls[handle.id] < self.polls_until_active:
            return handle
        now = utcnow()
        return handle.model_copy(
            update={
                "status": SSLStatus.ACTIVE,
                "issued_at": now,
                "expires_at": now + timedelta(days=self.validity_days),
            }
        )

    async def revoke(self, handle: CertificateHandle) -> None:
        if handle.id not in self.issued:
            raise CertificateProviderError(f"Unknown certificate {handle.id}")
        self.revoked.append(handle.id)
        logger.debug("Stub certificate revoked", certificate_id=handle.id)


class InMemoryObjectStore:
    """Dict-backed object store."""

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str], tuple[bytes, ObjectInfo]] = {}
        self.fail_reads = False

    async def get(self, bucket: str, path: str) -> bytes | None:
        if self.fail_reads:
            raise ObjectStoreError(f"object store unavailable reading {bucket}/{path}")
        entry = self._objects.get((bucket, path))
        return entry[0] if entry else None

    async def put(
        self, bucket: str, path: str, data: bytes, *, overwrite: bool = False
    ) -> ObjectInfo:
        if not overwrite and (bucket, path) in self._objects:
            raise FileExistsError(f"{bucket}/{path}")
        info = ObjectInfo(
            bucket=bucket,
            path=path,
            size=len(data),
            last_modified=utcnow(),
            etag=hashlib.md5(data, usedforsecurity=False).hexdigest(),
        )
        self._objects[(bucket, path)] = (data, info)
        return info

    async def list(self, bucket: str, prefix: str = "") -> list[ObjectInfo]:
        return sorted(
            (
                info
                for (b, path), (_, info) in self._objects.items()
                if b == bucket and path.startswith(prefix)
            ),
            key=lambda info: info.path,
        )

    async def delete(self, bucket: str, path: str) -> bool:
        return self._objects.pop((bucket, path), None) is not None
