"""Domain registry: custom-domain claims, DNS verification and certificate jobs.

A claim moves ``pending -> verified`` once every required record resolves and
the TXT token matches, or ``pending -> expired`` when it outlives the claim
TTL. Verification kicks off a background certificate job that drives
``ssl_status`` from ``pending`` to ``active`` or ``failed``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import re
import secrets
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from whitelabel.db.orm import (
    DomainClaimRow,
    _utcnow_str,
    parse_timestamp,
    parse_timestamp_opt,
    to_timestamp,
)
from whitelabel.errors import (
    DomainInUseError,
    DomainInvalidError,
    NotFoundError,
    VerificationProviderError,
    WhitelabelError,
)
from whitelabel.metrics import certificate_operations_total, verification_attempts_total
from whitelabel.models.base import utcnow
from whitelabel.models.domain import (
    VERIFICATION_RECORD_PREFIX,
    VERIFICATION_VALUE_PREFIX,
    CertificateHandle,
    DNSRecord,
    DomainClaim,
    RecordStatus,
    RecordType,
    SSLStatus,
    VerificationResult,
    VerificationStatus,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session, sessionmaker

    from whitelabel.config import Settings
    from whitelabel.protocols import CertificateProvider, VerificationProvider

logger = structlog.get_logger()

_LABEL_RE = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")
_MAX_FQDN = 253

PROPAGATION_ESTIMATE = "5-30 minutes"


def _normalize(value: str) -> str:
    return value.strip().lower().rstrip(".")


def _check_labels(value: str, what: str) -> list[str]:
    labels = value.split(".")
    for label in labels:
        if not _LABEL_RE.match(label):
            raise DomainInvalidError(f"Invalid {what} {value!r}: bad label {label!r}")
    return labels


def validate_domain(domain: str, subdomain: str | None = None) -> tuple[str, str | None]:
    """Normalize and validate a domain/subdomain pair.

    Returns the lowercased ``(domain, subdomain)``; a blank subdomain becomes
    None. Raises DomainInvalidError.
    """
    if not domain or not domain.strip():
        raise DomainInvalidError("Domain is required")
    norm_domain = _normalize(domain)
    labels = _check_labels(norm_domain, "domain")
    if len(labels) < 2:
        raise DomainInvalidError(f"Invalid domain {domain!r}: expected at least two labels")
    if labels[-1].isdigit():
        raise DomainInvalidError(f"Invalid domain {domain!r}: top-level label is numeric")

    norm_sub: str | None = None
    if subdomain is not None and subdomain.strip():
        norm_sub = _normalize(subdomain)
        _check_labels(norm_sub, "subdomain")

    fqdn = f"{norm_sub}.{norm_domain}" if norm_sub else norm_domain
    if len(fqdn) > _MAX_FQDN:
        raise DomainInvalidError(f"Invalid domain {fqdn!r}: longer than {_MAX_FQDN} characters")
    return norm_domain, norm_sub


def build_required_records(
    subdomain: str | None,
    token: str,
    *,
    ingress_ip: str,
    ingress_hostname: str,
    ttl: int = 3600,
) -> list[DNSRecord]:
    """Records a tenant must publish: A and TXT (required), ``www`` CNAME for apex claims."""
    host = subdomain or "@"
    records = [
        DNSRecord(type=RecordType.A, name=host, value=ingress_ip, ttl=ttl),
        DNSRecord(
            type=RecordType.TXT,
            name=f"{VERIFICATION_RECORD_PREFIX}.{host}",
            value=f"{VERIFICATION_VALUE_PREFIX}{token}",
            ttl=ttl,
        ),
    ]
    if not subdomain:
        records.append(
            DNSRecord(
                type=RecordType.CNAME,
                name="www",
                value=ingress_hostname,
                ttl=ttl,
                required=False,
            )
        )
    return records


def _row_to_claim(row: DomainClaimRow) -> DomainClaim:
    return DomainClaim(
        id=row.id,
        organization_id=row.organization_id,
        domain=row.domain,
        subdomain=row.subdomain,
        verification_token=row.verification_token,
        records=[DNSRecord.model_validate(r) for r in json.loads(row.records_json)],
        verification_status=VerificationStatus(row.verification_status),
        verification_attempts=row.verification_attempts,
        last_checked_at=parse_timestamp_opt(row.last_checked_at),
        verified_at=parse_timestamp_opt(row.verified_at),
        ssl_status=SSLStatus(row.ssl_status) if row.ssl_status else None,
        certificate_id=row.certificate_id,
        created_at=parse_timestamp(row.created_at),
        updated_at=parse_timestamp(row.updated_at),
        expires_at=parse_timestamp(row.expires_at),
    )


def _dump_records(records: list[DNSRecord]) -> str:
    return json.dumps([r.model_dump(mode="json") for r in records])


class DomainRegistry:
    """Owns custom-domain claims and their certificate lifecycle."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: Settings,
        verifier: VerificationProvider,
        certificates: CertificateProvider,
    ) -> None:
        self._session_factory = session_factory
        self.settings = settings
        self.verifier = verifier
        self.certificates = certificates
        self._jobs: dict[str, asyncio.Task[None]] = {}
        self._issuing: dict[str, asyncio.Task[CertificateHandle]] = {}
        self._handles: dict[str, CertificateHandle] = {}
        # Claims whose certificate was revoked but whose row is not yet deleted
        self._revoked_claims: set[str] = set()
        self._delete_lock = asyncio.Lock()
        self._settled_listeners: list[Callable[[DomainClaim], None]] = []

    def add_settled_listener(self, listener: Callable[[DomainClaim], None]) -> None:
        """Call *listener* with the claim whenever its certificate job settles."""
        self._settled_listeners.append(listener)

    # --- Validation and records ---

    validate_domain = staticmethod(validate_domain)

    def required_records(self, claim: DomainClaim) -> list[DNSRecord]:
        return build_required_records(
            claim.subdomain,
            claim.verification_token,
            ingress_ip=self.settings.ingress_ip,
            ingress_hostname=self.settings.ingress_hostname,
            ttl=self.settings.dns_record_ttl,
        )

    # --- Claims ---

    async def add_domain(
        self,
        organization_id: str,
        domain: str,
        subdomain: str | None = None,
    ) -> DomainClaim:
        """Create a pending claim. Raises DomainInvalidError or DomainInUseError."""
        if not organization_id or not organization_id.strip():
            raise DomainInvalidError("organization_id is required")
        domain, subdomain = validate_domain(domain, subdomain)

        now = utcnow()
        claim = DomainClaim(
            organization_id=organization_id,
            domain=domain,
            subdomain=subdomain,
            verification_token=secrets.token_urlsafe(24),
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(hours=self.settings.domain_claim_ttl_hours),
        )
        claim = claim.model_copy(update={"records": self.required_records(claim)})

        with self._session_factory() as session:
            # Use raw DBAPI connection for BEGIN IMMEDIATE (SQLite atomicity)
            raw_conn = session.connection().connection.dbapi_connection
            raw_conn.execute("BEGIN IMMEDIATE")
            try:
                self._expire_stale_in(session)

                existing = session.scalars(
                    select(DomainClaimRow).where(
                        DomainClaimRow.fqdn == claim.fqdn,
                        DomainClaimRow.verification_status != VerificationStatus.EXPIRED.value,
                    )
                ).first()
                if existing:
                    raw_conn.execute("ROLLBACK")
                    raise DomainInUseError(f"{claim.fqdn} is already claimed")

                session.add(
                    DomainClaimRow(
                        id=claim.id,
                        organization_id=claim.organization_id,
                        domain=claim.domain,
                        subdomain=claim.subdomain,
                        fqdn=claim.fqdn,
                        verification_token=claim.verification_token,
                        records_json=_dump_records(claim.records),
                        verification_status=claim.verification_status.value,
                        created_at=to_timestamp(now),
                        updated_at=to_timestamp(now),
                        expires_at=to_timestamp(claim.expires_at),  # type: ignore[arg-type]
                    )
                )
                session.flush()
                raw_conn.execute("COMMIT")
            except DomainInUseError:
                raise
            except IntegrityError as exc:
                raw_conn.execute("ROLLBACK")
                raise DomainInUseError(f"{claim.fqdn} is already claimed") from exc
            except Exception:
                raw_conn.execute("ROLLBACK")
                raise

        logger.info(
            "Domain claim created",
            claim_id=claim.id,
            organization_id=organization_id,
            fqdn=claim.fqdn,
        )
        return claim

    def get_claim(self, claim_id: str) -> DomainClaim:
        with self._session_factory() as session:
            row = session.get(DomainClaimRow, claim_id)
            if row is None:
                raise NotFoundError(f"Domain claim {claim_id} not found")
            return _row_to_claim(row)

    def find_claim(self, domain: str, subdomain: str | None = None) -> DomainClaim | None:
        """The live (non-expired) claim for a hostname, if any."""
        domain, subdomain = validate_domain(domain, subdomain)
        fqdn = f"{subdomain}.{domain}" if subdomain else domain
        self.expire_stale()
        with self._session_factory() as session:
            row = session.scalars(
                select(DomainClaimRow).where(
                    DomainClaimRow.fqdn == fqdn,
                    DomainClaimRow.verification_status != VerificationStatus.EXPIRED.value,
                )
            ).first()
            return _row_to_claim(row) if row else None

    def is_claimed(self, domain: str, subdomain: str | None = None) -> bool:
        return self.find_claim(domain, subdomain) is not None

    def list_for_organization(self, organization_id: str) -> list[DomainClaim]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(DomainClaimRow)
                .where(DomainClaimRow.organization_id == organization_id)
                .order_by(DomainClaimRow.created_at, DomainClaimRow.id)
            ).all()
            return [_row_to_claim(r) for r in rows]

    def expire_stale(self) -> int:
        """Expire pending claims past their TTL. Returns number expired."""
        with self._session_factory() as session:
            count = self._expire_stale_in(session)
            session.commit()
        if count:
            logger.info("Expired stale domain claims", count=count)
        return count

    @staticmethod
    def _expire_stale_in(session: Session) -> int:
        now = _utcnow_str()
        result = session.execute(
            update(DomainClaimRow)
            .where(
                DomainClaimRow.verification_status == VerificationStatus.PENDING.value,
                DomainClaimRow.expires_at < now,
            )
            .values(verification_status=VerificationStatus.EXPIRED.value, updated_at=now)
        )
        return result.rowcount

    # --- Verification ---

    async def verify(self, claim_id: str) -> VerificationResult:
        """Re-check the claim's records and flip it to verified when they all pass.

        Records that have not propagated yet are not an error: the result is
        ``verified=False`` with instructions. Only a failing provider raises
        VerificationProviderError.
        """
        self.expire_stale()
        claim = self.get_claim(claim_id)

        if claim.verification_status == VerificationStatus.EXPIRED:
            return VerificationResult(
                claim_id=claim.id,
                verified=False,
                status=claim.verification_status,
                records=claim.records,
                next_steps=[
                    f"The claim for {claim.fqdn} expired before DNS verified; "
                    "remove it and add the domain again to get a new token"
                ],
            )

        if claim.is_verified:
            self._ensure_certificate_job(claim)
            return VerificationResult(
                claim_id=claim.id,
                verified=True,
                status=claim.verification_status,
                records=claim.records,
                next_steps=self._ssl_next_steps(claim),
            )

        try:
            checked, txt_match = await self._check_records(claim)
        except WhitelabelError:
            verification_attempts_total.labels(outcome="error").inc()
            raise
        except Exception as exc:
            verification_attempts_total.labels(outcome="error").inc()
            raise VerificationProviderError(
                f"Verification provider failed for {claim.fqdn}: {exc}"
            ) from exc

        verified = txt_match and all(
            r.status == RecordStatus.ACTIVE for r in checked if r.required
        )
        claim = self._record_attempt(claim, checked, verified)
        verification_attempts_total.labels(outcome="verified" if verified else "pending").inc()

        if verified:
            logger.info("Domain verified", claim_id=claim.id, fqdn=claim.fqdn)
            self._ensure_certificate_job(claim)
            return VerificationResult(
                claim_id=claim.id,
                verified=True,
                status=claim.verification_status,
                records=claim.records,
                next_steps=self._ssl_next_steps(claim),
            )

        logger.debug(
            "Domain not verified yet",
            claim_id=claim.id,
            fqdn=claim.fqdn,
            attempts=claim.verification_attempts,
        )
        return VerificationResult(
            claim_id=claim.id,
            verified=False,
            status=claim.verification_status,
            records=claim.records,
            next_steps=self._pending_next_steps(claim),
            estimated_time=PROPAGATION_ESTIMATE,
        )

    async def _check_records(self, claim: DomainClaim) -> tuple[list[DNSRecord], bool]:
        checked: list[DNSRecord] = []
        txt_match = False
        for record in claim.records:
            ok = await self.verifier.check_record(record, claim.domain)
            status = RecordStatus.ACTIVE if ok else RecordStatus.PENDING
            if record.type == RecordType.TXT and record.required:
                published = await self.verifier.lookup_txt(record.name, claim.domain)
                txt_match = ok and published == claim.expected_txt_value
                if published and published != claim.expected_txt_value:
                    status = RecordStatus.ERROR
                elif not txt_match:
                    status = RecordStatus.PENDING
            checked.append(record.model_copy(update={"status": status}))
        return checked, txt_match

    def _record_attempt(
        self, claim: DomainClaim, records: list[DNSRecord], verified: bool
    ) -> DomainClaim:
        now = _utcnow_str()
        with self._session_factory() as session:
            row = session.get(DomainClaimRow, claim.id)
            if row is None:
                raise NotFoundError(f"Domain claim {claim.id} not found")
            row.records_json = _dump_records(records)
            row.verification_attempts += 1
            row.last_checked_at = now
            row.updated_at = now
            if verified and row.verification_status == VerificationStatus.PENDING.value:
                row.verification_status = VerificationStatus.VERIFIED.value
                row.verified_at = now
                row.ssl_status = SSLStatus.PENDING.value
            session.commit()
            return _row_to_claim(row)

    def _pending_next_steps(self, claim: DomainClaim) -> list[str]:
        steps = [
            f"Add a {r.type.value} record named {r.name!r} with value {r.value!r} "
            f"at the DNS provider for {claim.domain}"
            for r in claim.records
            if r.required and r.status != RecordStatus.ACTIVE
        ]
        if any(r.status == RecordStatus.ERROR for r in claim.records):
            steps.append(
                "A verification TXT record exists but its value does not match; "
                f"it must be exactly {claim.expected_txt_value!r}"
            )
        steps.append(
            f"DNS changes can take {PROPAGATION_ESTIMATE} to propagate; verify again later"
        )
        return steps

    @staticmethod
    def _ssl_next_steps(claim: DomainClaim) -> list[str]:
        if claim.ssl_status == SSLStatus.ACTIVE:
            return []
        if claim.ssl_status == SSLStatus.FAILED:
            return ["Certificate issuance failed; remove and re-add the domain to retry"]
        return ["SSL certificate is being issued; this usually takes a few minutes"]

    # --- Certificates ---

    def _ensure_certificate_job(self, claim: DomainClaim) -> None:
        if claim.ssl_status in (SSLStatus.ACTIVE, SSLStatus.FAILED):
            return
        job = self._jobs.get(claim.id)
        if job is not None and not job.done():
            return
        self._jobs[claim.id] = asyncio.create_task(
            self._certificate_job(claim.id, claim.fqdn, claim.certificate_id),
            name=f"certificate-{claim.id}",
        )

    async def _issue_and_record(self, claim_id: str, fqdn: str) -> CertificateHandle:
        try:
            handle = await self.certificates.issue(fqdn)
        except Exception:
            certificate_operations_total.labels(operation="issue", status="error").inc()
            raise
        certificate_operations_total.labels(operation="issue", status="ok").inc()
        self._handles[claim_id] = handle
        with self._session_factory() as session:
            row = session.get(DomainClaimRow, claim_id)
            if row is not None:
                row.certificate_id = handle.id
                row.updated_at = _utcnow_str()
                session.commit()
        logger.info("Certificate requested", claim_id=claim_id, certificate_id=handle.id)
        return handle

    async def _certificate_job(self, claim_id: str, fqdn: str, certificate_id: str | None) -> None:
        loop = asyncio.get_running_loop()
        try:
            if certificate_id:
                handle = self._handles.get(claim_id) or CertificateHandle(
                    id=certificate_id, domain=fqdn
                )
            else:
                issuing = asyncio.ensure_future(self._issue_and_record(claim_id, fqdn))
                self._issuing[claim_id] = issuing
                # A handle the provider already issued must be recorded even if we are cancelled
                handle = await asyncio.shield(issuing)
                self._issuing.pop(claim_id, None)

            deadline = loop.time() + self.settings.certificate_timeout_seconds
            while True:
                handle = await self.certificates.status(handle)
                certificate_operations_total.labels(operation="status", status="ok").inc()
                if handle.status in (SSLStatus.ACTIVE, SSLStatus.FAILED):
                    break
                if loop.time() >= deadline:
                    handle = handle.model_copy(
                        update={"status": SSLStatus.FAILED, "detail": "issuance timed out"}
                    )
                    break
                await asyncio.sleep(self.settings.certificate_poll_interval)
        except asyncio.CancelledError:
            logger.debug("Certificate job cancelled", claim_id=claim_id)
            raise
        except Exception as exc:
            certificate_operations_total.labels(operation="status", status="error").inc()
            logger.warning("Certificate job failed", claim_id=claim_id, error=str(exc))
            self._set_ssl_status(claim_id, SSLStatus.FAILED)
            return

        self._handles[claim_id] = handle
        self._set_ssl_status(claim_id, handle.status)
        logger.info(
            "Certificate settled",
            claim_id=claim_id,
            certificate_id=handle.id,
            ssl_status=handle.status.value,
        )
        self._notify_settled(claim_id)

    def _notify_settled(self, claim_id: str) -> None:
        try:
            claim = self.get_claim(claim_id)
        except NotFoundError:
            return
        for listener in self._settled_listeners:
            try:
                listener(claim)
            except Exception:
                logger.exception("Certificate listener failed", claim_id=claim_id)

    def _set_ssl_status(self, claim_id: str, status: SSLStatus) -> None:
        with self._session_factory() as session:
            row = session.get(DomainClaimRow, claim_id)
            # Never move backwards from a settled state
            if row is None or row.ssl_status in (SSLStatus.ACTIVE.value, SSLStatus.FAILED.value):
                return
            row.ssl_status = status.value
            row.updated_at = _utcnow_str()
            session.commit()

    async def wait_for_certificate(
        self, claim_id: str, timeout: float | None = None
    ) -> DomainClaim:
        """Wait up to *timeout* seconds for the claim's certificate job; return the claim."""
        job = self._jobs.get(claim_id)
        if job is not None and not job.done():
            await asyncio.wait({job}, timeout=timeout)
        return self.get_claim(claim_id)

    # --- Deletion ---

    async def delete_claim(self, claim_id: str) -> None:
        """Cancel certificate work, revoke any issued certificate once, and remove the claim."""
        async with self._delete_lock:
            claim = self.get_claim(claim_id)

            job = self._jobs.pop(claim_id, None)
            if job is not None and not job.done():
                job.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await job

            issuing = self._issuing.pop(claim_id, None)
            if issuing is not None:
                # Issuance is shielded; let it settle so its handle is known
                with contextlib.suppress(Exception):
                    await issuing

            handle = self._handles.pop(claim_id, None)
            if handle is None and claim.certificate_id:
                handle = CertificateHandle(id=claim.certificate_id, domain=claim.fqdn)
            if handle is not None and claim_id not in self._revoked_claims:
                try:
                    await self.certificates.revoke(handle)
                except Exception:
                    certificate_operations_total.labels(operation="revoke", status="error").inc()
                    self._handles[claim_id] = handle
                    raise
                self._revoked_claims.add(claim_id)
                certificate_operations_total.labels(operation="revoke", status="ok").inc()
                logger.info("Certificate revoked", claim_id=claim_id, certificate_id=handle.id)

            with self._session_factory() as session:
                row = session.get(DomainClaimRow, claim_id)
                if row is not None:
                    session.delete(row)
                    session.commit()
            self._revoked_claims.discard(claim_id)
            logger.info("Domain claim deleted", claim_id=claim_id, fqdn=claim.fqdn)

    async def close(self) -> None:
        """Cancel outstanding certificate jobs without revoking anything."""
        jobs = [job for job in self._jobs.values() if not job.done()]
        for job in jobs:
            job.cancel()
        await asyncio.gather(*jobs, *self._issuing.values(), return_exceptions=True)
        self._jobs.clear()
        self._issuing.clear()
