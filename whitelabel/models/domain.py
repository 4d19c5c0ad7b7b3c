"""Custom-domain claim models and verification results."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from whitelabel.models.base import utcnow

VERIFICATION_RECORD_PREFIX = "_hera-verification"
VERIFICATION_VALUE_PREFIX = "hera-domain-verification="


class RecordType(StrEnum):
    A = "A"
    CNAME = "CNAME"
    TXT = "TXT"


class RecordStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    ERROR = "error"


class VerificationStatus(StrEnum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    EXPIRED = "expired"


class SSLStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"


class DNSRecord(BaseModel):
    """A DNS record the tenant must publish at their registrar."""

    model_config = ConfigDict(frozen=True)

    type: RecordType
    name: str
    value: str
    ttl: int = 3600
    required: bool = True
    status: RecordStatus = RecordStatus.PENDING


class DomainClaim(BaseModel):
    """An organization's claim on a custom hostname."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    organization_id: str
    domain: str
    subdomain: str | None = None
    verification_token: str
    records: list[DNSRecord] = Field(default_factory=list)

    verification_status: VerificationStatus = VerificationStatus.PENDING
    verification_attempts: int = 0
    last_checked_at: datetime | None = None
    verified_at: datetime | None = None

    ssl_status: SSLStatus | None = None
    certificate_id: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None

    @property
    def fqdn(self) -> str:
        return f"{self.subdomain}.{self.domain}" if self.subdomain else self.domain

    @property
    def expected_txt_value(self) -> str:
        return f"{VERIFICATION_VALUE_PREFIX}{self.verification_token}"

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VerificationStatus.VERIFIED


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    claim_id: str
    verified: bool
    status: VerificationStatus
    records: list[DNSRecord] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
    estimated_time: str = ""


class CertificateHandle(BaseModel):
    """Provider-side reference to an issued (or issuing) certificate."""

    model_config = ConfigDict(frozen=True)

    id: str
    domain: str
    status: SSLStatus = SSLStatus.PENDING
    issued_at: datetime | None = None
    expires_at: datetime | None = None
    detail: str = ""
