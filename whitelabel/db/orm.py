"""SQLAlchemy ORM models mapping to the white-label database tables."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _utcnow_str() -> str:
    return datetime.now(UTC).strftime(TIMESTAMP_FORMAT)


def to_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def to_timestamp_opt(value: datetime | None) -> str | None:
    return None if value is None else to_timestamp(value)


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def parse_timestamp_opt(value: str | None) -> datetime | None:
    return None if value is None else parse_timestamp(value)


class Base(DeclarativeBase):
    pass


class DeploymentRow(Base):
    __tablename__ = "deployments"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    organization_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="preparing")
    config_json: Mapped[str] = mapped_column(Text, nullable=False)

    url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    region: Mapped[str] = mapped_column(Text, nullable=False, default="")
    certificate_id: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    domain_claim_id: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status_message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    deployed_at: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    __table_args__ = (
        CheckConstraint(
            "status IN ('preparing', 'deploying', 'active', 'suspended', 'failed')",
            name="ck_deployments_status",
        ),
        Index("idx_deployments_organization", "organization_id"),
    )


class DomainClaimRow(Base):
    __tablename__ = "domain_claims"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    organization_id: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str] = mapped_column(Text, nullable=False)
    subdomain: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    fqdn: Mapped[str] = mapped_column(Text, nullable=False)
    verification_token: Mapped[str] = mapped_column(Text, nullable=False)
    records_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    verification_status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    verification_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_checked_at: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    verified_at: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    ssl_status: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    certificate_id: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    expires_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "verification_status IN ('pending', 'verified', 'failed', 'expired')",
            name="ck_domain_claims_verification_status",
        ),
        CheckConstraint(
            "ssl_status IS NULL OR ssl_status IN ('pending', 'active', 'failed')",
            name="ck_domain_claims_ssl_status",
        ),
        # One live claim per hostname (partial unique index)
        Index(
            "idx_domain_claims_live_fqdn",
            "fqdn",
            unique=True,
            sqlite_where=text("verification_status != 'expired'"),
        ),
        Index("idx_domain_claims_organization", "organization_id"),
        Index("idx_domain_claims_status", "verification_status", "expires_at"),
    )


class StepResultRow(Base):
    __tablename__ = "step_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deployment_id: Mapped[str] = mapped_column(
        Text, ForeignKey("deployments.id"), nullable=False
    )
    step_name: Mapped[str] = mapped_column(Text, nullable=False)
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    data_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        UniqueConstraint("deployment_id", "step_name", name="uq_step_results_dep_step"),
        Index("idx_step_results_deployment", "deployment_id"),
    )


class DeploymentLogRow(Base):
    __tablename__ = "deployment_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deployment_id: Mapped[str | None] = mapped_column(
        Text, ForeignKey("deployments.id"), nullable=True
    )
    step_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    event: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (Index("idx_deployment_log_deployment", "deployment_id"),)
