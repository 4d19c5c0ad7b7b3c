"""initial schema

Revision ID: 4b7e2c91a0d3
Revises:
Create Date: 2026-10-19 09:12:41.220871

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4b7e2c91a0d3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create deployments, domain claims, step results and the event log."""
    op.create_table(
        "deployments",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("organization_id", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="preparing"),
        sa.Column("config_json", sa.Text, nullable=False),
        sa.Column("url", sa.Text, nullable=False, server_default=""),
        sa.Column("region", sa.Text, nullable=False, server_default=""),
        sa.Column("certificate_id", sa.Text, nullable=True),
        sa.Column("domain_claim_id", sa.Text, nullable=True),
        sa.Column("current_step", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status_message", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
        sa.Column("deployed_at", sa.Text, nullable=True),
        sa.CheckConstraint(
            "status IN ('preparing', 'deploying', 'active', 'suspended', 'failed')",
            name="ck_deployments_status",
        ),
    )
    op.create_index("idx_deployments_organization", "deployments", ["organization_id"])

    op.create_table(
        "domain_claims",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("organization_id", sa.Text, nullable=False),
        sa.Column("domain", sa.Text, nullable=False),
        sa.Column("subdomain", sa.Text, nullable=True),
        sa.Column("fqdn", sa.Text, nullable=False),
        sa.Column("verification_token", sa.Text, nullable=False),
        sa.Column("records_json", sa.Text, nullable=False, server_default="[]"),
        sa.Column("verification_status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("verification_attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_checked_at", sa.Text, nullable=True),
        sa.Column("verified_at", sa.Text, nullable=True),
        sa.Column("ssl_status", sa.Text, nullable=True),
        sa.Column("certificate_id", sa.Text, nullable=True),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
        sa.Column("expires_at", sa.Text, nullable=False),
        sa.CheckConstraint(
            "verification_status IN ('pending', 'verified', 'failed', 'expired')",
            name="ck_domain_claims_verification_status",
        ),
        sa.CheckConstraint(
            "ssl_status IS NULL OR ssl_status IN ('pending', 'active', 'failed')",
            name="ck_domain_claims_ssl_status",
        ),
    )
    op.create_index(
        "idx_domain_claims_live_fqdn",
        "domain_claims",
        ["fqdn"],
        unique=True,
        sqlite_where=sa.text("verification_status != 'expired'"),
    )
    op.create_index("idx_domain_claims_organization", "domain_claims", ["organization_id"])
    op.create_index(
        "idx_domain_claims_status", "domain_claims", ["verification_status", "expires_at"]
    )

    op.create_table(
        "step_results",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("deployment_id", sa.Text, sa.ForeignKey("deployments.id"), nullable=False),
        sa.Column("step_name", sa.Text, nullable=False),
        sa.Column("step_number", sa.Integer, nullable=False),
        sa.Column("data_json", sa.Text, nullable=False),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.UniqueConstraint("deployment_id", "step_name", name="uq_step_results_dep_step"),
    )
    op.create_index("idx_step_results_deployment", "step_results", ["deployment_id"])

    op.create_table(
        "deployment_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("deployment_id", sa.Text, sa.ForeignKey("deployments.id"), nullable=True),
        sa.Column("step_name", sa.Text, nullable=False, server_default=""),
        sa.Column("event", sa.Text, nullable=False),
        sa.Column("message", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.Text, nullable=False),
    )
    op.create_index("idx_deployment_log_deployment", "deployment_log", ["deployment_id"])


def downgrade() -> None:
    """Drop all white-label tables."""
    op.drop_index("idx_deployment_log_deployment", table_name="deployment_log")
    op.drop_table("deployment_log")
    op.drop_index("idx_step_results_deployment", table_name="step_results")
    op.drop_table("step_results")
    op.drop_index("idx_domain_claims_status", table_name="domain_claims")
    op.drop_index("idx_domain_claims_organization", table_name="domain_claims")
    op.drop_index("idx_domain_claims_live_fqdn", table_name="domain_claims")
    op.drop_table("domain_claims")
    op.drop_index("idx_deployments_organization", table_name="deployments")
    op.drop_table("deployments")
