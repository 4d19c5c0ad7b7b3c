"""Tests for Alembic migration infrastructure."""

from __future__ import annotations

from typing import TYPE_CHECKING

from alembic.config import Config
from sqlalchemy import create_engine, inspect

from alembic import command

if TYPE_CHECKING:
    from pathlib import Path


def _config(db_path: Path) -> Config:
    cfg = Config("alembic.ini")
    cfg.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return cfg


def _run_migrations(db_path: Path) -> None:
    """Run Alembic migrations to head on the given database."""
    command.upgrade(_config(db_path), "head")


class TestAlembicMigrations:
    def test_upgrade_to_head_creates_all_tables(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test_alembic.db"
        _run_migrations(db_path)

        engine = create_engine(f"sqlite:///{db_path}")
        tables = set(inspect(engine).get_table_names())
        engine.dispose()

        assert {
            "deployments",
            "domain_claims",
            "step_results",
            "deployment_log",
            "alembic_version",
        } <= tables

    def test_deployments_table_has_expected_columns(self, tmp_path: Path) -> None:
        """Verify deployments table schema matches ORM definition."""
        db_path = tmp_path / "test_alembic.db"
        _run_migrations(db_path)

        engine = create_engine(f"sqlite:///{db_path}")
        columns = {c["name"] for c in inspect(engine).get_columns("deployments")}
        engine.dispose()

        expected = {
            "id",
            "organization_id",
            "name",
            "status",
            "config_json",
            "url",
            "region",
            "certificate_id",
            "domain_claim_id",
            "current_step",
            "status_message",
            "created_at",
            "updated_at",
            "deployed_at",
        }
        assert expected == columns

    def test_domain_claims_has_partial_unique_index(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test_alembic.db"
        _run_migrations(db_path)

        engine = create_engine(f"sqlite:///{db_path}")
        indexes = inspect(engine).get_indexes("domain_claims")
        engine.dispose()

        live_fqdn = [i for i in indexes if i["name"] == "idx_domain_claims_live_fqdn"]
        assert len(live_fqdn) == 1
        assert live_fqdn[0]["unique"]
        assert live_fqdn[0]["column_names"] == ["fqdn"]

    def test_downgrade_drops_all_tables(self, tmp_path: Path) -> None:
        db_path = tmp_path / "test_alembic.db"
        cfg = _config(db_path)

        command.upgrade(cfg, "head")
        command.downgrade(cfg, "base")

        engine = create_engine(f"sqlite:///{db_path}")
        tables = set(inspect(engine).get_table_names())
        engine.dispose()

        assert "deployments" not in tables
        assert "domain_claims" not in tables
        assert "step_results" not in tables
        assert "deployment_log" not in tables
