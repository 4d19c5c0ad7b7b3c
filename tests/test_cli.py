"""Tests for the click CLI, run end to end against a temporary data directory."""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING

import pytest
import structlog
from click.testing import CliRunner

from whitelabel.cli import cli

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from click.testing import Result


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    # configure_logging binds stderr, which CliRunner swaps out per invocation
    monkeypatch.setattr("whitelabel.cli.configure_logging", lambda **_kwargs: None)
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL))
    yield
    structlog.reset_defaults()


@pytest.fixture()
def invoke(tmp_path: Path):
    runner = CliRunner()
    env = {
        "DATA_DIR": str(tmp_path / "data"),
        "REDIS_URL": "",
        "CLOUDFLARE_API_TOKEN": "",
        "VERIFICATION_BACKEND": "static",
        "CERTIFICATE_POLL_INTERVAL": "0.01",
    }

    def _invoke(*args: str, input: str | None = None) -> Result:
        return runner.invoke(cli, list(args), env=env, input=input)

    return _invoke


def _deployment_id(output: str) -> str:
    match = re.search(r"Created deployment ([0-9a-f]{32})", output)
    assert match, output
    return match.group(1)


class TestDeployCommands:
    def test_deploy_platform_subdomain(self, invoke):
        result = invoke(
            "deploy", "Acme Salon", "--org", "org-1", "--industry", "salon_beauty",
            "--subdomain", "acme",
        )
        assert result.exit_code == 0, result.output
        assert "Status: active" in result.output
        assert "URL: https://acme.heraerp.app" in result.output

    def test_deploy_custom_domain_prints_records(self, invoke):
        result = invoke(
            "deploy", "Acme Salon", "--org", "org-1", "--domain", "acmesalon.example",
            "--subdomain", "app",
        )
        assert result.exit_code == 0, result.output
        assert "Publish these DNS records:" in result.output
        assert "_hera-verification.app" in result.output
        assert "URL: https://app.acmesalon.example" in result.output

    def test_status_list_suspend_delete(self, invoke):
        created = invoke("deploy", "Bistro", "--org", "org-2", "--industry", "restaurant")
        dep_id = _deployment_id(created.output)

        status = invoke("status", dep_id, "--log")
        assert status.exit_code == 0, status.output
        assert "Status: active" in status.output
        assert "Step 7: finalize" in status.output
        assert "deployment_active" in status.output

        step = invoke("status", dep_id, "--step", "branding")
        assert '"primary_color"' in step.output

        listed = invoke("list", "--org", "org-2")
        assert dep_id in listed.output

        suspended = invoke("suspend", dep_id)
        assert suspended.exit_code == 0, suspended.output
        assert "suspended" in suspended.output

        deleted = invoke("delete", dep_id, "--yes")
        assert deleted.exit_code == 0, deleted.output
        assert invoke("list").output.strip() == "No deployments found."

    def test_status_unknown(self, invoke):
        result = invoke("status", "missing")
        assert result.exit_code == 1

    def test_invalid_theme_rejected(self, invoke, tmp_path: Path):
        theme = tmp_path / "theme.json"
        theme.write_text(json.dumps({"primary_color": "#ffffff", "background_color": "#ffffff"}))

        result = invoke("deploy", "Pale", "--org", "org-1", "--theme", str(theme))

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "contrast" in result.output
        assert invoke("list").output.strip() == "No deployments found."

    def test_unknown_module_fails_deployment(self, invoke):
        result = invoke("deploy", "Acme", "--org", "org-1", "--module", "warp_drive")
        assert result.exit_code == 0, result.output
        assert "Status: failed" in result.output
        assert "warp_drive" in result.output


class TestDomainCommands:
    def test_claim_lifecycle(self, invoke):
        added = invoke("domain", "add", "org-1", "Example.com", "--subdomain", "shop")
        assert added.exit_code == 0, added.output
        claim_id = re.search(r"Claim ([0-9a-f]{32})", added.output).group(1)
        assert "shop.example.com" in added.output
        assert "[required]" in added.output

        duplicate = invoke("domain", "add", "org-2", "example.com", "--subdomain", "shop")
        assert duplicate.exit_code == 1
        assert "already claimed" in duplicate.output

        verified = invoke("domain", "verify", claim_id, "--wait-certificate", "2")
        assert "Verified: True" in verified.output
        assert "SSL: active" in verified.output

        records = invoke("domain", "records", claim_id)
        assert "shop.example.com: verified" in records.output

        listed = invoke("domain", "list", "org-1")
        assert claim_id in listed.output

        removed = invoke("domain", "remove", claim_id)
        assert removed.exit_code == 0, removed.output
        assert "No domain claims found." in invoke("domain", "list", "org-1").output

    def test_invalid_domain(self, invoke):
        result = invoke("domain", "add", "org-1", "not_a_domain")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_expire(self, invoke):
        result = invoke("domain", "expire")
        assert result.exit_code == 0
        assert "Expired 0 stale claims" in result.output


class TestArtifactCommands:
    def test_upload_list_and_conflict(self, invoke, tmp_path: Path):
        pack = tmp_path / "pack.json"
        pack.write_text(
            json.dumps(
                {
                    "id": "basic",
                    "industry": "bakery",
                    "name": "Bakery Basic",
                    "version": "1.2.0",
                    "modules": ["dashboard", "orders"],
                }
            )
        )

        uploaded = invoke("artifact", "upload", "template-pack/bakery/basic", str(pack))
        assert uploaded.exit_code == 0, uploaded.output
        assert "v1.2.0" in uploaded.output

        again = invoke("artifact", "upload", "template-pack/bakery/basic", str(pack))
        assert again.exit_code == 1
        assert "already exists" in again.output

        listed = invoke("artifact", "list", "template-pack", "--industry", "bakery")
        assert "template-pack/bakery/basic" in listed.output

    def test_bad_key(self, invoke, tmp_path: Path):
        pack = tmp_path / "pack.json"
        pack.write_text("{}")
        result = invoke("artifact", "upload", "nonsense", str(pack))
        assert result.exit_code == 2

    def test_cache_commands(self, invoke):
        stats = invoke("cache", "stats")
        assert json.loads(stats.output)["local"] is None

        assert invoke("cache", "invalidate").exit_code == 1
        evicted = invoke("cache", "invalidate", "--all")
        assert "Evicted 0 cached entries" in evicted.output
