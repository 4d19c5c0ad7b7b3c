"""Tests for verification, certificate, storage and branding providers.

Uses respx to mock httpx transport-layer calls, verifying:
- Real response parsing from JSON fixtures
- Provider errors after retries on HTTP 500
- Mock fallback when Cloudflare credentials are missing
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
import pytest
import respx

from whitelabel.branding import resolve
from whitelabel.errors import CertificateProviderError, ObjectStoreError, VerificationProviderError
from whitelabel.models.deployment import Deployment, DeploymentConfig
from whitelabel.models.domain import CertificateHandle, DNSRecord, RecordType, SSLStatus
from whitelabel.protocols import CertificateProvider, ObjectStore, VerificationProvider
from whitelabel.providers import (
    CloudflareCertificateProvider,
    DnsOverHttpsVerifier,
    FilesystemObjectStore,
    InMemoryObjectStore,
    ObjectStoreThemeSink,
    StaticVerificationProvider,
    StubCertificateProvider,
    absolute_name,
    build_providers,
)
from whitelabel.providers.cloudflare import _map_status

if TYPE_CHECKING:
    from whitelabel.config import Settings

FIXTURES = Path(__file__).parent / "fixtures"
DOH = "https://cloudflare-dns.com/dns-query"
CF_HOSTNAMES = "https://api.cloudflare.com/client/v4/zones/zone-1/custom_hostnames"
CF_HOSTNAME_ID = "0d89c70d-ad9f-4843-b99f-6cc0252067e9"


def _load_fixture(name: str) -> dict[str, object]:
    return json.loads((FIXTURES / name).read_text())  # type: ignore[return-value]


def _doh_answer(name: str, record_type: int, *data: str) -> dict[str, object]:
    return {
        "Status": 0,
        "Answer": [{"name": name, "type": record_type, "TTL": 300, "data": d} for d in data],
    }


def _cloudflare() -> CloudflareCertificateProvider:
    return CloudflareCertificateProvider(
        api_token="cf-test", zone_id="zone-1", max_retries=1, base_delay=0.0
    )


class TestAbsoluteName:
    def test_apex(self):
        assert absolute_name("@", "example.com") == "example.com"

    def test_relative(self):
        assert absolute_name("_hera-verification.@", "example.com") == (
            "_hera-verification.example.com"
        )
        assert absolute_name("app", "example.com") == "app.example.com"


# =====================================================================
# DNS-over-HTTPS
# =====================================================================


class TestDnsOverHttpsVerifier:
    @respx.mock
    async def test_a_record_matches(self):
        route = respx.get(host="cloudflare-dns.com", path="/dns-query").mock(
            return_value=httpx.Response(200, json=_doh_answer("app.example.com", 1, "203.0.113.10"))
        )
        verifier = DnsOverHttpsVerifier(endpoint=DOH, max_retries=0)
        record = DNSRecord(type=RecordType.A, name="app", value="203.0.113.10")

        assert await verifier.check_record(record, "example.com") is True
        params = route.calls.last.request.url.params
        assert params["name"] == "app.example.com"
        assert params["type"] == "A"

    @respx.mock
    async def test_cname_normalized(self):
        respx.get(host="cloudflare-dns.com", path="/dns-query").mock(
            return_value=httpx.Response(
                200, json=_doh_answer("www.example.com", 5, "Ingress.HeraERP.app.")
            )
        )
        verifier = DnsOverHttpsVerifier(endpoint=DOH, max_retries=0)
        record = DNSRecord(type=RecordType.CNAME, name="www", value="ingress.heraerp.app")
        assert await verifier.check_record(record, "example.com") is True

    @respx.mock
    async def test_nxdomain_is_not_an_error(self):
        respx.get(host="cloudflare-dns.com", path="/dns-query").mock(
            return_value=httpx.Response(200, json={"Status": 3})
        )
        verifier = DnsOverHttpsVerifier(endpoint=DOH, max_retries=0)
        record = DNSRecord(type=RecordType.A, name="@", value="203.0.113.10")
        assert await verifier.check_record(record, "example.com") is False

    @respx.mock
    async def test_txt_lookup_prefers_verification_value(self):
        respx.get(host="cloudflare-dns.com", path="/dns-query").mock(
            return_value=httpx.Response(200, json=_load_fixture("doh_txt_answer.json"))
        )
        verifier = DnsOverHttpsVerifier(endpoint=DOH, max_retries=0)

        value = await verifier.lookup_txt("_hera-verification.app", "acmesalon.example")

        assert value == "hera-domain-verification=tok-123"

    @respx.mock
    async def test_server_failure_raises_after_retries(self):
        route = respx.get(host="cloudflare-dns.com", path="/dns-query").mock(
            return_value=httpx.Response(500)
        )
        verifier = DnsOverHttpsVerifier(endpoint=DOH, max_retries=1, base_delay=0.0)
        record = DNSRecord(type=RecordType.A, name="@", value="203.0.113.10")

        with pytest.raises(VerificationProviderError):
            await verifier.check_record(record, "example.com")
        assert route.call_count == 2

    @respx.mock
    async def test_resolver_error_status_raises(self):
        respx.get(host="cloudflare-dns.com", path="/dns-query").mock(
            return_value=httpx.Response(200, json={"Status": 2})
        )
        verifier = DnsOverHttpsVerifier(endpoint=DOH, max_retries=0)
        with pytest.raises(VerificationProviderError, match="status 2"):
            await verifier.lookup_txt("_hera-verification.@", "example.com")

    def test_satisfies_protocol(self):
        assert isinstance(DnsOverHttpsVerifier(), VerificationProvider)


# =====================================================================
# Cloudflare
# =====================================================================


class TestCloudflareCertificateProvider:
    async def test_mock_fallback_no_api_token(self):
        provider = CloudflareCertificateProvider(api_token="")
        assert provider.is_available is False

        handle = await provider.issue("app.example.com")
        assert handle.status == SSLStatus.PENDING
        assert handle.detail == "mock"

        settled = await provider.status(handle)
        assert settled.status == SSLStatus.ACTIVE
        assert settled.id == handle.id
        await provider.revoke(settled)

    @respx.mock
    async def test_issue_parses_response(self):
        route = respx.post(CF_HOSTNAMES).mock(
            return_value=httpx.Response(200, json=_load_fixture("cloudflare_custom_hostname.json"))
        )

        handle = await _cloudflare().issue("app.acmesalon.example")

        assert handle.id == CF_HOSTNAME_ID
        assert handle.domain == "app.acmesalon.example"
        assert handle.status == SSLStatus.PENDING
        assert handle.detail == "pending_validation"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer cf-test"
        assert json.loads(request.content)["hostname"] == "app.acmesalon.example"

    @respx.mock
    async def test_status_active(self):
        respx.get(f"{CF_HOSTNAMES}/{CF_HOSTNAME_ID}").mock(
            return_value=httpx.Response(
                200, json=_load_fixture("cloudflare_custom_hostname_active.json")
            )
        )
        handle = CertificateHandle(id=CF_HOSTNAME_ID, domain="app.acmesalon.example")

        settled = await _cloudflare().status(handle)

        assert settled.status == SSLStatus.ACTIVE
        assert settled.issued_at is not None
        assert settled.expires_at > settled.issued_at

    @respx.mock
    async def test_revoke_deletes_hostname(self):
        route = respx.delete(f"{CF_HOSTNAMES}/{CF_HOSTNAME_ID}").mock(
            return_value=httpx.Response(
                200, json={"success": True, "result": {"id": CF_HOSTNAME_ID}}
            )
        )
        await _cloudflare().revoke(CertificateHandle(id=CF_HOSTNAME_ID, domain="x.example"))
        assert route.called

    @respx.mock
    async def test_rejected_request_raises(self):
        respx.post(CF_HOSTNAMES).mock(
            return_value=httpx.Response(
                409,
                json={"success": False, "errors": [{"code": 1406, "message": "Duplicate"}]},
            )
        )
        with pytest.raises(CertificateProviderError, match="rejected"):
            await _cloudflare().issue("app.acmesalon.example")

    @respx.mock
    async def test_server_error_raises_after_retries(self):
        route = respx.post(CF_HOSTNAMES).mock(return_value=httpx.Response(502))
        with pytest.raises(CertificateProviderError):
            await _cloudflare().issue("app.acmesalon.example")
        assert route.call_count == 2

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("active", SSLStatus.ACTIVE),
            ("pending_validation", SSLStatus.PENDING),
            ("initializing", SSLStatus.PENDING),
            ("validation_timed_out", SSLStatus.FAILED),
            ("deleted", SSLStatus.FAILED),
        ],
    )
    def test_map_status(self, raw: str, expected: SSLStatus):
        assert _map_status(raw) == expected

    def test_satisfies_protocol(self):
        assert isinstance(CloudflareCertificateProvider(), CertificateProvider)


# =====================================================================
# In-memory providers
# =====================================================================


class TestStaticVerificationProvider:
    async def test_checks_published_values(self):
        verifier = StaticVerificationProvider()
        record = DNSRecord(type=RecordType.A, name="@", value="203.0.113.10")
        assert await verifier.check_record(record, "example.com") is False

        verifier.publish(record, "example.com")
        assert await verifier.check_record(record, "example.com") is True

        verifier.publish(record, "example.com", value="198.51.100.1")
        assert await verifier.check_record(record, "example.com") is False

    async def test_accept_all_echoes_txt(self):
        verifier = StaticVerificationProvider(accept_all=True)
        record = DNSRecord(type=RecordType.TXT, name="_hera-verification.@", value="v=tok")
        assert await verifier.check_record(record, "example.com") is True
        assert await verifier.lookup_txt(record.name, "example.com") == "v=tok"

    async def test_accept_all_follows_new_token(self):
        verifier = StaticVerificationProvider(accept_all=True)
        first = DNSRecord(type=RecordType.TXT, name="_hera-verification.@", value="v=tok-1")
        second = first.model_copy(update={"value": "v=tok-2"})

        assert await verifier.check_record(first, "example.com") is True
        assert await verifier.lookup_txt(first.name, "example.com") == "v=tok-1"
        assert await verifier.check_record(second, "example.com") is True
        assert await verifier.lookup_txt(second.name, "example.com") == "v=tok-2"

    async def test_accept_all_respects_explicit_records(self):
        verifier = StaticVerificationProvider(accept_all=True)
        record = DNSRecord(type=RecordType.A, name="@", value="203.0.113.10")
        verifier.publish(record, "example.com", value="198.51.100.1")
        assert await verifier.check_record(record, "example.com") is False

    async def test_broken_backend_raises(self):
        verifier = StaticVerificationProvider(accept_all=True)
        verifier.break_backend(RecordType.TXT)
        with pytest.raises(VerificationProviderError):
            await verifier.lookup_txt("_hera-verification.@", "example.com")
        verifier.heal()
        assert await verifier.lookup_txt("_hera-verification.@", "example.com") == ""


class TestStubCertificateProvider:
    async def test_activates_after_polls(self):
        provider = StubCertificateProvider(polls_until_active=2)
        handle = await provider.issue("example.com")
        assert (await provider.status(handle)).status == SSLStatus.PENDING
        active = await provider.status(handle)
        assert active.status == SSLStatus.ACTIVE
        assert active.expires_at is not None

    async def test_unknown_certificate(self):
        provider = StubCertificateProvider()
        with pytest.raises(CertificateProviderError):
            await provider.revoke(CertificateHandle(id="nope", domain="example.com"))


# =====================================================================
# Object stores
# =====================================================================


@pytest.fixture(params=["memory", "filesystem"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> ObjectStore:
    if request.param == "memory":
        return InMemoryObjectStore()
    return FilesystemObjectStore(tmp_path / "objects")


class TestObjectStores:
    async def test_put_get_delete(self, store: ObjectStore):
        info = await store.put("bucket", "a/b.json", b'{"x": 1}')
        assert info.size == 8
        assert info.path == "a/b.json"
        assert await store.get("bucket", "a/b.json") == b'{"x": 1}'

        assert await store.delete("bucket", "a/b.json") is True
        assert await store.get("bucket", "a/b.json") is None
        assert await store.delete("bucket", "a/b.json") is False

    async def test_put_without_overwrite(self, store: ObjectStore):
        await store.put("bucket", "k.json", b"1")
        with pytest.raises(FileExistsError):
            await store.put("bucket", "k.json", b"2")
        await store.put("bucket", "k.json", b"2", overwrite=True)
        assert await store.get("bucket", "k.json") == b"2"

    async def test_list_by_prefix(self, store: ObjectStore):
        await store.put("bucket", "deployments/d1/theme.css", b"a")
        await store.put("bucket", "deployments/d1/theme.json", b"b")
        await store.put("bucket", "deployments/d2/theme.css", b"c")
        await store.put("other", "deployments/d1/x", b"d")

        listed = await store.list("bucket", "deployments/d1/")

        assert [i.path for i in listed] == ["deployments/d1/theme.css", "deployments/d1/theme.json"]
        assert await store.list("empty") == []

    def test_satisfies_protocol(self, store: ObjectStore):
        assert isinstance(store, ObjectStore)


class TestFilesystemObjectStore:
    async def test_rejects_path_escape(self, tmp_path: Path):
        store = FilesystemObjectStore(tmp_path)
        with pytest.raises(ObjectStoreError):
            await store.put("bucket", "../outside.txt", b"x")


# =====================================================================
# Branding sink and wiring
# =====================================================================


class TestObjectStoreThemeSink:
    async def test_apply_writes_css_and_json(self):
        store = InMemoryObjectStore()
        sink = ObjectStoreThemeSink(store, "bucket")
        config = DeploymentConfig(organization_id="org-1", name="Acme")
        deployment = Deployment(organization_id="org-1", name="Acme", config=config)
        theme = resolve(None, None)

        await sink.apply(deployment, theme)
        await sink.apply(deployment, theme)

        css = await store.get("bucket", f"deployments/{deployment.id}/theme.css")
        stored = await store.get("bucket", f"deployments/{deployment.id}/theme.json")
        assert b"--color-primary: #1e40af;" in css
        assert json.loads(stored)["primary_color"] == "#1e40af"
        assert [info.path for info in await store.list("bucket", "deployments/")] == [
            f"deployments/{deployment.id}/theme.css",
            f"deployments/{deployment.id}/theme.json",
        ]


class TestBuildProviders:
    def test_defaults(self, settings: Settings):
        providers = build_providers(settings)
        assert isinstance(providers.verifier, StaticVerificationProvider)
        assert providers.verifier.accept_all is True
        assert isinstance(providers.certificates, CloudflareCertificateProvider)
        assert providers.certificates.is_available is False
        assert isinstance(providers.object_store, FilesystemObjectStore)
        assert providers.object_store.root == settings.data_dir / "objects"

    def test_doh_backend(self, settings: Settings):
        doh = settings.model_copy(
            update={"verification_backend": "doh", "doh_endpoint": "https://dns.google/resolve"}
        )
        providers = build_providers(doh)
        assert isinstance(providers.verifier, DnsOverHttpsVerifier)
        assert providers.verifier.endpoint == "https://dns.google/resolve"
