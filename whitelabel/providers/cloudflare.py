"""Certificate provider backed by Cloudflare for SaaS custom hostnames.

Registering a custom hostname on the platform zone makes Cloudflare issue and
renew a DV certificate for it. Returns mock handles until an API token and
zone id are configured.
API docs: https://developers.cloudflare.com/api/resources/custom_hostnames/
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import structlog

from whitelabel.errors import CertificateProviderError
from whitelabel.models.domain import CertificateHandle, SSLStatus
from whitelabel.retry import CircuitBreaker, CircuitOpenError, RetryExhaustedError, async_with_retry

logger = structlog.get_logger()

_TIMEOUT = httpx.Timeout(30.0)
_BASE_URL = "https://api.cloudflare.com/client/v4"

_FAILED_STATES = frozenset(
    {
        "validation_timed_out",
        "issuance_timed_out",
        "deployment_timed_out",
        "deletion_timed_out",
        "expired",
        "deleted",
        "pending_deletion",
    }
)


def _map_status(ssl_status: str) -> SSLStatus:
    if ssl_status == "active":
        return SSLStatus.ACTIVE
    if ssl_status in _FAILED_STATES:
        return SSLStatus.FAILED
    return SSLStatus.PENDING


def _parse_dt(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class CloudflareCertificateProvider:
    """Cloudflare custom-hostname client. Returns mock data until API token is configured."""

    def __init__(
        self,
        api_token: str = "",
        zone_id: str = "",
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self.api_token = api_token
        self.zone_id = zone_id
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.base_url = _BASE_URL
        self._breaker = CircuitBreaker(name="cloudflare")

    @property
    def is_available(self) -> bool:
        return bool(self.api_token and self.zone_id)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    async def _call(self, method: str, path: str, operation: str, **kwargs: Any) -> dict[str, Any]:
        async def _request() -> dict[str, Any]:
            async with httpx.AsyncClient(timeout=_TIMEOUT) as client:
                resp = await client.request(
                    method,
                    f"{self.base_url}/zones/{self.zone_id}{path}",
                    headers=self._headers(),
                    **kwargs,
                )
                if resp.status_code >= 500:
                    resp.raise_for_status()
                # 4xx bodies carry Cloudflare's error list
                return resp.json()

        try:
            payload = await self._breaker.call(
                lambda: async_with_retry(
                    _request,
                    max_retries=self.max_retries,
                    base_delay=self.base_delay,
                    retryable=(httpx.TransportError, httpx.HTTPStatusError),
                    name=f"cloudflare_{operation}",
                )
            )
        except (RetryExhaustedError, CircuitOpenError) as exc:
            raise CertificateProviderError(f"Cloudflare {operation} failed: {exc}") from exc
        except ValueError as exc:
            raise CertificateProviderError(f"Cloudflare {operation} returned invalid JSON") from exc

        if not payload.get("success", False):
            errors = payload.get("errors") or []
            raise CertificateProviderError(f"Cloudflare {operation} rejected: {errors}")
        return payload.get("result") or {}

    def _to_handle(self, result: dict[str, Any], domain: str) -> CertificateHandle:
        ssl = result.get("ssl") or {}
        return CertificateHandle(
            id=str(result.get("id", "")),
            domain=str(result.get("hostname", domain)),
            status=_map_status(str(ssl.get("status", ""))),
            issued_at=_parse_dt(ssl.get("issued_on")),
            expires_at=_parse_dt(ssl.get("expires_on")),
            detail=str(ssl.get("status", "")),
        )

    async def issue(self, domain: str) -> CertificateHandle:
        """Register *domain* as a custom hostname with a DV certificate."""
        if not self.is_available:
            logger.debug("Cloudflare not configured, returning mock certificate", domain=domain)
            return self._mock_handle(domain, SSLStatus.PENDING)

        result = await self._call(
            "POST",
            "/custom_hostnames",
            "issue",
            json={"hostname": domain, "ssl": {"method": "http", "type": "dv"}},
        )
        handle = self._to_handle(result, domain)
        logger.info("Cloudflare custom hostname created", domain=domain, certificate_id=handle.id)
        return handle

    async def status(self, handle: CertificateHandle) -> CertificateHandle:
        if not self.is_available:
            return self._mock_handle(handle.domain, SSLStatus.ACTIVE, handle.id)

        result = await self._call("GET", f"/custom_hostnames/{handle.id}", "status")
        return self._to_handle(result, handle.domain)

    async def revoke(self, handle: CertificateHandle) -> None:
        """Delete the custom hostname, which revokes its certificate."""
        if not self.is_available:
            logger.debug("Cloudflare not configured, mock revoke", certificate_id=handle.id)
            return

        await self._call("DELETE", f"/custom_hostnames/{handle.id}", "revoke")
        logger.info("Cloudflare custom hostname deleted", certificate_id=handle.id)

    # ------------------------------------------------------------------
    # Mock data
    # ------------------------------------------------------------------

    def _mock_handle(
        self, domain: str, status: SSLStatus, handle_id: str | None = None
    ) -> CertificateHandle:
        now = datetime.now(UTC)
        active = status == SSLStatus.ACTIVE
        return CertificateHandle(
            id=handle_id or f"mock-cert-{uuid.uuid4().hex[:12]}",
            domain=domain,
            status=status,
            issued_at=now if active else None,
            expires_at=now + timedelta(days=90) if active else None,
            detail="mock",
        )
