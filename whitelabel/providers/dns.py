"""DNS-over-HTTPS verification provider.

Speaks the JSON flavour of DoH served by Cloudflare (cloudflare-dns.com) and
Google (dns.google). NXDOMAIN and empty answers mean "not propagated yet";
only transport failures are errors.
"""

from __future__ import annotations

import httpx
import structlog

from whitelabel.errors import VerificationProviderError
from whitelabel.models.domain import VERIFICATION_VALUE_PREFIX, DNSRecord, RecordType
from whitelabel.providers.memory import absolute_name
from whitelabel.retry import CircuitBreaker, CircuitOpenError, RetryExhaustedError, async_with_retry

logger = structlog.get_logger()

_TIMEOUT = httpx.Timeout(10.0)
_TYPE_CODES = {RecordType.A: 1, RecordType.CNAME: 5, RecordType.TXT: 16}
_NXDOMAIN = 3


def _normalize(value: str, record_type: RecordType) -> str:
    value = value.strip()
    if record_type == RecordType.TXT:
        # TXT data arrives quoted and may be split into several strings
        return "".join(part for part in value.split('"') if part.strip())
    if record_type == RecordType.CNAME:
        return value.rstrip(".").lower()
    return value


class DnsOverHttpsVerifier:
    """Verification provider backed by a public DoH resolver."""

    def __init__(
        self,
        endpoint: str = "https://cloudflare-dns.com/dns-query",
        max_retries: int = 3,
        base_delay: float = 0.5,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._client = client
        self._breaker = CircuitBreaker(name="doh")

    async def _query(self, fqdn: str, record_type: RecordType) -> list[str]:
        async def _request() -> httpx.Response:
            if self._client is not None:
                resp = await self._client.get(
                    self.endpoint,
                    params={"name": fqdn, "type": record_type.value},
                    headers={"Accept": "application/dns-json"},
                    timeout=_TIMEOUT,
                )
            else:
                async with httpx.AsyncClient(timeout=_TIMEOUT) as client:
                    resp = await client.get(
                        self.endpoint,
                        params={"name": fqdn, "type": record_type.value},
                        headers={"Accept": "application/dns-json"},
                    )
            resp.raise_for_status()
            return resp

        try:
            resp = await self._breaker.call(
                lambda: async_with_retry(
                    _request,
                    max_retries=self.max_retries,
                    base_delay=self.base_delay,
                    retryable=(httpx.HTTPError,),
                    name="doh_query",
                )
            )
        except (RetryExhaustedError, CircuitOpenError) as exc:
            raise VerificationProviderError(
                f"DNS lookup for {fqdn} {record_type.value} failed: {exc}"
            ) from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            raise VerificationProviderError(
                f"DoH resolver returned invalid JSON for {fqdn}"
            ) from exc

        status = payload.get("Status", 0)
        if status == _NXDOMAIN:
            return []
        if status != 0:
            raise VerificationProviderError(f"DoH resolver returned status {status} for {fqdn}")

        wanted = _TYPE_CODES[record_type]
        answers = [
            _normalize(str(answer.get("data", "")), record_type)
            for answer in payload.get("Answer") or []
            if answer.get("type") == wanted
        ]
        logger.debug("DoH lookup", name=fqdn, type=record_type.value, answers=len(answers))
        return answers

    async def check_record(self, record: DNSRecord, domain: str) -> bool:
        fqdn = absolute_name(record.name, domain)
        answers = await self._query(fqdn, record.type)
        expected = _normalize(record.value, record.type)
        return expected in answers

    async def lookup_txt(self, name: str, domain: str) -> str:
        answers = await self._query(absolute_name(name, domain), RecordType.TXT)
        for answer in answers:
            if answer.startswith(VERIFICATION_VALUE_PREFIX):
                return answer
        return answers[0] if answers else ""
