"""Application configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Data directory
    data_dir: Path = Path("./data")

    # Layered config store
    redis_url: str = ""
    memory_cache_ttl_seconds: float = 300.0
    local_cache_ttl_seconds: int = 3600
    artifact_bucket: str = "whitelabel-templates"
    object_store_root: Path | None = None

    # Platform ingress
    platform_base_domain: str = "heraerp.app"
    ingress_ip: str = "203.0.113.10"
    ingress_hostname: str = "ingress.heraerp.app"
    dns_record_ttl: int = 3600
    default_region: str = "us-east-1"

    # Domain verification
    verification_backend: Literal["static", "doh"] = "static"
    doh_endpoint: str = "https://cloudflare-dns.com/dns-query"
    verification_poll_interval: float = 30.0
    verification_max_attempts: int = 10
    verification_idle_interval: float = 300.0
    domain_claim_ttl_hours: int = 168

    # Certificates
    cloudflare_api_token: str = ""
    cloudflare_zone_id: str = ""
    certificate_poll_interval: float = 10.0
    certificate_timeout_seconds: float = 900.0
    certificate_wait_seconds: float = 60.0

    # Provisioning
    step_timeout_seconds: float = 120.0
    estimated_step_seconds: int = 20
    provider_max_retries: int = 3

    # Branding
    min_contrast_ratio: float = 3.0
    high_contrast_min_ratio: float = 4.5

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "whitelabel.db"

    @property
    def resolved_object_store_root(self) -> Path:
        return self.object_store_root or self.data_dir / "objects"

    def ensure_data_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
