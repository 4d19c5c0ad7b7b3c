"""Shared model helpers."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(UTC)


class ExtensibleModel(BaseModel):
    """Typed model that parks unknown keys in ``extensions`` instead of dropping them.

    Lets stored overrides written by newer clients round-trip through older
    code without failing validation.
    """

    model_config = ConfigDict(frozen=True)

    extensions: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_unknown_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = set(cls.model_fields)
        unknown = {k: v for k, v in data.items() if k not in known}
        if not unknown:
            return data
        cleaned = {k: v for k, v in data.items() if k in known}
        cleaned["extensions"] = {**dict(data.get("extensions") or {}), **unknown}
        return cleaned


class BaseStepResult(BaseModel):
    """Common fields for every provisioning step result."""

    model_config = ConfigDict(frozen=True)

    deployment_id: str
    step_name: str
    created_at: datetime = Field(default_factory=utcnow)
