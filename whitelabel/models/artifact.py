"""Configuration artifacts served by the layered config store."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from whitelabel.models.base import utcnow


class ArtifactKind(StrEnum):
    TEMPLATE_PACK = "template-pack"
    THEME = "theme"
    ENTITY_TEMPLATE = "entity-template"


class ArtifactKey(BaseModel):
    """Identity of an artifact: kind + industry + artifact id."""

    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind
    industry: str
    artifact_id: str

    @field_validator("industry", "artifact_id")
    @classmethod
    def _no_separators(cls, value: str) -> str:
        value = value.strip()
        if not value or "/" in value or value in (".", ".."):
            raise ValueError(f"invalid artifact key segment: {value!r}")
        return value

    @property
    def path(self) -> str:
        return f"{self.kind.value}/{self.industry}/{self.artifact_id}.json"

    @classmethod
    def parse(cls, raw: str) -> ArtifactKey:
        """Parse ``kind/industry/artifact_id`` (a trailing ``.json`` is ignored)."""
        parts = raw.strip().strip("/").split("/")
        if len(parts) != 3:
            raise ValueError(f"expected kind/industry/artifact_id, got {raw!r}")
        kind, industry, artifact_id = parts
        artifact_id = artifact_id.removesuffix(".json")
        return cls(kind=ArtifactKind(kind), industry=industry, artifact_id=artifact_id)

    def __str__(self) -> str:
        return f"{self.kind.value}/{self.industry}/{self.artifact_id}"


class ArtifactMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    size: int
    version: str = "1"
    checksum: str
    last_modified: datetime = Field(default_factory=utcnow)


class CachedArtifact(BaseModel):
    """Immutable artifact value; content is the raw JSON bytes as stored."""

    model_config = ConfigDict(frozen=True)

    key: ArtifactKey
    content: bytes
    metadata: ArtifactMetadata

    @classmethod
    def from_content(
        cls,
        key: ArtifactKey,
        content: bytes,
        last_modified: datetime | None = None,
    ) -> CachedArtifact:
        version = "1"
        try:
            parsed = json.loads(content)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict) and parsed.get("version") is not None:
            version = str(parsed["version"])
        return cls(
            key=key,
            content=content,
            metadata=ArtifactMetadata(
                size=len(content),
                version=version,
                checksum=hashlib.sha256(content).hexdigest(),
                last_modified=last_modified or utcnow(),
            ),
        )

    def data(self) -> Any:
        return json.loads(self.content)


# --- Artifact schemas ---


class TemplateField(BaseModel):
    name: str
    type: str = "text"
    required: bool = False
    label: str = ""


class EntityTemplate(BaseModel):
    """Definition of a business entity form/list rendered by the UI layer."""

    entity_type: str
    label: str
    smart_code: str = ""
    fields: list[TemplateField] = Field(min_length=1)


class TemplatePack(BaseModel):
    """Industry bundle of modules and entity templates installed into a deployment."""

    id: str
    industry: str
    name: str
    version: str = "1.0.0"
    description: str = ""
    modules: list[str] = Field(min_length=1)
    entities: list[EntityTemplate] = Field(default_factory=list)
