"""Artifacts shipped inside the package as the last-resort fallback layer."""

from __future__ import annotations

from importlib import resources
from typing import TYPE_CHECKING

from whitelabel.models.artifact import ArtifactKey, ArtifactKind

if TYPE_CHECKING:
    from importlib.resources.abc import Traversable


class BundledDefaults:
    """Read-only view of ``whitelabel/defaults/<kind>/<industry>/<id>.json``."""

    def __init__(self, package: str = "whitelabel.defaults") -> None:
        self._root: Traversable = resources.files(package)

    def get(self, key: ArtifactKey) -> bytes | None:
        resource = self._root.joinpath(key.kind.value, key.industry, f"{key.artifact_id}.json")
        if not resource.is_file():
            return None
        return resource.read_bytes()

    def keys(self, kind: ArtifactKind, industry: str | None = None) -> list[ArtifactKey]:
        kind_dir = self._root.joinpath(kind.value)
        if not kind_dir.is_dir():
            return []
        found: list[ArtifactKey] = []
        for industry_dir in kind_dir.iterdir():
            if not industry_dir.is_dir() or (industry and industry_dir.name != industry):
                continue
            for item in industry_dir.iterdir():
                if item.is_file() and item.name.endswith(".json"):
                    found.append(
                        ArtifactKey(
                            kind=kind,
                            industry=industry_dir.name,
                            artifact_id=item.name.removesuffix(".json"),
                        )
                    )
        return sorted(found, key=lambda k: k.path)
