"""Branding theme models: partial overrides and fully resolved themes."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from whitelabel.models.base import ExtensibleModel

BASE_COLOR_FIELDS = (
    "primary_color",
    "secondary_color",
    "accent_color",
    "success_color",
    "warning_color",
    "error_color",
)

SURFACE_COLOR_FIELDS = (
    "background_color",
    "surface_color",
    "text_primary",
    "text_secondary",
    "border_color",
)

COLOR_FIELDS = BASE_COLOR_FIELDS + SURFACE_COLOR_FIELDS

RAMP_SHADES = (50, 100, 200, 300, 400, 500, 600, 700, 800, 900)


class ShadowIntensity(StrEnum):
    NONE = "none"
    SUBTLE = "subtle"
    MEDIUM = "medium"
    STRONG = "strong"


class ThemeOverride(ExtensibleModel):
    """Partial theme. Any field left as None falls through to the industry default."""

    primary_color: str | None = None
    secondary_color: str | None = None
    accent_color: str | None = None
    success_color: str | None = None
    warning_color: str | None = None
    error_color: str | None = None

    background_color: str | None = None
    surface_color: str | None = None
    text_primary: str | None = None
    text_secondary: str | None = None
    border_color: str | None = None

    font_family_heading: str | None = None
    font_family_body: str | None = None
    font_size_base: str | None = None
    line_height_base: str | None = None

    border_radius: str | None = None
    shadow_intensity: ShadowIntensity | None = None

    reduced_motion: bool | None = None
    high_contrast: bool | None = None
    animations_enabled: bool | None = None

    logo_url: str | None = None
    favicon_url: str | None = None

    def explicit_fields(self) -> dict[str, object]:
        """Fields that were actually set, excluding ``extensions``."""
        return {
            k: v
            for k, v in self.model_dump(exclude={"extensions"}).items()
            if v is not None
        }


class ResolvedTheme(BaseModel):
    """Fully populated theme with derived 50-900 ramps for each base color."""

    model_config = ConfigDict(frozen=True)

    primary_color: str
    secondary_color: str
    accent_color: str
    success_color: str
    warning_color: str
    error_color: str

    background_color: str
    surface_color: str
    text_primary: str
    text_secondary: str
    border_color: str

    font_family_heading: str
    font_family_body: str
    font_size_base: str
    line_height_base: str

    border_radius: str
    shadow_intensity: ShadowIntensity

    reduced_motion: bool
    high_contrast: bool
    animations_enabled: bool

    logo_url: str | None = None
    favicon_url: str | None = None

    ramps: dict[str, dict[int, str]] = Field(default_factory=dict)
    extensions: dict[str, Any] = Field(default_factory=dict)


class ThemeValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    errors: list[str] = Field(default_factory=list)
    contrast_ratio: float | None = None
