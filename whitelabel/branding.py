"""Branding resolver: theme merge, validation, tint/shade ramps and CSS rendering.

Everything here is pure. Industry defaults are loaded by the caller (the
provisioning steps read them from the config store) and passed in as a
``ThemeOverride``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from whitelabel.models.theme import (
    BASE_COLOR_FIELDS,
    COLOR_FIELDS,
    RAMP_SHADES,
    ResolvedTheme,
    ShadowIntensity,
    ThemeOverride,
    ThemeValidation,
)

if TYPE_CHECKING:
    from whitelabel.config import Settings

# Hard-coded neutral fallbacks for fields absent from both override and industry default.
NEUTRAL_THEME: dict[str, object] = {
    "primary_color": "#1e40af",
    "secondary_color": "#64748b",
    "accent_color": "#f59e0b",
    "success_color": "#10b981",
    "warning_color": "#eab308",
    "error_color": "#ef4444",
    "background_color": "#ffffff",
    "surface_color": "#f9fafb",
    "text_primary": "#111827",
    "text_secondary": "#6b7280",
    "border_color": "#e5e7eb",
    "font_family_heading": "Inter",
    "font_family_body": "Inter",
    "font_size_base": "16px",
    "line_height_base": "1.5",
    "border_radius": "8px",
    "shadow_intensity": ShadowIntensity.MEDIUM,
    "reduced_motion": False,
    "high_contrast": False,
    "animations_enabled": True,
    "logo_url": None,
    "favicon_url": None,
}

DEFAULT_MIN_CONTRAST = 3.0
DEFAULT_HIGH_CONTRAST_MIN = 4.5

_HEX_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_RGB_RE = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*(0|1|0?\.\d+|1\.0+)\s*)?\)$"
)
_SIZE_RE = re.compile(r"^\d+(?:\.\d+)?(?:px|em|rem|%)$")

_LIGHTEN = {50: 0.9, 100: 0.8, 200: 0.6, 300: 0.4, 400: 0.2}
_DARKEN = {600: 0.2, 700: 0.4, 800: 0.6, 900: 0.8}


# --- Color math ---


def parse_color(value: str) -> tuple[int, int, int]:
    """Parse ``#RGB``, ``#RRGGBB``, ``rgb()`` or ``rgba()`` into an RGB triple.

    Alpha is accepted and ignored. Raises ValueError for anything else.
    """
    value = value.strip()
    if _HEX_RE.match(value):
        digits = value[1:]
        if len(digits) == 3:
            digits = "".join(c * 2 for c in digits)
        return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)

    match = _RGB_RE.match(value)
    if match:
        is_rgba = value.startswith("rgba")
        if is_rgba != (match.group(4) is not None):
            raise ValueError(f"Invalid color: {value!r}")
        channels = tuple(int(match.group(i)) for i in (1, 2, 3))
        if any(c > 255 for c in channels):
            raise ValueError(f"Color channel out of range: {value!r}")
        return channels  # type: ignore[return-value]

    raise ValueError(f"Invalid color: {value!r}")


def is_valid_color(value: str | None) -> bool:
    if not value:
        return False
    try:
        parse_color(value)
    except ValueError:
        return False
    return True


def to_hex(rgb: tuple[float, float, float]) -> str:
    r, g, b = (max(0, min(255, round(c))) for c in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"


def relative_luminance(color: str) -> float:
    """Weighted luminance on 0-1 channel values."""
    r, g, b = (c / 255 for c in parse_color(color))
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_ratio(color_a: str, color_b: str) -> float:
    l1 = relative_luminance(color_a)
    l2 = relative_luminance(color_b)
    return (max(l1, l2) + 0.05) / (min(l1, l2) + 0.05)


def _mix(rgb: tuple[int, int, int], target: int, amount: float) -> tuple[float, float, float]:
    return tuple(c + (target - c) * amount for c in rgb)  # type: ignore[return-value]


def derive_ramp(base_color: str) -> dict[int, str]:
    """Generate the 50-900 ramp for *base_color*.

    50-400 interpolate toward white, 600-900 toward black, and 500 is the
    input string unchanged.
    """
    rgb = parse_color(base_color)
    ramp: dict[int, str] = {}
    for shade in RAMP_SHADES:
        if shade in _LIGHTEN:
            ramp[shade] = to_hex(_mix(rgb, 255, _LIGHTEN[shade]))
        elif shade in _DARKEN:
            ramp[shade] = to_hex(_mix(rgb, 0, _DARKEN[shade]))
        else:
            ramp[shade] = base_color
    return ramp


# --- Resolution ---


def resolve(
    industry_default: ThemeOverride | None,
    override: ThemeOverride | None,
) -> ResolvedTheme:
    """Merge *override* over *industry_default* over the neutral fallbacks.

    Ramps are derived for base colors that parse; invalid colors are left for
    ``validate`` to report rather than raising here.
    """
    merged: dict[str, object] = dict(NEUTRAL_THEME)
    extensions: dict[str, object] = {}
    for layer in (industry_default, override):
        if layer is None:
            continue
        merged.update(layer.explicit_fields())
        extensions.update(layer.extensions)

    ramps = {
        field: derive_ramp(str(merged[field]))
        for field in BASE_COLOR_FIELDS
        if is_valid_color(str(merged[field]))
    }
    return ResolvedTheme.model_validate({**merged, "ramps": ramps, "extensions": extensions})


def validate(
    theme: ResolvedTheme,
    *,
    min_contrast: float = DEFAULT_MIN_CONTRAST,
    high_contrast_min: float = DEFAULT_HIGH_CONTRAST_MIN,
) -> ThemeValidation:
    errors: list[str] = []

    for field in COLOR_FIELDS:
        value = getattr(theme, field)
        if not is_valid_color(value):
            errors.append(
                f"{field} {value!r} is not a valid color; use #RGB, #RRGGBB, rgb() or rgba()"
            )

    if not _SIZE_RE.match(theme.font_size_base):
        errors.append(
            f"font_size_base {theme.font_size_base!r} must be a number followed by px, em, rem or %"
        )
    if not _SIZE_RE.match(theme.border_radius):
        errors.append(
            f"border_radius {theme.border_radius!r} must be a number followed by px, em, rem or %"
        )
    try:
        if float(theme.line_height_base) <= 0:
            raise ValueError
    except ValueError:
        errors.append(f"line_height_base {theme.line_height_base!r} must be a positive number")

    if theme.reduced_motion and theme.animations_enabled:
        errors.append("animations_enabled must be false when reduced_motion is on")

    ratio: float | None = None
    if is_valid_color(theme.primary_color) and is_valid_color(theme.background_color):
        ratio = contrast_ratio(theme.primary_color, theme.background_color)
        required = high_contrast_min if theme.high_contrast else min_contrast
        if ratio < required:
            errors.append(
                f"primary_color {theme.primary_color} on background_color "
                f"{theme.background_color} has contrast {ratio:.2f}:1, below the "
                f"required {required:.1f}:1; darken primary_color or lighten "
                f"background_color"
            )

    return ThemeValidation(
        valid=not errors,
        errors=errors,
        contrast_ratio=round(ratio, 2) if ratio is not None else None,
    )


def validate_with_settings(theme: ResolvedTheme, settings: Settings) -> ThemeValidation:
    return validate(
        theme,
        min_contrast=settings.min_contrast_ratio,
        high_contrast_min=settings.high_contrast_min_ratio,
    )


# --- Rendering ---

_SHADOWS = {
    ShadowIntensity.NONE: "none",
    ShadowIntensity.SUBTLE: "0 1px 2px rgba(0, 0, 0, 0.05)",
    ShadowIntensity.MEDIUM: "0 4px 6px rgba(0, 0, 0, 0.1)",
    ShadowIntensity.STRONG: "0 10px 15px rgba(0, 0, 0, 0.2)",
}


def _css_name(field: str) -> str:
    return "--" + field.removesuffix("_color").replace("_", "-")


def render_css_variables(theme: ResolvedTheme, selector: str = ":root") -> str:
    """Render the theme as CSS custom properties."""
    lines = [f"{selector} {{"]
    for field in COLOR_FIELDS:
        lines.append(f"  --color{_css_name(field)[1:]}: {getattr(theme, field)};")
    for field, ramp in theme.ramps.items():
        for shade, value in sorted(ramp.items()):
            lines.append(f"  --color{_css_name(field)[1:]}-{shade}: {value};")
    lines.extend(
        [
            f"  --font-heading: {theme.font_family_heading!r};",
            f"  --font-body: {theme.font_family_body!r};",
            f"  --font-size-base: {theme.font_size_base};",
            f"  --line-height-base: {theme.line_height_base};",
            f"  --radius: {theme.border_radius};",
            f"  --shadow: {_SHADOWS[theme.shadow_intensity]};",
        ]
    )
    if not theme.animations_enabled or theme.reduced_motion:
        lines.append("  --transition-duration: 0s;")
    lines.append("}")
    return "\n".join(lines) + "\n"
