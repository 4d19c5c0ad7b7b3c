"""Tests for theme resolution, validation, ramps and CSS rendering."""

from __future__ import annotations

import pytest

from whitelabel.branding import (
    NEUTRAL_THEME,
    contrast_ratio,
    derive_ramp,
    is_valid_color,
    parse_color,
    relative_luminance,
    render_css_variables,
    resolve,
    validate,
)
from whitelabel.models.theme import RAMP_SHADES, ShadowIntensity, ThemeOverride


class TestParseColor:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("#fff", (255, 255, 255)),
            ("#1E40AF", (30, 64, 175)),
            ("rgb(10, 20, 30)", (10, 20, 30)),
            ("rgba(10,20,30,0.5)", (10, 20, 30)),
        ],
    )
    def test_valid(self, value: str, expected: tuple[int, int, int]):
        assert parse_color(value) == expected

    @pytest.mark.parametrize(
        "value", ["blue", "#ffff", "#gggggg", "rgb(256, 0, 0)", "rgb(1, 2, 3, 0.5)", "rgba(1,2,3)"]
    )
    def test_invalid(self, value: str):
        with pytest.raises(ValueError):
            parse_color(value)
        assert is_valid_color(value) is False

    def test_empty_is_invalid(self):
        assert is_valid_color("") is False
        assert is_valid_color(None) is False


class TestRamps:
    def test_has_every_shade(self):
        ramp = derive_ramp("#1e40af")
        assert tuple(ramp) == RAMP_SHADES

    def test_500_is_input_unchanged(self):
        assert derive_ramp("#1E40AF")[500] == "#1E40AF"
        assert derive_ramp("rgb(30, 64, 175)")[500] == "rgb(30, 64, 175)"

    def test_lightness_is_monotonic(self):
        ramp = derive_ramp("#7e22ce")
        luminances = [relative_luminance(ramp[shade]) for shade in RAMP_SHADES]
        assert luminances == sorted(luminances, reverse=True)

    def test_extremes(self):
        assert derive_ramp("#000000")[50] == "#e6e6e6"
        assert derive_ramp("#ffffff")[900] == "#333333"


class TestContrast:
    def test_black_on_white(self):
        assert contrast_ratio("#000000", "#ffffff") == pytest.approx(21.0)

    def test_symmetric(self):
        assert contrast_ratio("#1e40af", "#ffffff") == contrast_ratio("#ffffff", "#1e40af")

    def test_same_color_is_one(self):
        assert contrast_ratio("#fff", "#ffffff") == pytest.approx(1.0)


class TestResolve:
    def test_neutral_when_no_layers(self):
        theme = resolve(None, None)
        assert theme.primary_color == NEUTRAL_THEME["primary_color"]
        assert theme.shadow_intensity == ShadowIntensity.MEDIUM
        assert set(theme.ramps) == {
            "primary_color",
            "secondary_color",
            "accent_color",
            "success_color",
            "warning_color",
            "error_color",
        }

    def test_override_beats_industry_beats_neutral(self):
        industry = ThemeOverride(primary_color="#7e22ce", border_radius="12px")
        override = ThemeOverride(primary_color="#000000")

        theme = resolve(industry, override)

        assert theme.primary_color == "#000000"
        assert theme.border_radius == "12px"
        assert theme.font_size_base == NEUTRAL_THEME["font_size_base"]

    def test_unknown_keys_preserved_as_extensions(self):
        industry = ThemeOverride.model_validate({"brand_voice": "warm", "tagline": "Hi"})
        override = ThemeOverride.model_validate({"tagline": "Hello"})

        theme = resolve(industry, override)

        assert theme.extensions == {"brand_voice": "warm", "tagline": "Hello"}

    def test_invalid_color_skips_ramp(self):
        theme = resolve(None, ThemeOverride(accent_color="not-a-color"))
        assert "accent_color" not in theme.ramps
        assert theme.accent_color == "not-a-color"


class TestValidate:
    def test_neutral_theme_is_valid(self):
        result = validate(resolve(None, None))
        assert result.valid is True
        assert result.errors == []
        assert result.contrast_ratio >= 3.0

    def test_low_contrast_rejected(self):
        theme = resolve(None, ThemeOverride(primary_color="#ffffff", background_color="#ffffff"))
        result = validate(theme)
        assert result.valid is False
        assert result.contrast_ratio == 1.0
        assert any("contrast" in e for e in result.errors)

    def test_high_contrast_raises_the_bar(self):
        theme = resolve(None, ThemeOverride(high_contrast=True))
        result = validate(theme)
        assert result.valid is False

        dark = resolve(None, ThemeOverride(high_contrast=True, primary_color="#000000"))
        assert validate(dark).valid is True

    def test_invalid_color_reported(self):
        result = validate(resolve(None, ThemeOverride(accent_color="purple")))
        assert result.valid is False
        assert any(e.startswith("accent_color") for e in result.errors)

    def test_bad_sizes_reported(self):
        theme = resolve(
            None,
            ThemeOverride(font_size_base="large", border_radius="8", line_height_base="-1"),
        )
        errors = validate(theme).errors
        assert any(e.startswith("font_size_base") for e in errors)
        assert any(e.startswith("border_radius") for e in errors)
        assert any(e.startswith("line_height_base") for e in errors)

    def test_reduced_motion_requires_animations_off(self):
        theme = resolve(None, ThemeOverride(reduced_motion=True))
        assert validate(theme).valid is False
        theme = resolve(None, ThemeOverride(reduced_motion=True, animations_enabled=False))
        assert validate(theme).valid is True

    def test_custom_threshold(self):
        theme = resolve(None, None)
        assert validate(theme, min_contrast=10.0).valid is False


class TestRenderCss:
    def test_renders_variables(self):
        css = render_css_variables(resolve(None, None))
        assert css.startswith(":root {\n")
        assert "  --color-primary: #1e40af;\n" in css
        assert "  --color-primary-500: #1e40af;\n" in css
        assert "  --color-text-primary: #111827;\n" in css
        assert "  --radius: 8px;\n" in css
        assert "--transition-duration" not in css
        assert css.endswith("}\n")

    def test_reduced_motion_disables_transitions(self):
        theme = resolve(None, ThemeOverride(reduced_motion=True, animations_enabled=False))
        assert "--transition-duration: 0s;" in render_css_variables(theme, selector=".tenant")
