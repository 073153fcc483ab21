"""
Unit Tests for Configuration Module

This module tests imgprep/config.py: the defaults table, pipeline YAML
parsing and runtime settings.

Test Categories:
- Defaults loading: File parsing and caching
- Default lookup: Access and error reporting
- Pipeline YAML: Parsing and validation
- Settings: Environment overrides

Author: Matthew Hong
"""

from pathlib import Path
from typing import Any, Dict

import pytest

from imgprep.config import (
    PIPELINE_SECTIONS,
    Settings,
    get_default,
    get_defaults,
    get_settings,
    load_pipeline_config,
    parse_pipeline_config,
    reload_defaults,
)
from imgprep.errors import InvalidArgument


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clear_caches():
    """Clear config caches before and after each test."""
    get_defaults.cache_clear()
    get_settings.cache_clear()
    yield
    get_defaults.cache_clear()
    get_settings.cache_clear()


@pytest.fixture
def defaults() -> Dict[str, Any]:
    """Load the actual defaults table."""
    return get_defaults()


# =============================================================================
# Defaults Table Tests
# =============================================================================

class TestDefaultsLoading:
    """Test defaults table loading."""

    def test_defaults_load_successfully(self, defaults: Dict[str, Any]) -> None:
        """Defaults should load as a dictionary."""
        assert isinstance(defaults, dict)

    def test_defaults_are_cached(self) -> None:
        """Subsequent calls should return the cached dictionary."""
        assert get_defaults() is get_defaults()

    def test_reload_clears_cache(self) -> None:
        """reload_defaults should return a fresh, equal dictionary."""
        first = get_defaults()
        second = reload_defaults()

        assert first == second
        assert first is not second

    @pytest.mark.parametrize(
        "section",
        ["load", "resize", "rotate", "save", "rescale", "normalize", "dataset"],
    )
    def test_defaults_have_stage_sections(
        self,
        defaults: Dict[str, Any],
        section: str,
    ) -> None:
        """Every stage has a defaults section."""
        assert section in defaults, f"Missing section: {section}"


class TestGetDefault:
    """Test default lookup."""

    def test_rescale_factor(self) -> None:
        assert get_default("rescale", "scaling_factor") == 255.0

    def test_color_mode(self) -> None:
        assert get_default("load", "color_mode") == "RGB"

    def test_unknown_section(self) -> None:
        with pytest.raises(KeyError, match="Section 'blur' not found"):
            get_default("blur", "radius")

    def test_unknown_key(self) -> None:
        with pytest.raises(KeyError, match="Key 'radius' not found"):
            get_default("rescale", "radius")


# =============================================================================
# Pipeline YAML Tests
# =============================================================================

class TestPipelineConfig:
    """Test declarative pipeline parsing."""

    def test_parse_full_config(self) -> None:
        config = parse_pipeline_config(
            "load:\n"
            "  color_mode: BGR\n"
            "transform_image:\n"
            "  - crop: {left: 1}\n"
            "transform_tensor:\n"
            "  - rescale: {}\n"
        )

        assert config["load"] == {"color_mode": "BGR"}
        assert config["transform_image"] == [{"crop": {"left": 1}}]
        assert set(config) <= set(PIPELINE_SECTIONS)

    def test_empty_document(self) -> None:
        assert parse_pipeline_config("") == {}

    def test_non_mapping_raises(self) -> None:
        with pytest.raises(InvalidArgument, match="must be a mapping"):
            parse_pipeline_config("- crop\n- rotate\n")

    def test_unknown_section_raises(self) -> None:
        with pytest.raises(InvalidArgument, match="Unknown pipeline sections"):
            parse_pipeline_config("train:\n  epochs: 3\n")

    def test_invalid_yaml_raises(self) -> None:
        with pytest.raises(InvalidArgument, match="Invalid pipeline YAML"):
            parse_pipeline_config("load: [unclosed\n")

    def test_load_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "pipeline.yaml"
        path.write_text("load:\n  color_mode: RGB\n")

        assert load_pipeline_config(path) == {"load": {"color_mode": "RGB"}}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="not found"):
            load_pipeline_config(tmp_path / "missing.yaml")


# =============================================================================
# Settings Tests
# =============================================================================

class TestSettings:
    """Test runtime settings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("LOG_LEVEL", "LOG_JSON", "PIPELINE_CONFIG", "PORT"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.LOG_LEVEL == "INFO"
        assert settings.LOG_JSON is True
        assert settings.PIPELINE_CONFIG is None
        assert settings.PORT == 8300

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("PIPELINE_CONFIG", "/etc/imgprep/pipeline.yaml")

        settings = get_settings()

        assert settings.LOG_LEVEL == "DEBUG"
        assert settings.PORT == 9000
        assert settings.PIPELINE_CONFIG == "/etc/imgprep/pipeline.yaml"

    def test_settings_are_cached(self) -> None:
        assert get_settings() is get_settings()
