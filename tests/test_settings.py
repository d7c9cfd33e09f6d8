"""Tests for engine settings loading and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from wallcore.exceptions import ConfigurationError
from wallcore.settings import CachePolicy, EngineSettings, ModeSwitchSettings, ToleranceSettings

REPO_ROOT = Path(__file__).resolve().parent.parent


def test_default_settings():
    """Defaults match the documented constants."""
    settings = EngineSettings.default()
    assert settings.offset.miter_limit == pytest.approx(10.0)
    assert settings.resolver.extreme_angle_threshold == pytest.approx(15.0)
    assert settings.healing.max_iterations == 10
    assert settings.cache.max_entries == 1000
    assert settings.cache.policy == CachePolicy.LRU


def test_load_bundled_config():
    """The bundled YAML loads into the same values as the defaults."""
    settings = EngineSettings.load(REPO_ROOT / "config" / "default.yaml")
    assert settings.cache.ttl == pytest.approx(1800)
    assert settings.mode_switch.default_join_type == "miter"


def test_load_missing_file(tmp_path):
    """A missing configuration file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        EngineSettings.load(tmp_path / "nope.yaml")


def test_load_invalid_config(tmp_path):
    """Out-of-range values surface as ConfigurationError."""
    path = tmp_path / "bad.yaml"
    path.write_text("cache:\n  ttl: -5\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        EngineSettings.load(path)


def test_policy_is_normalized(tmp_path):
    """Cache policy names are case-insensitive."""
    path = tmp_path / "lfu.yaml"
    path.write_text("cache:\n  policy: ' LFU '\n", encoding="utf-8")
    assert EngineSettings.load(path).cache.policy == CachePolicy.LFU


def test_tolerance_precision_must_exceed_base():
    """Document precision below the base tolerance is rejected."""
    with pytest.raises(ValidationError):
        ToleranceSettings(base_tolerance=1e-3, document_precision=1e-6)


def test_unknown_join_type_rejected():
    """Only miter, bevel and round joins are accepted."""
    with pytest.raises(ValidationError):
        ModeSwitchSettings(default_join_type="chamfer")
    assert ModeSwitchSettings(default_join_type="Round").default_join_type == "round"
