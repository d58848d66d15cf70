"""Tests for wikitriage configuration settings."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from wikitriage.configuration.settings import (
    ClassifierSettings,
    ConfigurationError,
    FeedSettings,
    TriageSettings,
    load_settings,
    save_settings,
    validate_settings_file,
)

ENV_VARS = (
    "WIKITRIAGE_API_URL",
    "WIKITRIAGE_OPERATOR",
    "WIKITRIAGE_OLLAMA_URL",
    "WIKITRIAGE_CLASSIFIER_ENABLED",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "absent.yaml")

    assert settings.feed.api_url == "https://en.wikipedia.org/w/api.php"
    assert settings.feed.refresh_seconds == 2.0
    assert settings.queue.max_queue_size == 50
    assert settings.classifier.enabled is False
    assert 0 in settings.feed.namespaces


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    config_path = tmp_path / "nested" / "config.yaml"
    settings = TriageSettings.model_validate(
        {
            "filters": {"operator_name": "Patroller", "excluded_authors": ["ClueBot NG"]},
            "classifier": {"enabled": True, "model": "qwen2.5"},
        }
    )
    save_settings(settings, config_path)

    loaded = load_settings(config_path)
    assert loaded.filters.operator_name == "Patroller"
    assert loaded.filters.excluded_authors == ["ClueBot NG"]
    assert loaded.classifier.model == "qwen2.5"
    assert list(yaml.safe_load(config_path.read_text()))[0] == "version"


def test_env_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("filters:\n  operator_name: FromFile\n")
    monkeypatch.setenv("WIKITRIAGE_OPERATOR", "FromEnv")
    monkeypatch.setenv("WIKITRIAGE_API_URL", "https://de.wikipedia.org/w/api.php")
    monkeypatch.setenv("WIKITRIAGE_OLLAMA_URL", "http://gpu:11434/")
    monkeypatch.setenv("WIKITRIAGE_CLASSIFIER_ENABLED", "yes")

    settings = load_settings(config_path)

    assert settings.filters.operator_name == "FromEnv"
    assert settings.feed.api_url == "https://de.wikipedia.org/w/api.php"
    assert settings.classifier.server_url == "http://gpu:11434"
    assert settings.classifier.enabled is True


def test_invalid_values_raise_configuration_error(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("queue:\n  max_queue_size: 0\n")

    with pytest.raises(ConfigurationError, match="queue.max_queue_size"):
        load_settings(config_path)


def test_unknown_section_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("ui:\n  theme: dark\n")

    with pytest.raises(ConfigurationError):
        load_settings(config_path)


@pytest.mark.parametrize("content", ["feed: [unclosed", "- just\n- a list\n"])
def test_malformed_yaml(tmp_path: Path, content: str) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(content)

    with pytest.raises(ConfigurationError, match="Failed to parse"):
        load_settings(config_path)


def test_validate_settings_file(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    assert validate_settings_file(config_path) == [f"Configuration file not found: {config_path}"]

    config_path.write_text("feed:\n  api_url: ftp://wiki\n  namespaces: []\n")
    errors = validate_settings_file(config_path)
    assert len(errors) == 2
    assert all(error.startswith("feed.") for error in errors)

    config_path.write_text("filters:\n  minimum_score: 0.4\n")
    assert validate_settings_file(config_path) == []


def test_field_validators() -> None:
    with pytest.raises(ValidationError):
        FeedSettings(namespaces=[0, -1])
    with pytest.raises(ValidationError):
        ClassifierSettings(server_url="localhost:11434")
    assert ClassifierSettings(server_url="http://localhost:11434/").server_url == "http://localhost:11434"


def test_assignment_is_validated() -> None:
    settings = TriageSettings()
    with pytest.raises(ValidationError):
        settings.version = "not a number"
