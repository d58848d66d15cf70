"""Typed settings for the triage engine.

Settings are pydantic models grouped by concern and persisted as YAML.
Environment variables prefixed with ``WIKITRIAGE_`` override the endpoint
URLs and the operator name so a shared config file can be reused.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


DEFAULT_CONFIG_PATH = Path.home() / ".wikitriage" / "config.yaml"

DEFAULT_NAMESPACES: List[int] = [
    0, 2, 4, 6, 8, 10, 12, 14, 100, 118,
    1, 3, 5, 7, 9, 11, 13, 15, 101, 119,
]


class ConfigurationError(Exception):
    """Raised when a configuration file cannot be parsed or validated."""


class FeedSettings(BaseModel):
    """Where and how often to pull the recent-changes feed."""

    api_url: str = Field(
        default="https://en.wikipedia.org/w/api.php",
        description="MediaWiki action API endpoint",
    )
    namespaces: List[int] = Field(default_factory=lambda: list(DEFAULT_NAMESPACES))
    refresh_seconds: float = Field(default=2.0, gt=0, le=600, description="Poll interval")
    max_backoff_seconds: float = Field(default=120.0, gt=0, le=3600, description="Backoff ceiling")
    batch_limit: int = Field(default=50, ge=1, le=500)
    user_agent: str = Field(default="wikitriage/0.1 (recent changes patrol)")
    request_timeout: float = Field(default=30.0, gt=0, le=300)

    @field_validator("api_url")
    @classmethod
    def _validate_api_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("api_url must start with http:// or https://")
        return value

    @field_validator("namespaces")
    @classmethod
    def _validate_namespaces(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("at least one namespace is required")
        if any(namespace < 0 for namespace in value):
            raise ValueError("namespaces must be non-negative")
        return value


class QueueSettings(BaseModel):
    max_queue_size: int = Field(default=50, ge=1, le=1000, description="Soft capacity of the active queue")
    history_size: int = Field(default=500, ge=1, le=100000, description="Dismissed items kept for dedup")
    boost_bonus: float = Field(default=100.0, ge=0, description="Priority bonus for spotlighted authors")
    spotlight_seconds: float = Field(default=3600.0, gt=0, le=86400)


class FilterSettings(BaseModel):
    max_edit_count: int = Field(default=50, ge=0, description="Skip authors with more edits than this")
    minimum_score: float = Field(default=0.0, ge=0.0, le=1.0)
    show_temporary_accounts: bool = True
    show_registered_accounts: bool = True
    excluded_authors: List[str] = Field(default_factory=list)
    operator_name: Optional[str] = Field(default=None, description="Patroller account name")


class ClassifierSettings(BaseModel):
    """Ollama endpoint and sampling parameters."""

    enabled: bool = False
    edit_analysis: bool = True
    username_analysis: bool = True
    server_url: str = "http://localhost:11434"
    model: str = "llama3.2"
    min_interval_seconds: float = Field(default=1.0, ge=0, le=60)
    cache_size: int = Field(default=100, ge=1, le=10000)
    request_timeout: float = Field(default=120.0, gt=0, le=600)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    top_p: float = Field(default=0.9, gt=0.0, le=1.0)
    num_predict: int = Field(default=1024, ge=16, le=8192)
    name_num_predict: int = Field(default=512, ge=16, le=8192)

    @field_validator("server_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("server_url must start with http:// or https://")
        return value.rstrip("/")


class TriageSettings(BaseModel):
    """Root configuration."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    version: int = 1
    feed: FeedSettings = Field(default_factory=FeedSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    filters: FilterSettings = Field(default_factory=FilterSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)


def load_settings(path: Path = DEFAULT_CONFIG_PATH) -> TriageSettings:
    """Load settings from YAML, falling back to defaults when the file is absent.

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation
    """
    data: Dict[str, Any] = {}
    if path.exists():
        data = _read_yaml(path)

    data = _apply_env_overrides(data)
    try:
        return TriageSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {'; '.join(_flatten_errors(exc))}") from exc


def save_settings(settings: TriageSettings, path: Path = DEFAULT_CONFIG_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    data = settings.model_dump(mode="json")
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def validate_settings_file(path: Path) -> List[str]:
    """Validate a settings file without loading it.

    Returns:
        List of ``location: message`` strings, empty when the file is valid
    """
    if not path.exists():
        return [f"Configuration file not found: {path}"]

    try:
        data = _read_yaml(path)
        TriageSettings.model_validate(data)
    except ConfigurationError as exc:
        return [str(exc)]
    except ValidationError as exc:
        return _flatten_errors(exc)
    return []


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Failed to parse {path}: top level must be a mapping")
    return data


def _flatten_errors(exc: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(data)
    feed = dict(merged.get("feed") or {})
    filters = dict(merged.get("filters") or {})
    classifier = dict(merged.get("classifier") or {})

    _set_env_override(feed, "api_url", "WIKITRIAGE_API_URL")
    _set_env_override(filters, "operator_name", "WIKITRIAGE_OPERATOR")
    _set_env_override(classifier, "server_url", "WIKITRIAGE_OLLAMA_URL")
    _set_env_override(classifier, "enabled", "WIKITRIAGE_CLASSIFIER_ENABLED", cast_bool=True)

    for key, section in (("feed", feed), ("filters", filters), ("classifier", classifier)):
        if section:
            merged[key] = section
    return merged


def _set_env_override(
    mapping: Dict[str, Any],
    key: str,
    env_name: str,
    *,
    cast_bool: bool = False,
) -> None:
    raw = os.getenv(env_name)
    if raw is None:
        return
    if cast_bool:
        mapping[key] = raw.lower() in {"1", "true", "yes"}
    else:
        mapping[key] = raw


__all__ = [
    "ClassifierSettings",
    "ConfigurationError",
    "DEFAULT_CONFIG_PATH",
    "FeedSettings",
    "FilterSettings",
    "QueueSettings",
    "TriageSettings",
    "load_settings",
    "save_settings",
    "validate_settings_file",
]
