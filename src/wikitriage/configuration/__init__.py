"""Configuration loading utilities for wikitriage."""

from .settings import (
    DEFAULT_CONFIG_PATH,
    ClassifierSettings,
    ConfigurationError,
    TriageSettings,
    load_settings,
    save_settings,
    validate_settings_file,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ClassifierSettings",
    "ConfigurationError",
    "TriageSettings",
    "load_settings",
    "save_settings",
    "validate_settings_file",
]
