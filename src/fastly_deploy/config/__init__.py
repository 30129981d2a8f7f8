"""Configuration management for fastly-deploy."""

from .models import (
    BuildConfig,
    RegistryConfig,
    DeployConfig,
    ReleaseConfig,
    FastlySettings,
)
from .parser import Config, DEFAULT_CONFIG_FILE, parse_section

__all__ = [
    "BuildConfig",
    "RegistryConfig",
    "DeployConfig",
    "ReleaseConfig",
    "FastlySettings",
    "Config",
    "DEFAULT_CONFIG_FILE",
    "parse_section",
]
