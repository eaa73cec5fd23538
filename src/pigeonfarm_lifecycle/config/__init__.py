"""Configuration management: profiles, backup and archive settings, TOML loading.

Usage:
    >>> from pigeonfarm_lifecycle.config import load_config, LifecycleConfig
"""

from pigeonfarm_lifecycle.config.loader import load_config
from pigeonfarm_lifecycle.config.models import (
    ArchiveSettings,
    BackupSettings,
    DatabaseProfile,
    LifecycleConfig,
)

__all__ = [
    "load_config",
    "ArchiveSettings",
    "BackupSettings",
    "DatabaseProfile",
    "LifecycleConfig",
]
