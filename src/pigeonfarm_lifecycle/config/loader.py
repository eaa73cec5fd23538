"""TOML configuration loader."""

import tomllib
from pathlib import Path

from pigeonfarm_lifecycle.config.models import (
    ArchiveSettings,
    BackupSettings,
    DatabaseProfile,
    LifecycleConfig,
)

DEFAULT_CONFIG_FILE = "lifecycle.toml"


def load_config(config_path: Path | None = None) -> LifecycleConfig:
    """Load lifecycle configuration from TOML file.

    Args:
        config_path: Path to lifecycle.toml (default: ``./lifecycle.toml``).

    Returns:
        LifecycleConfig with profiles, backup and archive settings.
        Missing sections fall back to their defaults.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        pydantic.ValidationError: If a value has the wrong type or range.

    Example:
        config = load_config(Path("lifecycle.toml"))
        config.backup.max_backups_per_user   # 10
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Lifecycle config not found: {config_path}\n"
            f"Copy lifecycle.toml.example to lifecycle.toml and configure your profiles."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = DatabaseProfile(**profile_data)

    backup = BackupSettings(**data.get("backup", {}))

    # Relative backup roots resolve against the config file location
    if not backup.root_dir.is_absolute():
        backup.root_dir = config_path.parent / backup.root_dir

    return LifecycleConfig(
        profiles=profiles,
        backup=backup,
        archive=ArchiveSettings(**data.get("archive", {})),
    )
