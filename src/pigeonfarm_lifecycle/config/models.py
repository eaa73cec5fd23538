"""Pydantic models for lifecycle configuration."""

from pathlib import Path

from pydantic import BaseModel, Field


class DatabaseProfile(BaseModel):
    """Database connection profile from lifecycle.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "postgres"


class BackupSettings(BaseModel):
    """Backup storage layout and retention.

    ``retention_days = 0`` disables age-based pruning.  With
    ``separate_owner_folders`` off, every owner shares ``root_dir`` and
    isolation relies on the owner id embedded in each filename.
    """

    root_dir: Path = Path("backups")
    separate_owner_folders: bool = True
    max_backups_per_user: int = Field(default=10, ge=1)
    retention_days: int = Field(default=30, ge=0)


class ArchiveSettings(BaseModel):
    """Age thresholds for the archive engine."""

    notification_age_days: int = Field(default=30, ge=0)
    push_notification_age_days: int = Field(default=60, ge=0)
    audit_log_retention_days: int = Field(default=365, ge=0)


class LifecycleConfig(BaseModel):
    """Complete configuration from lifecycle.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    backup: BackupSettings = Field(default_factory=BackupSettings)
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
