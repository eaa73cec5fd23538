"""pigeonfarm-lifecycle: Per-owner data lifecycle for pigeon lofts.

Exports an owner's loft data as a versioned snapshot, persists and prunes
backup files, restores snapshots with primary-key remapping, and archives
consumed notifications and aged logs.

Usage:
    from pigeonfarm_lifecycle import LifecycleService, get_adapter, load_config

    config = load_config()
    adapter = get_adapter("local", config)
    service = LifecycleService.from_config(adapter, config)
    backup = await service.save_backup(7)
"""

__version__ = "0.1.0"

# Adapters
from pigeonfarm_lifecycle.adapters.base import Cmp, DatabaseClient
from pigeonfarm_lifecycle.adapters.postgres import AsyncPostgresAdapter

# Config
from pigeonfarm_lifecycle.config.loader import load_config
from pigeonfarm_lifecycle.config.models import (
    ArchiveSettings,
    BackupSettings,
    DatabaseProfile,
    LifecycleConfig,
)

# Factory
from pigeonfarm_lifecycle.factory import ProfileNotFoundError, get_adapter, resolve_url

# Backup
from pigeonfarm_lifecycle.backup import (
    LOFT_SCHEMA,
    BackupFile,
    BackupStorage,
    ExportEngine,
    ImportResult,
    RestoreEngine,
    Snapshot,
    parse_snapshot,
)

# Archive
from pigeonfarm_lifecycle.archive import ArchiveEngine, ArchiveRunSummary, ArchiveStats

# Errors
from pigeonfarm_lifecycle.errors import (
    ArchiveRunFailed,
    BackupAccessDenied,
    BackupCorrupt,
    BackupNotFound,
    BackupPersistFailed,
    ClearFailed,
    ExportFailed,
    ImportFailed,
    InvalidSnapshotFormat,
    LifecycleError,
    OwnerNotFound,
)

# Service
from pigeonfarm_lifecycle.service import LifecycleService

__all__ = [
    # Adapters
    "Cmp",
    "DatabaseClient",
    "AsyncPostgresAdapter",
    # Config
    "load_config",
    "ArchiveSettings",
    "BackupSettings",
    "DatabaseProfile",
    "LifecycleConfig",
    # Factory
    "get_adapter",
    "ProfileNotFoundError",
    "resolve_url",
    # Backup
    "LOFT_SCHEMA",
    "BackupFile",
    "BackupStorage",
    "ExportEngine",
    "ImportResult",
    "RestoreEngine",
    "Snapshot",
    "parse_snapshot",
    # Archive
    "ArchiveEngine",
    "ArchiveRunSummary",
    "ArchiveStats",
    # Errors
    "LifecycleError",
    "OwnerNotFound",
    "ExportFailed",
    "InvalidSnapshotFormat",
    "ImportFailed",
    "ClearFailed",
    "BackupNotFound",
    "BackupCorrupt",
    "BackupPersistFailed",
    "BackupAccessDenied",
    "ArchiveRunFailed",
    # Service
    "LifecycleService",
]
