"""Per-owner export, restore and backup storage.

The loft's table hierarchy is declared once (``LOFT_SCHEMA``); export and
restore walk it parents-first and remap primary keys on restore.

Usage:
    from pigeonfarm_lifecycle.backup import BackupStorage, ExportEngine, RestoreEngine
"""

from pigeonfarm_lifecycle.backup.export import ExportEngine
from pigeonfarm_lifecycle.backup.models import (
    SNAPSHOT_VERSION,
    BackupFile,
    BackupSchema,
    ForeignKey,
    ImportResult,
    PolymorphicRef,
    Snapshot,
    SnapshotMetadata,
    TableDef,
    parse_snapshot,
)
from pigeonfarm_lifecycle.backup.restore import RestoreEngine
from pigeonfarm_lifecycle.backup.storage import BackupStorage
from pigeonfarm_lifecycle.backup.tables import LOFT_SCHEMA

__all__ = [
    "SNAPSHOT_VERSION",
    "LOFT_SCHEMA",
    "BackupFile",
    "BackupSchema",
    "BackupStorage",
    "ExportEngine",
    "ForeignKey",
    "ImportResult",
    "PolymorphicRef",
    "RestoreEngine",
    "Snapshot",
    "SnapshotMetadata",
    "TableDef",
    "parse_snapshot",
]
