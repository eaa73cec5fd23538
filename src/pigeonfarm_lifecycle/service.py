"""Lifecycle facade composing export, storage, restore and archive.

Each method matches one operation exposed to the routing layer; the
caller's verified owner id is passed in and trusted.

Usage:
    from pigeonfarm_lifecycle.service import LifecycleService

    service = LifecycleService.from_config(adapter, config)
    backup = await service.save_backup(7)
    result = await service.restore_backup(7, backup.filename, clear_existing=True)
"""

import logging
from collections.abc import Sequence
from typing import Any

from pigeonfarm_lifecycle.adapters.base import DatabaseClient
from pigeonfarm_lifecycle.archive.engine import ArchiveEngine
from pigeonfarm_lifecycle.archive.models import ArchiveResult, ArchiveRunSummary, ArchiveStats
from pigeonfarm_lifecycle.backup.export import ExportEngine
from pigeonfarm_lifecycle.backup.models import BackupFile, ImportResult, Snapshot
from pigeonfarm_lifecycle.backup.restore import RestoreEngine
from pigeonfarm_lifecycle.backup.storage import BackupStorage
from pigeonfarm_lifecycle.config.models import LifecycleConfig
from pigeonfarm_lifecycle.errors import BackupAccessDenied

logger = logging.getLogger(__name__)


class LifecycleService:
    """Entry point for callers (CLI, HTTP handlers)."""

    def __init__(
        self,
        exporter: ExportEngine,
        restorer: RestoreEngine,
        storage: BackupStorage,
        archiver: ArchiveEngine,
    ) -> None:
        self.exporter = exporter
        self.restorer = restorer
        self.storage = storage
        self.archiver = archiver

    @classmethod
    def from_config(cls, adapter: DatabaseClient, config: LifecycleConfig) -> "LifecycleService":
        """Wire every engine to one adapter and the loaded configuration."""
        return cls(
            exporter=ExportEngine(adapter),
            restorer=RestoreEngine(adapter),
            storage=BackupStorage(config.backup),
            archiver=ArchiveEngine(adapter, config.archive),
        )

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    async def export(self, owner_id: int) -> Snapshot:
        return await self.exporter.export_snapshot(owner_id)

    async def save_backup(self, owner_id: int) -> BackupFile:
        """Export the owner's data and persist it as a backup file."""
        snapshot = await self.exporter.export_snapshot(owner_id)
        return self.storage.write_backup(owner_id, snapshot)

    def list_backups(self, owner_id: int) -> list[BackupFile]:
        return self.storage.list_backups(owner_id)

    def list_all_backups(self) -> list[BackupFile]:
        """Every owner's backups.  Callers must check the admin role."""
        return self.storage.list_all_backups()

    def delete_backup(self, owner_id: int, filename: str) -> None:
        self.storage.delete_backup(owner_id, filename)

    async def restore_backup(
        self,
        owner_id: int,
        filename: str,
        clear_existing: bool = False,
    ) -> ImportResult:
        """Restore one of the owner's persisted backups.

        Raises:
            BackupAccessDenied: If the file, or the snapshot inside it,
                belongs to another owner.
            BackupNotFound, BackupCorrupt, InvalidSnapshotFormat, ImportFailed
        """
        snapshot = self.storage.read_backup(owner_id, filename)
        if snapshot.metadata.owner_id != owner_id:
            logger.error(
                f"Backup {filename} of owner {owner_id} holds data of owner "
                f"{snapshot.metadata.owner_id}; restore refused"
            )
            raise BackupAccessDenied("This backup belongs to another owner")

        return await self.restorer.restore_snapshot(
            owner_id, snapshot, clear_existing=clear_existing, skip_notifications=True
        )

    async def import_snapshot(
        self,
        owner_id: int,
        payload: Snapshot | dict[str, Any],
        clear_existing: bool = False,
        skip_notifications: bool = True,
    ) -> ImportResult:
        """Restore an uploaded snapshot into the owner's account.

        Snapshots exported by another owner are accepted; the result's
        ``cross_owner`` flag and warnings let the caller tell the user.
        """
        result = await self.restorer.restore_snapshot(
            owner_id,
            payload,
            clear_existing=clear_existing,
            skip_notifications=skip_notifications,
        )
        if result.cross_owner:
            result.warnings.insert(
                0,
                f"This data was exported by owner {result.source_owner_id} "
                f"and has been imported into owner {owner_id}'s account",
            )
        return result

    async def clear_data(self, owner_id: int) -> dict[str, int]:
        """Delete the owner's loft data.  Callers re-confirm the password first."""
        return await self.restorer.clear_owner_data(owner_id)

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    async def run_archive(self, executed_by: int | None = None) -> ArchiveRunSummary:
        return await self.archiver.run_full_archive(executed_by=executed_by)

    async def archive_notifications(self) -> ArchiveResult:
        return await self.archiver.archive_old_notifications()

    async def archive_push_notifications(self) -> ArchiveResult:
        return await self.archiver.archive_old_push_notifications()

    async def clean_logs(self) -> dict[str, ArchiveResult]:
        """Purge old audit logs and spent reset codes."""
        return {
            "audit_logs": await self.archiver.clean_old_audit_logs(),
            "reset_codes": await self.archiver.clean_expired_reset_codes(),
        }

    async def archive_stats(self) -> ArchiveStats:
        return await self.archiver.get_archive_stats()

    async def list_archive_logs(self, limit: int = 50, offset: int = 0) -> dict[str, Any]:
        return await self.archiver.list_archive_logs(limit=limit, offset=offset)

    async def list_archived_notifications(
        self,
        limit: int = 50,
        offset: int = 0,
        owner_id: int | None = None,
    ) -> dict[str, Any]:
        return await self.archiver.list_archived_notifications(
            limit=limit, offset=offset, owner_id=owner_id
        )

    async def restore_notifications(self, original_ids: Sequence[int]) -> int:
        return await self.archiver.restore_archived_notifications(original_ids)
