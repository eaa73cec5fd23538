"""On-disk backup storage, one directory per owner.

Backups are UTF-8 JSON files named
``backup_user{owner_id}_{timestamp}.json`` where the timestamp is the UTC
write time (``2026-10-19T14-30-00-123456Z``).  The owner id embedded in the
filename is the isolation filter: a listing or read for owner A never
returns a file whose embedded id is not A.

This module is **sync** -- it only touches the local filesystem.

Usage:
    from pigeonfarm_lifecycle.backup.storage import BackupStorage
    from pigeonfarm_lifecycle.config.models import BackupSettings

    storage = BackupStorage(BackupSettings(root_dir=Path("/var/backups/loft")))
    backup = storage.write_backup(7, snapshot)
    storage.list_backups(7)          # newest first
    snapshot = storage.read_backup(7, backup.filename)
"""

import json
import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import ValidationError

from pigeonfarm_lifecycle.backup.models import BackupFile, Snapshot, parse_snapshot
from pigeonfarm_lifecycle.config.models import BackupSettings
from pigeonfarm_lifecycle.errors import (
    BackupAccessDenied,
    BackupCorrupt,
    BackupNotFound,
    BackupPersistFailed,
)

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"
FILENAME_PATTERN = re.compile(r"^backup_user(?P<owner_id>\d+)_(?P<timestamp>[0-9TZ-]+)\.json$")


def backup_filename(owner_id: int, created_at: datetime) -> str:
    """Build the filename for a backup written at ``created_at`` (UTC)."""
    return f"backup_user{owner_id}_{created_at.strftime(TIMESTAMP_FORMAT)}.json"


def parse_backup_filename(filename: str) -> tuple[int, datetime] | None:
    """Extract ``(owner_id, created_at)`` from a backup filename.

    Returns:
        ``None`` if the name does not follow the backup convention.
    """
    match = FILENAME_PATTERN.match(filename)
    if match is None:
        return None
    try:
        created_at = datetime.strptime(match["timestamp"], TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return int(match["owner_id"]), created_at.replace(tzinfo=timezone.utc)


class BackupStorage:
    """Persists snapshots under a per-owner directory and applies retention."""

    def __init__(self, settings: BackupSettings) -> None:
        self._settings = settings

    @property
    def root_dir(self) -> Path:
        return self._settings.root_dir

    def directory_for(self, owner_id: int) -> Path:
        """Directory holding ``owner_id``'s backups (pure, no I/O)."""
        if self._settings.separate_owner_folders:
            return self._settings.root_dir / f"user_{owner_id}"
        return self._settings.root_dir

    def ensure_directory(self, owner_id: int) -> Path:
        """Create the owner's backup directory if needed.

        Raises:
            BackupPersistFailed: If the directory cannot be created.
        """
        directory = self.directory_for(owner_id)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackupPersistFailed(
                f"Cannot create backup directory for owner {owner_id}"
            ) from e
        return directory

    def write_backup(self, owner_id: int, snapshot: Snapshot) -> BackupFile:
        """Persist a snapshot for ``owner_id`` and prune old backups.

        Args:
            owner_id: Owner the backup is filed under.
            snapshot: Snapshot to write.

        Returns:
            The written ``BackupFile``.

        Raises:
            BackupPersistFailed: If the file cannot be written.
        """
        directory = self.ensure_directory(owner_id)
        created_at = datetime.now(timezone.utc)
        filename = backup_filename(owner_id, created_at)
        path = directory / filename

        try:
            path.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Writing backup {filename} failed: {e}")
            raise BackupPersistFailed(f"Cannot write backup {filename}") from e

        backup = BackupFile(
            owner_id=owner_id,
            filename=filename,
            path=path,
            created_at=created_at,
            size_bytes=path.stat().st_size,
        )
        logger.info(f"Backup saved: {path} ({backup.size_bytes} bytes)")

        self.prune(owner_id)
        return backup

    def list_backups(self, owner_id: int) -> list[BackupFile]:
        """List ``owner_id``'s backups, newest first."""
        return [
            b for b in self._scan(self.directory_for(owner_id))
            if b.owner_id == owner_id
        ]

    def list_all_backups(self) -> list[BackupFile]:
        """List every owner's backups, newest first.

        Privileged: this is the only path that crosses owner boundaries.
        """
        root = self._settings.root_dir
        if not self._settings.separate_owner_folders:
            return self._scan(root)

        backups: list[BackupFile] = []
        if root.is_dir():
            for directory in sorted(root.glob("user_*")):
                backups.extend(self._scan(directory))
        return sorted(backups, key=lambda b: b.created_at, reverse=True)

    def read_backup(self, owner_id: int, filename: str) -> Snapshot:
        """Load one of ``owner_id``'s backups.

        Raises:
            BackupAccessDenied: If the filename belongs to another owner.
            BackupNotFound: If the file does not exist or is not a backup name.
            BackupCorrupt: If the file is not a readable snapshot.
            InvalidSnapshotFormat: If the snapshot version is not recognized.
        """
        path = self._owned_path(owner_id, filename)
        if not path.is_file():
            raise BackupNotFound(f"Backup {filename} not found")

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BackupCorrupt(f"Backup {filename} is not readable JSON") from e

        try:
            snapshot = Snapshot.model_validate(data)
        except ValidationError as e:
            raise BackupCorrupt(f"Backup {filename} is not a valid snapshot") from e

        return parse_snapshot(snapshot)

    def delete_backup(self, owner_id: int, filename: str) -> None:
        """Delete one of ``owner_id``'s backups.

        Raises:
            BackupAccessDenied: If the filename belongs to another owner.
            BackupNotFound: If the file does not exist.
        """
        path = self._owned_path(owner_id, filename)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise BackupNotFound(f"Backup {filename} not found") from e
        logger.info(f"Backup deleted: {path}")

    def prune(self, owner_id: int) -> list[str]:
        """Apply retention to ``owner_id``'s backups.

        Keeps at most ``max_backups_per_user`` files and, when
        ``retention_days`` is set, drops files older than that window.
        Failures are logged, never raised.

        Returns:
            Filenames that were removed.
        """
        removed: list[str] = []
        try:
            backups = self.list_backups(owner_id)
        except OSError as e:
            logger.warning(f"Backup pruning for owner {owner_id} skipped: {e}")
            return removed

        cutoff = None
        if self._settings.retention_days:
            cutoff = datetime.now(timezone.utc) - timedelta(days=self._settings.retention_days)

        for index, backup in enumerate(backups):
            over_cap = index >= self._settings.max_backups_per_user
            expired = cutoff is not None and backup.created_at < cutoff
            if not (over_cap or expired):
                continue
            try:
                backup.path.unlink()
                removed.append(backup.filename)
            except OSError as e:
                logger.warning(f"Could not prune backup {backup.filename}: {e}")

        if removed:
            logger.info(f"Pruned {len(removed)} backups of owner {owner_id}")
        return removed

    def _owned_path(self, owner_id: int, filename: str) -> Path:
        parsed = parse_backup_filename(filename)
        if parsed is None:
            raise BackupNotFound(f"Backup {filename} not found")
        if parsed[0] != owner_id:
            logger.warning(
                f"Owner {owner_id} asked for backup {filename} of owner {parsed[0]}"
            )
            raise BackupAccessDenied("This backup belongs to another owner")
        return self.directory_for(owner_id) / filename

    def _scan(self, directory: Path) -> list[BackupFile]:
        """Backups in one directory, newest first."""
        if not directory.is_dir():
            return []

        backups: list[BackupFile] = []
        for path in directory.iterdir():
            parsed = parse_backup_filename(path.name)
            if parsed is None or not path.is_file():
                continue
            owner_id, created_at = parsed
            backups.append(
                BackupFile(
                    owner_id=owner_id,
                    filename=path.name,
                    path=path,
                    created_at=created_at,
                    size_bytes=path.stat().st_size,
                )
            )
        return sorted(backups, key=lambda b: b.created_at, reverse=True)
