"""Error taxonomy for the data lifecycle core.

Every error carries a stable ``code`` and a human-readable ``message``.
Callers outside a debug context should only ever see those two fields;
the chained cause (``__cause__``) is exposed by ``to_dict(debug=True)``.

Usage:
    from pigeonfarm_lifecycle.errors import BackupNotFound, LifecycleError

    try:
        storage.read_backup(7, "backup_user7_2026-01-01T00-00-00-000000Z.json")
    except LifecycleError as e:
        payload = e.to_dict()   # {"code": "BACKUP_NOT_FOUND", "message": "..."}
"""

from typing import Any


class LifecycleError(Exception):
    """Base class for all errors raised by the lifecycle core."""

    code = "LIFECYCLE_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self, debug: bool = False) -> dict[str, Any]:
        """Structured error for callers.

        Args:
            debug: When ``True``, include the underlying cause.

        Returns:
            Dict with ``code`` and ``message`` (plus ``cause`` in debug mode).
        """
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if debug and self.__cause__ is not None:
            payload["cause"] = repr(self.__cause__)
        return payload


class OwnerNotFound(LifecycleError):
    code = "OWNER_NOT_FOUND"

    def __init__(self, owner_id: int) -> None:
        super().__init__(f"Owner {owner_id} not found")
        self.owner_id = owner_id


class ExportFailed(LifecycleError):
    code = "EXPORT_FAILED"


class InvalidSnapshotFormat(LifecycleError):
    code = "INVALID_SNAPSHOT_FORMAT"


class ImportFailed(LifecycleError):
    """Restore aborted; ``step`` names the collection or phase that failed."""

    code = "IMPORT_FAILED"

    def __init__(self, step: str, message: str) -> None:
        super().__init__(f"Import failed at step '{step}': {message}")
        self.step = step

    def to_dict(self, debug: bool = False) -> dict[str, Any]:
        payload = super().to_dict(debug)
        payload["step"] = self.step
        return payload


class ClearFailed(LifecycleError):
    """Clearing an owner's data failed; nothing was deleted."""

    code = "CLEAR_FAILED"


class BackupNotFound(LifecycleError):
    code = "BACKUP_NOT_FOUND"


class BackupCorrupt(LifecycleError):
    code = "BACKUP_CORRUPT"


class BackupPersistFailed(LifecycleError):
    code = "BACKUP_PERSIST_FAILED"


class BackupAccessDenied(LifecycleError):
    """A caller asked for a backup that belongs to another owner."""

    code = "BACKUP_ACCESS_DENIED"


class ArchiveRunFailed(LifecycleError):
    """Full archive run aborted; ``step`` names the failing sub-operation."""

    code = "ARCHIVE_RUN_FAILED"

    def __init__(self, step: str, message: str) -> None:
        super().__init__(f"Archive run failed at step '{step}': {message}")
        self.step = step

    def to_dict(self, debug: bool = False) -> dict[str, Any]:
        payload = super().to_dict(debug)
        payload["step"] = self.step
        return payload
