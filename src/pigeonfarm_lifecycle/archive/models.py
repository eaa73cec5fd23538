"""Archive engine result models."""

from datetime import datetime

from pydantic import BaseModel, Field, computed_field


class ArchiveResult(BaseModel):
    """Counts for one archive or cleanup operation.

    Pure cleanups only report ``deleted``.
    """

    archived: int = 0
    deleted: int = 0


class ArchiveRunSummary(BaseModel):
    """Result of a full archive run."""

    notifications: ArchiveResult = Field(default_factory=ArchiveResult)
    push_notifications: ArchiveResult = Field(default_factory=ArchiveResult)
    audit_logs: ArchiveResult = Field(default_factory=ArchiveResult)
    reset_codes: ArchiveResult = Field(default_factory=ArchiveResult)
    execution_time_ms: int = 0
    executed_at: datetime

    @computed_field
    @property
    def total_archived(self) -> int:
        return self.notifications.archived + self.push_notifications.archived

    @computed_field
    @property
    def total_deleted(self) -> int:
        return (
            self.notifications.deleted
            + self.push_notifications.deleted
            + self.audit_logs.deleted
            + self.reset_codes.deleted
        )


class ArchiveStats(BaseModel):
    """Row counts of the live and archive tables."""

    active_notifications: int
    archived_notifications: int
    active_push_notifications: int
    archived_push_notifications: int
    audit_logs: int
    reset_codes: int
