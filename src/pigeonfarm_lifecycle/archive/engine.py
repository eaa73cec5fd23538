"""Age- and state-based archival of notifications and logs.

Default policy (tunable through ``ArchiveSettings``):

| Table               | Predicate                                | Action                  |
|---------------------|------------------------------------------|-------------------------|
| notifications       | read_status AND created_at < now - 30d   | move to archive table   |
| push_notifications  | status = 'read' AND read_at < now - 60d  | move to archive table   |
| audit_logs          | created_at < now - 365d                  | delete                  |
| password_reset_codes| expires_at < now OR used                 | delete                  |

Each operation runs in its own transaction.  A live row and its archive
copy never coexist: candidates that already have an archive entry are
deleted from the live table without a second archive row.

Usage:
    from pigeonfarm_lifecycle.archive.engine import ArchiveEngine

    engine = ArchiveEngine(adapter, ArchiveSettings())
    summary = await engine.run_full_archive(executed_by=1)
    summary.total_archived
"""

import logging
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from pigeonfarm_lifecycle.adapters.base import Cmp, DatabaseClient
from pigeonfarm_lifecycle.archive.models import ArchiveResult, ArchiveRunSummary, ArchiveStats
from pigeonfarm_lifecycle.config.models import ArchiveSettings
from pigeonfarm_lifecycle.errors import ArchiveRunFailed

logger = logging.getLogger(__name__)

NOTIFICATIONS = "notifications"
ARCHIVED_NOTIFICATIONS = "archived_notifications"
PUSH_NOTIFICATIONS = "push_notifications"
ARCHIVED_PUSH_NOTIFICATIONS = "archived_push_notifications"
AUDIT_LOGS = "audit_logs"
RESET_CODES = "password_reset_codes"
ARCHIVE_LOGS = "archive_logs"
USERS = "users"

ARCHIVE_ONLY_COLUMNS = ("id", "original_id", "archived_at", "archive_reason")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArchiveEngine:
    """Moves consumed notifications to archive tables and purges old logs.

    Args:
        adapter: Database adapter.
        settings: Age thresholds.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        adapter: DatabaseClient,
        settings: ArchiveSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._adapter = adapter
        self._settings = settings or ArchiveSettings()
        self._clock = clock

    # ------------------------------------------------------------------
    # Archival
    # ------------------------------------------------------------------

    async def archive_old_notifications(self) -> ArchiveResult:
        """Archive read notifications older than the notification threshold."""
        days = self._settings.notification_age_days
        cutoff = self._clock() - timedelta(days=days)
        result = await self._archive(
            NOTIFICATIONS,
            ARCHIVED_NOTIFICATIONS,
            filters={"read_status": True, "created_at": Cmp("<", cutoff)},
            reason=f"auto_archive_{days}_days",
        )
        logger.info(
            f"Notifications: {result.archived} archived, {result.deleted} deleted"
        )
        return result

    async def archive_old_push_notifications(self) -> ArchiveResult:
        """Archive push notifications read longer ago than the push threshold."""
        days = self._settings.push_notification_age_days
        cutoff = self._clock() - timedelta(days=days)
        result = await self._archive(
            PUSH_NOTIFICATIONS,
            ARCHIVED_PUSH_NOTIFICATIONS,
            filters={"status": "read", "read_at": Cmp("<", cutoff)},
            reason=f"auto_archive_{days}_days",
        )
        logger.info(
            f"Push notifications: {result.archived} archived, {result.deleted} deleted"
        )
        return result

    async def clean_old_audit_logs(self) -> ArchiveResult:
        """Delete audit logs older than the retention window."""
        cutoff = self._clock() - timedelta(days=self._settings.audit_log_retention_days)
        deleted = await self._adapter.delete(AUDIT_LOGS, {"created_at": Cmp("<", cutoff)})
        logger.info(f"Audit logs: {deleted} deleted")
        return ArchiveResult(deleted=deleted)

    async def clean_expired_reset_codes(self) -> ArchiveResult:
        """Delete password reset codes that are expired or already used."""
        now = self._clock()
        async with self._adapter.transaction() as tx:
            deleted = await tx.delete(RESET_CODES, {"expires_at": Cmp("<", now)})
            deleted += await tx.delete(RESET_CODES, {"used": True})
        logger.info(f"Password reset codes: {deleted} deleted")
        return ArchiveResult(deleted=deleted)

    async def run_full_archive(self, executed_by: int | None = None) -> ArchiveRunSummary:
        """Run the four operations in order and record the run.

        Stops at the first failing operation.  The ``archive_logs`` row is
        written in both cases; on failure it carries the counts of the
        operations that completed and the error.

        Args:
            executed_by: Id of the operator who triggered the run, if any.

        Returns:
            ArchiveRunSummary with per-operation counts.

        Raises:
            ArchiveRunFailed: Naming the operation that failed.
        """
        started = time.monotonic()
        summary = ArchiveRunSummary(executed_at=self._clock())
        steps = [
            ("notifications", self.archive_old_notifications),
            ("push_notifications", self.archive_old_push_notifications),
            ("audit_logs", self.clean_old_audit_logs),
            ("reset_codes", self.clean_expired_reset_codes),
        ]

        logger.info("Starting full archive run")
        step = steps[0][0]
        try:
            for step, operation in steps:
                setattr(summary, step, await operation())
        except Exception as e:
            summary.execution_time_ms = int((time.monotonic() - started) * 1000)
            logger.error(f"Archive run failed at {step}: {e}")
            try:
                await self._record_run(summary, executed_by, status="failed", error=str(e))
            except Exception as log_error:
                logger.error(f"Could not record failed archive run: {log_error}")
            raise ArchiveRunFailed(step, f"{step} could not be archived") from e

        summary.execution_time_ms = int((time.monotonic() - started) * 1000)
        try:
            await self._record_run(summary, executed_by, status="success")
        except Exception as e:
            raise ArchiveRunFailed(ARCHIVE_LOGS, "the run could not be recorded") from e

        logger.info(
            f"Archive run complete: {summary.total_archived} archived, "
            f"{summary.total_deleted} deleted in {summary.execution_time_ms} ms"
        )
        return summary

    async def restore_archived_notifications(self, original_ids: Sequence[int]) -> int:
        """Move archived notifications back to the live table.

        Rows are re-inserted with their original id, so an id that is
        already live (or listed twice) is never duplicated.

        Args:
            original_ids: Ids the notifications had before archival.

        Returns:
            Number of notifications restored.

        Raises:
            ValueError: If ``original_ids`` is empty.
        """
        if not original_ids:
            raise ValueError("original_ids must be a non-empty list")

        async with self._adapter.transaction() as tx:
            rows = await tx.select(
                ARCHIVED_NOTIFICATIONS,
                "*",
                filters={"original_id": list(original_ids)},
                order_by="id",
            )
            if not rows:
                return 0

            found = [r["original_id"] for r in rows]
            live = await tx.select(NOTIFICATIONS, "id", filters={"id": found})
            seen: set = {r["id"] for r in live}

            restored = 0
            for row in rows:
                original_id = row["original_id"]
                if original_id in seen:
                    continue
                data = {k: v for k, v in row.items() if k not in ARCHIVE_ONLY_COLUMNS}
                data["id"] = original_id
                await tx.insert(NOTIFICATIONS, data)
                seen.add(original_id)
                restored += 1

            await tx.delete(ARCHIVED_NOTIFICATIONS, {"original_id": found})

        logger.info(f"Restored {restored} archived notifications")
        return restored

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_archive_stats(self) -> ArchiveStats:
        """Row counts of the live and archive tables."""
        return ArchiveStats(
            active_notifications=await self._adapter.count(NOTIFICATIONS),
            archived_notifications=await self._adapter.count(ARCHIVED_NOTIFICATIONS),
            active_push_notifications=await self._adapter.count(PUSH_NOTIFICATIONS),
            archived_push_notifications=await self._adapter.count(ARCHIVED_PUSH_NOTIFICATIONS),
            audit_logs=await self._adapter.count(AUDIT_LOGS),
            reset_codes=await self._adapter.count(RESET_CODES),
        )

    async def list_archived_notifications(
        self,
        limit: int = 50,
        offset: int = 0,
        owner_id: int | None = None,
    ) -> dict[str, Any]:
        """Page through archived notifications, most recently archived first.

        Each item carries the owner's ``username`` and ``email``.

        Returns:
            ``{"items": [...], "limit": .., "offset": .., "total": ..}``
        """
        filters = {"user_id": owner_id} if owner_id is not None else None
        items = await self._adapter.select(
            ARCHIVED_NOTIFICATIONS,
            "*",
            filters=filters,
            order_by="archived_at DESC",
            limit=limit,
            offset=offset,
        )
        users = await self._users_by_id({r["user_id"] for r in items})
        for item in items:
            user = users.get(item["user_id"], {})
            item["username"] = user.get("username")
            item["email"] = user.get("email")

        total = await self._adapter.count(ARCHIVED_NOTIFICATIONS, filters)
        return {"items": items, "limit": limit, "offset": offset, "total": total}

    async def list_archive_logs(self, limit: int = 50, offset: int = 0) -> dict[str, Any]:
        """Page through archive run records, newest first.

        Returns:
            ``{"items": [...], "limit": .., "offset": .., "total": ..}``
        """
        items = await self._adapter.select(
            ARCHIVE_LOGS, "*", order_by="executed_at DESC", limit=limit, offset=offset
        )
        users = await self._users_by_id(
            {r["executed_by"] for r in items if r.get("executed_by") is not None}
        )
        for item in items:
            item["executed_by_username"] = users.get(item.get("executed_by"), {}).get("username")

        total = await self._adapter.count(ARCHIVE_LOGS)
        return {"items": items, "limit": limit, "offset": offset, "total": total}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _archive(
        self,
        live_table: str,
        archive_table: str,
        filters: dict[str, Any],
        reason: str,
    ) -> ArchiveResult:
        """Copy matching rows to ``archive_table`` and delete them from ``live_table``."""
        async with self._adapter.transaction() as tx:
            candidates = await tx.select(live_table, "*", filters=filters, order_by="id")
            if not candidates:
                return ArchiveResult()

            ids = [r["id"] for r in candidates]
            existing = await tx.select(archive_table, "original_id", filters={"original_id": ids})
            already_archived = {r["original_id"] for r in existing}

            archived_at = self._clock()
            archived = 0
            for row in candidates:
                if row["id"] in already_archived:
                    continue
                data = {k: v for k, v in row.items() if k != "id"}
                data.update(
                    original_id=row["id"],
                    archived_at=archived_at,
                    archive_reason=reason,
                )
                await tx.insert(archive_table, data)
                archived += 1

            deleted = await tx.delete(live_table, {"id": ids})

        return ArchiveResult(archived=archived, deleted=deleted)

    async def _record_run(
        self,
        summary: ArchiveRunSummary,
        executed_by: int | None,
        status: str,
        error: str | None = None,
    ) -> None:
        await self._adapter.insert(
            ARCHIVE_LOGS,
            {
                "archive_type": "full",
                "items_archived": summary.total_archived,
                "items_deleted": summary.total_deleted,
                "execution_time_ms": summary.execution_time_ms,
                "status": status,
                "error_message": error,
                "executed_at": summary.executed_at,
                "executed_by": executed_by,
            },
        )

    async def _users_by_id(self, user_ids: set) -> dict[Any, dict]:
        if not user_ids:
            return {}
        rows = await self._adapter.select(
            USERS, "id, username, email", filters={"id": sorted(user_ids)}
        )
        return {r["id"]: r for r in rows}
