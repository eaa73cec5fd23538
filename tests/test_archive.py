"""Tests for the archive engine.

Uses a fixed clock; rows are dated relative to ``NOW``.
"""

from datetime import datetime, timedelta, timezone

import pytest

from pigeonfarm_lifecycle.archive.engine import ArchiveEngine
from pigeonfarm_lifecycle.config.models import ArchiveSettings
from pigeonfarm_lifecycle.errors import ArchiveRunFailed

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _days_ago(days: int) -> datetime:
    return NOW - timedelta(days=days)


def _notification(id_: int, read: bool, age_days: int, user_id: int = 7) -> dict:
    return {
        "id": id_,
        "user_id": user_id,
        "type": "info",
        "title": f"Notification {id_}",
        "message": "Couple A1: ponte",
        "read_status": read,
        "created_at": _days_ago(age_days),
    }


@pytest.fixture
def engine(db):
    return ArchiveEngine(db, ArchiveSettings(), clock=lambda: NOW)


@pytest.fixture
def seeded(db):
    db.seed(
        "users",
        {"id": 7, "username": "lucien", "email": "lucien@example.com"},
        {"id": 1, "username": "admin", "email": "admin@example.com"},
    )
    db.seed(
        "notifications",
        _notification(1, read=True, age_days=40),
        _notification(2, read=False, age_days=40),
        _notification(3, read=True, age_days=10),
    )
    db.seed(
        "push_notifications",
        {"id": 1, "user_id": 7, "title": "t", "body": "b", "data": {"couple": 1},
         "status": "read", "read_at": _days_ago(70), "created_at": _days_ago(75)},
        {"id": 2, "user_id": 7, "title": "t", "body": "b", "data": None,
         "status": "sent", "read_at": None, "created_at": _days_ago(90)},
        {"id": 3, "user_id": 7, "title": "t", "body": "b", "data": None,
         "status": "read", "read_at": _days_ago(30), "created_at": _days_ago(31)},
    )
    db.seed(
        "audit_logs",
        {"id": 1, "user_id": 7, "action": "login", "created_at": _days_ago(400)},
        {"id": 2, "user_id": 7, "action": "login", "created_at": _days_ago(100)},
    )
    db.seed(
        "password_reset_codes",
        {"id": 1, "user_id": 7, "code": "111111", "expires_at": _days_ago(1), "used": False},
        {"id": 2, "user_id": 7, "code": "222222", "expires_at": NOW + timedelta(hours=1),
         "used": True},
        {"id": 3, "user_id": 7, "code": "333333", "expires_at": NOW + timedelta(hours=1),
         "used": False},
    )
    return db


class TestArchiveNotifications:
    """Read notifications past the threshold move to the archive table."""

    async def test_moves_old_read_notifications(self, seeded, engine):
        result = await engine.archive_old_notifications()

        assert result.archived == 1
        assert result.deleted == 1
        assert [n["id"] for n in seeded.rows("notifications")] == [2, 3]
        [archived] = seeded.rows("archived_notifications")
        assert archived["original_id"] == 1
        assert archived["archive_reason"] == "auto_archive_30_days"
        assert archived["archived_at"] == NOW
        assert archived["title"] == "Notification 1"

    async def test_already_archived_not_duplicated(self, seeded, engine):
        """A live row with an archive copy is deleted without a second copy."""
        seeded.seed(
            "archived_notifications",
            {**_notification(900, read=True, age_days=40), "original_id": 1,
             "archived_at": _days_ago(1), "archive_reason": "auto_archive_30_days"},
        )

        result = await engine.archive_old_notifications()

        assert result.archived == 0
        assert result.deleted == 1
        assert len(seeded.rows("archived_notifications", original_id=1)) == 1
        assert seeded.rows("notifications", id=1) == []

    async def test_custom_threshold_in_reason(self, seeded):
        engine = ArchiveEngine(
            seeded, ArchiveSettings(notification_age_days=7), clock=lambda: NOW
        )

        result = await engine.archive_old_notifications()

        assert result.archived == 2
        reasons = {r["archive_reason"] for r in seeded.rows("archived_notifications")}
        assert reasons == {"auto_archive_7_days"}

    async def test_nothing_to_archive(self, db, engine):
        result = await engine.archive_old_notifications()
        assert (result.archived, result.deleted) == (0, 0)


class TestArchivePushNotifications:

    async def test_moves_old_read_push_notifications(self, seeded, engine):
        result = await engine.archive_old_push_notifications()

        assert (result.archived, result.deleted) == (1, 1)
        assert [p["id"] for p in seeded.rows("push_notifications")] == [2, 3]
        [archived] = seeded.rows("archived_push_notifications")
        assert archived["original_id"] == 1
        assert archived["data"] == {"couple": 1}
        assert archived["archive_reason"] == "auto_archive_60_days"


class TestCleanup:
    """Pure deletions."""

    async def test_old_audit_logs_deleted(self, seeded, engine):
        result = await engine.clean_old_audit_logs()

        assert result.deleted == 1
        assert result.archived == 0
        assert [a["id"] for a in seeded.rows("audit_logs")] == [2]

    async def test_expired_and_used_reset_codes_deleted(self, seeded, engine):
        result = await engine.clean_expired_reset_codes()

        assert result.deleted == 2
        assert [c["id"] for c in seeded.rows("password_reset_codes")] == [3]


class TestRunFullArchive:
    """run_full_archive orchestration and its log row."""

    async def test_summary_and_log(self, seeded, engine):
        summary = await engine.run_full_archive(executed_by=1)

        assert summary.notifications.archived == 1
        assert summary.push_notifications.archived == 1
        assert summary.audit_logs.deleted == 1
        assert summary.reset_codes.deleted == 2
        assert summary.total_archived == 2
        assert summary.total_deleted == 5
        assert summary.executed_at == NOW

        [log] = seeded.rows("archive_logs")
        assert log["archive_type"] == "full"
        assert log["status"] == "success"
        assert log["items_archived"] == 2
        assert log["items_deleted"] == 5
        assert log["executed_by"] == 1
        assert log["error_message"] is None

    async def test_failing_step_named_and_logged(self, seeded, engine):
        seeded.fail("delete", "audit_logs")

        with pytest.raises(ArchiveRunFailed) as exc_info:
            await engine.run_full_archive()

        assert exc_info.value.step == "audit_logs"
        # Earlier operations stay committed
        assert seeded.rows("notifications", id=1) == []
        assert len(seeded.rows("archived_notifications")) == 1
        # Later operations did not run
        assert len(seeded.rows("password_reset_codes")) == 3

        [log] = seeded.rows("archive_logs")
        assert log["status"] == "failed"
        assert "audit_logs" in log["error_message"]
        assert log["items_archived"] == 2

    async def test_unrecorded_run_fails(self, seeded, engine):
        seeded.fail("insert", "archive_logs")

        with pytest.raises(ArchiveRunFailed) as exc_info:
            await engine.run_full_archive()

        assert exc_info.value.step == "archive_logs"

    async def test_failure_to_log_failure_keeps_original_step(self, seeded, engine):
        seeded.fail("delete", "password_reset_codes")
        seeded.fail("insert", "archive_logs")

        with pytest.raises(ArchiveRunFailed) as exc_info:
            await engine.run_full_archive()

        assert exc_info.value.step == "reset_codes"


class TestRestoreArchivedNotifications:
    """Archived notifications go back to the live table exactly once."""

    async def test_restores_with_original_id(self, seeded, engine):
        await engine.archive_old_notifications()

        restored = await engine.restore_archived_notifications([1])

        assert restored == 1
        [notification] = seeded.rows("notifications", id=1)
        assert notification["title"] == "Notification 1"
        assert notification["read_status"] is True
        assert "original_id" not in notification
        assert "archive_reason" not in notification
        assert seeded.rows("archived_notifications") == []

    async def test_repeated_restore_is_noop(self, seeded, engine):
        await engine.archive_old_notifications()
        await engine.restore_archived_notifications([1])

        assert await engine.restore_archived_notifications([1]) == 0
        assert len(seeded.rows("notifications", id=1)) == 1

    async def test_live_id_not_duplicated(self, seeded, engine):
        seeded.seed(
            "archived_notifications",
            {**_notification(900, read=True, age_days=40), "original_id": 3,
             "archived_at": _days_ago(1), "archive_reason": "manual"},
        )

        restored = await engine.restore_archived_notifications([3])

        assert restored == 0
        assert len(seeded.rows("notifications", id=3)) == 1
        assert seeded.rows("archived_notifications") == []

    async def test_unknown_ids(self, seeded, engine):
        assert await engine.restore_archived_notifications([404]) == 0

    async def test_empty_list_rejected(self, engine):
        with pytest.raises(ValueError, match="non-empty"):
            await engine.restore_archived_notifications([])

    async def test_restore_then_archive_reproduces_state(self, seeded, engine):
        await engine.archive_old_notifications()
        before = [
            {k: v for k, v in r.items() if k != "id"}
            for r in seeded.rows("archived_notifications")
        ]

        await engine.restore_archived_notifications([1])
        await engine.archive_old_notifications()

        after = [
            {k: v for k, v in r.items() if k != "id"}
            for r in seeded.rows("archived_notifications")
        ]
        assert after == before
        assert seeded.rows("notifications", id=1) == []


class TestReporting:
    """Stats and paginated listings."""

    async def test_stats(self, seeded, engine):
        await engine.archive_old_notifications()

        stats = await engine.get_archive_stats()

        assert stats.active_notifications == 2
        assert stats.archived_notifications == 1
        assert stats.active_push_notifications == 3
        assert stats.archived_push_notifications == 0
        assert stats.audit_logs == 2
        assert stats.reset_codes == 3

    async def test_list_archived_notifications(self, seeded):
        await ArchiveEngine(
            seeded, ArchiveSettings(notification_age_days=7), clock=lambda: NOW
        ).archive_old_notifications()
        engine = ArchiveEngine(seeded, clock=lambda: NOW)

        page = await engine.list_archived_notifications(limit=1, offset=0)

        assert page["total"] == 2
        assert page["limit"] == 1
        assert len(page["items"]) == 1
        assert page["items"][0]["username"] == "lucien"
        assert page["items"][0]["email"] == "lucien@example.com"

    async def test_list_archived_notifications_by_owner(self, seeded, engine):
        await engine.archive_old_notifications()

        page = await engine.list_archived_notifications(owner_id=9)

        assert page["items"] == []
        assert page["total"] == 0

    async def test_list_archive_logs_newest_first(self, seeded):
        for day in (3, 1):
            await ArchiveEngine(seeded, clock=lambda d=day: _days_ago(d)).run_full_archive(
                executed_by=1
            )

        page = await ArchiveEngine(seeded).list_archive_logs()

        assert page["total"] == 2
        assert [log["executed_at"] for log in page["items"]] == [_days_ago(1), _days_ago(3)]
        assert page["items"][0]["executed_by_username"] == "admin"
