"""Shared fixtures: an in-memory DatabaseClient and a seeded loft.

``FakeDatabase`` honours the filter semantics of ``adapters.base``
(scalar, ``None``, collections and ``Cmp``), assigns integer ids, and
rolls back every change made inside a failing ``transaction()`` block.
"""

import asyncio
import copy
import operator
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any

import pytest

from pigeonfarm_lifecycle.adapters.base import Cmp
from pigeonfarm_lifecycle.backup.models import Snapshot, SnapshotMetadata
from pigeonfarm_lifecycle.config.models import BackupSettings

OPERATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "!=": operator.ne,
}

OWNER = 7
OTHER_OWNER = 9


def _matches(row: dict, filters: dict[str, Any] | None) -> bool:
    for column, expected in (filters or {}).items():
        value = row.get(column)
        if isinstance(expected, Cmp):
            if value is None or not OPERATORS[expected.op](value, expected.value):
                return False
        elif isinstance(expected, (list, set, frozenset)):
            if value not in expected:
                return False
        elif expected is None:
            if value is not None:
                return False
        elif value != expected:
            return False
    return True


class FakeDatabase:
    """In-memory implementation of the ``DatabaseClient`` protocol."""

    def __init__(self) -> None:
        self.tables: defaultdict[str, list[dict]] = defaultdict(list)
        self.sequences: defaultdict[str, int] = defaultdict(int)
        self.failures: dict[tuple[str, str], Exception] = {}
        self.transactions = 0
        self.open_transactions = 0
        self.max_open_transactions = 0
        self.isolation_levels: list[str | None] = []
        self.closed = False

    # -- test helpers ------------------------------------------------------

    def fail(self, method: str, table: str, error: Exception | None = None) -> None:
        """Make every ``method`` call on ``table`` raise."""
        self.failures[(method, table)] = error or RuntimeError(f"{method} on {table} failed")

    def seed(self, table: str, *rows: dict) -> None:
        for row in rows:
            self.tables[table].append(dict(row))

    def rows(self, table: str, **filters: Any) -> list[dict]:
        return [dict(r) for r in self.tables[table] if _matches(r, filters)]

    def _check(self, method: str, table: str) -> None:
        error = self.failures.get((method, table))
        if error is not None:
            raise error

    # -- DatabaseClient ----------------------------------------------------

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict]:
        self._check("select", table)
        rows = [r for r in self.tables[table] if _matches(r, filters)]

        if order_by:
            column, _, direction = order_by.partition(" ")
            rows = sorted(
                rows,
                key=lambda r: (r.get(column) is None, r.get(column)),
                reverse=direction.strip().upper() == "DESC",
            )
        if offset:
            rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]

        if columns.strip() == "*":
            return [dict(r) for r in rows]
        names = [c.strip() for c in columns.split(",")]
        return [{name: r.get(name) for name in names} for r in rows]

    async def insert(self, table: str, data: dict) -> dict:
        self._check("insert", table)
        await asyncio.sleep(0)
        row = dict(data)
        if row.get("id") is None:
            # Like SERIAL: ids are never reused, even after a delete or rollback
            highest = max((r["id"] for r in self.tables[table]), default=0)
            self.sequences[table] = max(self.sequences[table], highest) + 1
            row["id"] = self.sequences[table]
        elif any(r["id"] == row["id"] for r in self.tables[table]):
            raise RuntimeError(f"duplicate key {table}.id={row['id']}")
        self.tables[table].append(row)
        return dict(row)

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        self._check("update", table)
        matched = [r for r in self.tables[table] if _matches(r, filters)]
        if not matched:
            raise ValueError(f"No rows matched filters: {filters}")
        for row in matched:
            row.update(data)
        return dict(matched[0])

    async def delete(self, table: str, filters: dict[str, Any]) -> int:
        self._check("delete", table)
        if not filters:
            raise ValueError(f"Refusing to delete from {table} without filters")
        kept = [r for r in self.tables[table] if not _matches(r, filters)]
        deleted = len(self.tables[table]) - len(kept)
        self.tables[table] = kept
        return deleted

    async def count(self, table: str, filters: dict[str, Any] | None = None) -> int:
        self._check("count", table)
        return sum(1 for r in self.tables[table] if _matches(r, filters))

    async def execute(self, sql: str, params: dict | None = None) -> None:
        return None

    async def close(self) -> None:
        self.closed = True

    @asynccontextmanager
    async def transaction(self, isolation_level: str | None = None):
        saved = copy.deepcopy(self.tables)
        self.transactions += 1
        self.isolation_levels.append(isolation_level)
        self.open_transactions += 1
        self.max_open_transactions = max(self.max_open_transactions, self.open_transactions)
        try:
            await asyncio.sleep(0)
            yield self
        except BaseException:
            self.tables = saved
            raise
        finally:
            self.open_transactions -= 1


def seed_loft(db: FakeDatabase) -> FakeDatabase:
    """Two owners; owner 7 has a full graph, owner 9 a small one."""
    created = datetime(2026, 3, 1, 8, 30, tzinfo=timezone.utc)
    db.seed(
        "users",
        {"id": OWNER, "username": "lucien", "email": "lucien@example.com",
         "full_name": "Lucien Marchal", "password": "$2b$12$hash", "role": "user",
         "avatar_url": None, "created_at": created},
        {"id": OTHER_OWNER, "username": "odile", "email": "odile@example.com",
         "full_name": "Odile Ferrand", "password": "$2b$12$hash", "role": "admin",
         "avatar_url": None, "created_at": created},
    )
    db.seed(
        "couples",
        {"id": 1, "user_id": OWNER, "nest_number": "A1", "race": "Mondain",
         "formation_date": date(2026, 3, 1), "status": "active", "created_at": created},
        {"id": 2, "user_id": OWNER, "nest_number": "A2", "race": "King",
         "formation_date": date(2026, 3, 15), "status": "active", "created_at": created},
        {"id": 3, "user_id": OTHER_OWNER, "nest_number": "B1", "race": "Carneau",
         "formation_date": None, "status": "active", "created_at": created},
    )
    db.seed(
        "eggs",
        {"id": 10, "couple_id": 1, "egg1_date": date(2026, 4, 2), "egg2_date": date(2026, 4, 4),
         "hatch_date1": date(2026, 4, 20), "success1": True, "created_at": created},
        {"id": 11, "couple_id": 3, "egg1_date": date(2026, 4, 5), "created_at": created},
    )
    db.seed(
        "pigeonneaux",
        {"id": 20, "couple_id": 1, "egg_record_id": 10, "birth_date": date(2026, 4, 20),
         "sex": "male", "status": "alive", "created_at": created},
        {"id": 21, "couple_id": 3, "egg_record_id": 11, "birth_date": date(2026, 4, 23),
         "sex": "unknown", "status": "alive", "created_at": created},
    )
    db.seed(
        "health_records",
        {"id": 30, "user_id": OWNER, "type": "vaccination", "entity_type": "couple",
         "entity_id": 1, "product": "Colombovac", "treatment_date": date(2026, 5, 1)},
        {"id": 31, "user_id": OWNER, "type": "deworming", "entity_type": "pigeonneau",
         "entity_id": 20, "product": "Ivomec", "treatment_date": date(2026, 5, 10)},
        {"id": 32, "user_id": OTHER_OWNER, "type": "vaccination", "entity_type": "couple",
         "entity_id": 3, "product": "Colombovac", "treatment_date": date(2026, 5, 2)},
    )
    db.seed(
        "sales",
        {"id": 40, "user_id": OWNER, "pigeonneau_id": 20, "sale_date": date(2026, 6, 1),
         "quantity": 1, "amount": 25.0, "client": "Marché de Rungis"},
        {"id": 41, "user_id": OTHER_OWNER, "pigeonneau_id": None, "sale_date": date(2026, 6, 2),
         "quantity": 2, "amount": 40.0, "client": "Voisin"},
    )
    db.seed(
        "notifications",
        {"id": 50, "user_id": OWNER, "type": "info", "title": "Éclosion",
         "message": "Couple A1: éclosion prévue", "read_status": False, "created_at": created},
        {"id": 51, "user_id": OTHER_OWNER, "type": "info", "title": "Vente",
         "message": "Vente enregistrée", "read_status": True, "created_at": created},
    )
    db.seed(
        "user_preferences",
        {"id": 60, "user_id": OWNER, "language": "fr", "theme": "dark"},
    )
    return db


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def loft(db: FakeDatabase) -> FakeDatabase:
    return seed_loft(db)


@pytest.fixture
def backup_settings(tmp_path) -> BackupSettings:
    return BackupSettings(root_dir=tmp_path / "backups")


@pytest.fixture
def make_snapshot():
    """Factory for small snapshots owned by ``owner_id``."""

    def _make(owner_id: int = OWNER, version: str = "1.0", **collections: Any) -> Snapshot:
        return Snapshot(
            metadata=SnapshotMetadata(
                version=version,
                exported_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
                owner_id=owner_id,
                owner_name=f"owner{owner_id}",
            ),
            **collections,
        )

    return _make
