"""Snapshot export driven by BackupSchema.

Iterates ``schema.tables`` in order (parents before children).  Tables
carrying an ownership column are filtered by the owner id directly;
tables owned through a parent are filtered by the parent PKs collected
earlier in the same export (``couple_id IN (...)``).

Usage:
    from pigeonfarm_lifecycle.backup.export import ExportEngine

    engine = ExportEngine(adapter)
    snapshot = await engine.export_snapshot(owner_id=7)
    snapshot.statistics     # {"couples": 3, "eggs": 5, ...}
"""

import logging
from datetime import datetime, timezone
from typing import Any

from pigeonfarm_lifecycle.adapters.base import DatabaseClient
from pigeonfarm_lifecycle.backup.models import (
    SNAPSHOT_VERSION,
    BackupSchema,
    Snapshot,
    SnapshotMetadata,
    TableDef,
)
from pigeonfarm_lifecycle.backup.tables import LOFT_SCHEMA, OWNER_COLUMNS, USERS_TABLE
from pigeonfarm_lifecycle.errors import ExportFailed, OwnerNotFound

logger = logging.getLogger(__name__)

SNAPSHOT_ISOLATION = "REPEATABLE READ"


class ExportEngine:
    """Builds a self-contained snapshot of one owner's graph.

    The engine only reads.  All reads run in one REPEATABLE READ
    transaction, so every collection sees the same committed state and a
    child never references a parent missing from the snapshot.
    """

    def __init__(self, adapter: DatabaseClient, schema: BackupSchema = LOFT_SCHEMA) -> None:
        self._adapter = adapter
        self._schema = schema

    async def export_snapshot(self, owner_id: int) -> Snapshot:
        """Export every row reachable from ``owner_id``.

        Args:
            owner_id: Owner whose graph is exported.

        Returns:
            Snapshot with metadata, owner row, one list per collection,
            and per-collection counts in ``statistics``.

        Raises:
            OwnerNotFound: If no user has this id.
            ExportFailed: If any read fails.  No partial snapshot is returned.
        """
        logger.info(f"Exporting data for owner {owner_id}")
        collections: dict[str, list[dict[str, Any]]] = {}
        step = USERS_TABLE

        try:
            async with self._adapter.transaction(isolation_level=SNAPSHOT_ISOLATION) as tx:
                owners = await tx.select(USERS_TABLE, OWNER_COLUMNS, filters={"id": owner_id})
                if not owners:
                    raise OwnerNotFound(owner_id)
                owner = owners[0]

                # Track PK values per table for child-table filtering
                pk_values: dict[str, list] = {}
                for table_def in self._schema.tables:
                    step = table_def.name
                    rows = await select_owned(tx, table_def, owner_id, pk_values)
                    pk_values[table_def.name] = [r[table_def.pk] for r in rows]
                    collections[table_def.key] = rows
        except OwnerNotFound:
            raise
        except Exception as e:
            logger.error(f"Export for owner {owner_id} failed while reading {step}: {e}")
            raise ExportFailed(
                f"Could not read {step} while exporting owner {owner_id}"
            ) from e

        snapshot = Snapshot(
            metadata=SnapshotMetadata(
                version=SNAPSHOT_VERSION,
                exported_at=datetime.now(timezone.utc),
                owner_id=owner_id,
                owner_name=owner.get("username") or "",
            ),
            owner=owner,
            statistics={key: len(rows) for key, rows in collections.items()},
            **collections,
        )

        logger.info(f"Export for owner {owner_id} complete: {snapshot.statistics}")
        return snapshot


async def select_owned(
    adapter: DatabaseClient,
    table_def: TableDef,
    owner_id: int,
    pk_values: dict[str, list],
) -> list[dict]:
    """Select the rows of one table that belong to ``owner_id``.

    Args:
        adapter: Database adapter (or a transaction-bound client).
        table_def: Table to read.
        owner_id: Owner id matched against ``table_def.user_field``.
        pk_values: PKs already collected per parent table.  A child whose
            parent table produced no PKs has no owned rows.

    Returns:
        Rows ordered by primary key.

    Raises:
        ValueError: If the table has no ownership path at all.
    """
    filters: dict[str, Any] = {}

    if table_def.user_field is not None:
        filters[table_def.user_field] = owner_id

    if table_def.parent is not None:
        parent_pks = pk_values.get(table_def.parent.table, [])
        if not parent_pks:
            return []
        filters[table_def.parent.field] = parent_pks

    if not filters:
        raise ValueError(
            f"Table {table_def.name} has neither an ownership column nor a parent"
        )

    return await adapter.select(table_def.name, "*", filters=filters, order_by=table_def.pk)
