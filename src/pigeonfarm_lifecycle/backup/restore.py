"""Snapshot restore with FK remapping.

Replays a snapshot into the live store under a destination owner.  Every
row gets a new primary key; foreign keys are rewritten through per-table
``id_maps`` (old PK -> new PK) built during the same call:

- a required parent that cannot be resolved skips the row (orphan)
- an optional reference that cannot be resolved is set to ``None``
- a polymorphic reference (``entity_type``/``entity_id``) is remapped
  when its target was restored and left unchanged otherwise

The whole restore, including the optional clear of existing data, runs
in one transaction.  Restores for the same owner are serialized.

Usage:
    from pigeonfarm_lifecycle.backup.restore import RestoreEngine

    engine = RestoreEngine(adapter)
    result = await engine.restore_snapshot(7, snapshot, clear_existing=True)
    result.imported     # {"couples": 1, "eggs": 1, "pigeonneaux": 1, ...}
"""

import asyncio
import logging
import weakref
from datetime import datetime
from typing import Any

from pigeonfarm_lifecycle.adapters.base import DatabaseClient
from pigeonfarm_lifecycle.backup.export import select_owned
from pigeonfarm_lifecycle.backup.models import (
    BackupSchema,
    ImportResult,
    Snapshot,
    TableDef,
    parse_snapshot,
)
from pigeonfarm_lifecycle.backup.tables import LOFT_SCHEMA
from pigeonfarm_lifecycle.errors import ClearFailed, ImportFailed

logger = logging.getLogger(__name__)

NOTIFICATIONS_KEY = "notifications"


class RestoreEngine:
    """Restores snapshots into the live store.

    The engine holds no per-restore state; ``id_maps`` live for one call.
    The only shared state is the owner-keyed lock table, whose entries
    disappear once no call holds or waits on them.
    """

    def __init__(self, adapter: DatabaseClient, schema: BackupSchema = LOFT_SCHEMA) -> None:
        self._adapter = adapter
        self._schema = schema
        self._owner_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, owner_id: int) -> asyncio.Lock:
        lock = self._owner_locks.get(owner_id)
        if lock is None:
            lock = asyncio.Lock()
            self._owner_locks[owner_id] = lock
        return lock

    async def restore_snapshot(
        self,
        owner_id: int,
        snapshot: Snapshot | dict[str, Any],
        clear_existing: bool = False,
        skip_notifications: bool = True,
    ) -> ImportResult:
        """Restore a snapshot under ``owner_id``.

        ``owner_id`` is the destination owner and may differ from
        ``snapshot.metadata.owner_id``; the result reports both so the
        caller can warn about a cross-owner import.

        Args:
            owner_id: Destination owner.
            snapshot: Snapshot model or its decoded JSON.
            clear_existing: Delete the owner's couples (with their eggs and
                pigeonneaux), health records and sales first.  Notifications
                are cleared only when they are restored too.
            skip_notifications: Do not restore notifications.

        Returns:
            ImportResult with rows actually inserted and skipped per
            collection.

        Raises:
            InvalidSnapshotFormat: If the snapshot fails validation.
            ImportFailed: If any write fails.  Nothing is committed.
        """
        snapshot = parse_snapshot(snapshot)
        source_owner_id = snapshot.metadata.owner_id

        if source_owner_id != owner_id:
            logger.warning(
                f"Cross-owner import: owner {owner_id} is importing data "
                f"exported by owner {source_owner_id}"
            )

        tables = [
            t for t in self._schema.tables
            if t.restorable and not (skip_notifications and t.key == NOTIFICATIONS_KEY)
        ]

        result = ImportResult(
            owner_id=owner_id,
            source_owner_id=source_owner_id,
            imported={t.key: 0 for t in tables},
            skipped={t.key: 0 for t in tables},
        )

        async with self._lock_for(owner_id):
            step = "begin"
            try:
                async with self._adapter.transaction() as tx:
                    if clear_existing:
                        step = "clear_existing"
                        await self._clear_owner_data(tx, owner_id, tables)

                    # Generic ID maps: table_name -> {old_pk: new_pk}
                    id_maps: dict[str, dict] = {t.name: {} for t in self._schema.tables}

                    for table_def in tables:
                        step = table_def.name
                        await self._restore_table(
                            tx,
                            table_def=table_def,
                            rows=snapshot.rows(table_def.key),
                            owner_id=owner_id,
                            id_maps=id_maps,
                            result=result,
                        )
            except Exception as e:
                logger.error(f"Restore for owner {owner_id} rolled back at {step}: {e}")
                raise ImportFailed(
                    step, f"restore for owner {owner_id} was rolled back"
                ) from e

        logger.info(f"Restore for owner {owner_id} complete: {result.imported}")
        return result

    async def clear_owner_data(self, owner_id: int) -> dict[str, int]:
        """Delete all of an owner's loft data.

        Couples (with their eggs and pigeonneaux), health records, sales and
        notifications go; preferences and the owner row are kept.  Runs in
        one transaction, serialized with restores of the same owner.

        Returns:
            Rows deleted per collection.

        Raises:
            ClearFailed: If any delete fails.  Nothing is committed.
        """
        tables = [t for t in self._schema.tables if t.restorable]

        async with self._lock_for(owner_id):
            try:
                async with self._adapter.transaction() as tx:
                    deleted = await self._clear_owner_data(tx, owner_id, tables)
            except Exception as e:
                logger.error(f"Clearing data of owner {owner_id} rolled back: {e}")
                raise ClearFailed(f"Data of owner {owner_id} could not be cleared") from e

        logger.info(f"Cleared data of owner {owner_id}: {deleted}")
        return deleted

    async def _clear_owner_data(
        self,
        tx: DatabaseClient,
        owner_id: int,
        tables: list[TableDef],
    ) -> dict[str, int]:
        """Delete the owner's rows in the given tables, children first.

        Returns:
            Rows deleted per collection key.
        """
        counts = {t.key: 0 for t in tables}
        # Parent PKs must be collected before any parent row is deleted
        parent_pks: dict[str, list] = {}
        parent_names = {t.parent.table for t in tables if t.parent is not None}
        for table_def in self._schema.tables:
            if table_def.name in parent_names:
                rows = await select_owned(tx, table_def, owner_id, parent_pks)
                parent_pks[table_def.name] = [r[table_def.pk] for r in rows]

        for table_def in reversed(tables):
            if table_def.user_field is not None:
                filters: dict[str, Any] = {table_def.user_field: owner_id}
            elif table_def.parent is not None:
                pks = parent_pks.get(table_def.parent.table, [])
                if not pks:
                    continue
                filters = {table_def.parent.field: pks}
            else:
                continue

            counts[table_def.key] = await tx.delete(table_def.name, filters)
            logger.debug(
                f"Cleared {counts[table_def.key]} {table_def.name} rows of owner {owner_id}"
            )

        return counts

    async def _restore_table(
        self,
        tx: DatabaseClient,
        table_def: TableDef,
        rows: list[dict],
        owner_id: int,
        id_maps: dict[str, dict],
        result: ImportResult,
    ) -> None:
        """Restore rows for a single table with FK remapping.

        Args:
            tx: Transaction-bound database client.
            table_def: Table definition from BackupSchema.
            rows: Row dicts from the snapshot.
            owner_id: Owner assigned to restored rows.
            id_maps: Shared ID maps for FK remapping (mutated in place).
            result: Shared result (mutated in place).
        """
        key = table_def.key
        unresolved_targets = 0

        for row in rows:
            old_pk = row.get(table_def.pk)
            data = {k: v for k, v in row.items() if k != table_def.pk}

            if table_def.user_field is not None:
                data[table_def.user_field] = owner_id

            # Remap parent FK (required -- skip row if parent missing)
            if table_def.parent is not None:
                parent_map = id_maps.get(table_def.parent.table, {})
                new_parent = parent_map.get(data.get(table_def.parent.field))
                if new_parent is None:
                    result.skipped[key] += 1
                    continue
                data[table_def.parent.field] = new_parent

            # Remap optional refs (null out if ref not found)
            for ref in table_def.optional_refs:
                old_ref = data.get(ref.field)
                if old_ref is not None:
                    data[ref.field] = id_maps.get(ref.table, {}).get(old_ref)

            poly = table_def.polymorphic_ref
            if poly is not None:
                target = poly.targets.get(data.get(poly.type_field))
                old_target = data.get(poly.id_field)
                if target is not None and old_target is not None:
                    new_target = id_maps.get(target, {}).get(old_target)
                    if new_target is None:
                        unresolved_targets += 1
                    else:
                        data[poly.id_field] = new_target

            _coerce_temporal(table_def, data)

            created = await tx.insert(table_def.name, data)
            if old_pk is not None:
                id_maps[table_def.name][old_pk] = created[table_def.pk]
            result.imported[key] += 1

        if result.skipped[key]:
            message = (
                f"Skipped {result.skipped[key]} {key} whose "
                f"{table_def.parent.table} is absent from the snapshot"
            )
            logger.warning(message)
            result.warnings.append(message)

        if unresolved_targets:
            message = (
                f"{unresolved_targets} {key} reference entities absent from the "
                f"snapshot; their {poly.id_field} was kept unchanged"
            )
            logger.warning(message)
            result.warnings.append(message)


def _coerce_temporal(table_def: TableDef, data: dict[str, Any]) -> None:
    """Convert ISO strings read back from JSON into date/datetime values."""
    for field in table_def.date_fields:
        value = data.get(field)
        if isinstance(value, str) and value:
            data[field] = datetime.fromisoformat(value).date()
    for field in table_def.timestamp_fields:
        value = data.get(field)
        if isinstance(value, str) and value:
            data[field] = datetime.fromisoformat(value)
