"""Backup models: declarative table hierarchy and snapshot shape.

The table structure and FK relationships of an owner's graph are declared
once as a ``BackupSchema``; the export and restore engines walk it in
order and handle ID remapping automatically.

Usage:
    from pigeonfarm_lifecycle.backup.models import BackupSchema, TableDef, ForeignKey

    schema = BackupSchema(tables=[
        TableDef(name="couples", key="couples"),
        TableDef(name="eggs", key="eggs", user_field=None,
                 parent=ForeignKey(table="couples", field="couple_id")),
        TableDef(name="pigeonneaux", key="pigeonneaux", user_field=None,
                 parent=ForeignKey(table="couples", field="couple_id"),
                 optional_refs=[ForeignKey(table="eggs", field="egg_record_id")]),
    ])
"""

from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, computed_field

from pigeonfarm_lifecycle.errors import InvalidSnapshotFormat

SNAPSHOT_VERSION = "1.0"
SUPPORTED_VERSIONS = frozenset({"1.0"})


class ForeignKey(BaseModel):
    """Foreign key reference to a parent table."""

    table: str          # parent table name
    field: str          # FK column in this table


class PolymorphicRef(BaseModel):
    """Reference whose target table is chosen by a type column.

    Example: ``entity_type = "couple"`` and ``entity_id = 12`` points at
    ``couples.id = 12``.
    """

    type_field: str
    id_field: str
    targets: dict[str, str]     # type value -> table name


class TableDef(BaseModel):
    """Definition of a table for export/restore operations."""

    name: str                                       # table name
    key: str                                        # snapshot collection key
    pk: str = "id"                                  # primary key column
    user_field: str | None = "user_id"              # ownership column (None: owned via parent)
    parent: ForeignKey | None = None                # required FK (skip record if parent missing)
    optional_refs: list[ForeignKey] = Field(default_factory=list)  # optional FKs (null if ref missing)
    polymorphic_ref: PolymorphicRef | None = None   # remapped when resolvable, kept otherwise
    restorable: bool = True                         # False: exported only
    date_fields: list[str] = Field(default_factory=list)
    timestamp_fields: list[str] = Field(default_factory=list)


class BackupSchema(BaseModel):
    """Declarative backup schema. Tables ordered by dependency (parents first)."""

    tables: list[TableDef]

    def table(self, name: str) -> TableDef | None:
        """Find a TableDef by table name."""
        for t in self.tables:
            if t.name == name:
                return t
        return None


# ----------------------------------------------------------------------
# Snapshot
# ----------------------------------------------------------------------


class SnapshotMetadata(BaseModel):
    version: str
    exported_at: datetime
    owner_id: int
    owner_name: str


class Snapshot(BaseModel):
    """Self-contained export of one owner's entity graph."""

    metadata: SnapshotMetadata
    owner: dict[str, Any] = Field(default_factory=dict)
    couples: list[dict[str, Any]] = Field(default_factory=list)
    eggs: list[dict[str, Any]] = Field(default_factory=list)
    pigeonneaux: list[dict[str, Any]] = Field(default_factory=list)
    health_records: list[dict[str, Any]] = Field(default_factory=list)
    sales: list[dict[str, Any]] = Field(default_factory=list)
    notifications: list[dict[str, Any]] = Field(default_factory=list)
    preferences: list[dict[str, Any]] = Field(default_factory=list)
    statistics: dict[str, int] = Field(default_factory=dict)

    def rows(self, key: str) -> list[dict[str, Any]]:
        """Rows of one collection by snapshot key."""
        return getattr(self, key)


def parse_snapshot(data: Snapshot | dict[str, Any]) -> Snapshot:
    """Validate snapshot data and check its schema version.

    Args:
        data: A ``Snapshot`` or the decoded JSON dict of one.

    Returns:
        Validated ``Snapshot``.

    Raises:
        InvalidSnapshotFormat: If the shape is wrong, ``metadata.version``
            is missing, or the version is not recognized.
    """
    if isinstance(data, Snapshot):
        snapshot = data
    else:
        if not isinstance(data, dict):
            raise InvalidSnapshotFormat("Snapshot must be a JSON object")
        metadata = data.get("metadata")
        if not isinstance(metadata, dict) or not metadata.get("version"):
            raise InvalidSnapshotFormat("Snapshot is missing metadata.version")
        try:
            snapshot = Snapshot.model_validate(data)
        except ValidationError as e:
            raise InvalidSnapshotFormat(
                f"Snapshot has an invalid shape ({e.error_count()} errors)"
            ) from e

    if snapshot.metadata.version not in SUPPORTED_VERSIONS:
        raise InvalidSnapshotFormat(
            f"Unsupported snapshot version '{snapshot.metadata.version}' "
            f"(supported: {', '.join(sorted(SUPPORTED_VERSIONS))})"
        )
    return snapshot


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------


class ImportResult(BaseModel):
    """Outcome of a restore.

    ``imported`` counts rows actually inserted per collection, which can be
    lower than the snapshot's counts when orphans were skipped.
    """

    owner_id: int
    source_owner_id: int
    imported: dict[str, int] = Field(default_factory=dict)
    skipped: dict[str, int] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def cross_owner(self) -> bool:
        """True when the snapshot was exported by a different owner."""
        return self.owner_id != self.source_owner_id


class BackupFile(BaseModel):
    """A persisted snapshot on disk."""

    owner_id: int
    filename: str
    path: Path
    created_at: datetime
    size_bytes: int
