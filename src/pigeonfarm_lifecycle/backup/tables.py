"""Table hierarchy of one owner's loft.

Couples are the root of the graph; eggs and pigeonneaux belong to an owner
only through their couple.  Health records, sales, notifications and
preferences carry the owner id directly.
"""

from pigeonfarm_lifecycle.backup.models import (
    BackupSchema,
    ForeignKey,
    PolymorphicRef,
    TableDef,
)

USERS_TABLE = "users"
OWNER_COLUMNS = "id, username, email, full_name, role, avatar_url, created_at"

LOFT_SCHEMA = BackupSchema(
    tables=[
        TableDef(
            name="couples",
            key="couples",
            date_fields=["formation_date"],
            timestamp_fields=["created_at", "updated_at"],
        ),
        TableDef(
            name="eggs",
            key="eggs",
            user_field=None,
            parent=ForeignKey(table="couples", field="couple_id"),
            date_fields=["egg1_date", "egg2_date", "hatch_date1", "hatch_date2"],
            timestamp_fields=["created_at", "updated_at"],
        ),
        TableDef(
            name="pigeonneaux",
            key="pigeonneaux",
            user_field=None,
            parent=ForeignKey(table="couples", field="couple_id"),
            optional_refs=[ForeignKey(table="eggs", field="egg_record_id")],
            date_fields=["birth_date", "weaning_date", "sale_date"],
            timestamp_fields=["created_at", "updated_at"],
        ),
        TableDef(
            name="health_records",
            key="health_records",
            polymorphic_ref=PolymorphicRef(
                type_field="entity_type",
                id_field="entity_id",
                targets={"couple": "couples", "pigeonneau": "pigeonneaux"},
            ),
            date_fields=["treatment_date", "next_visit_date"],
            timestamp_fields=["created_at", "updated_at"],
        ),
        TableDef(
            name="sales",
            key="sales",
            optional_refs=[ForeignKey(table="pigeonneaux", field="pigeonneau_id")],
            date_fields=["sale_date"],
            timestamp_fields=["created_at", "updated_at"],
        ),
        TableDef(
            name="notifications",
            key="notifications",
            timestamp_fields=["created_at"],
        ),
        TableDef(
            name="user_preferences",
            key="preferences",
            restorable=False,
        ),
    ]
)
