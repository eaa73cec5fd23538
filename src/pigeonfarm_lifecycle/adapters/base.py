"""The storage contract the lifecycle engines are written against.

Export, restore and archival only ever talk to a ``DatabaseClient``; every
method is a coroutine.

Filter dicts map column names to match values:

- scalar -> ``column = value`` (``None`` -> ``column IS NULL``)
- ``list`` / ``set`` / ``frozenset`` -> ``column IN (...)``; an empty
  collection matches no rows
- ``Cmp(op, value)`` -> ``column <op> value`` with op one of
  ``<``, ``<=``, ``>``, ``>=``, ``!=``

All conditions are combined with AND.

Usage:
    from pigeonfarm_lifecycle.adapters.base import Cmp, DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        rows = await client.select("eggs", "*", filters={"couple_id": [1, 2]})
        async with client.transaction() as tx:
            couple = await tx.insert("couples", {"nest_number": "A1", "user_id": 7})
            await tx.delete("notifications", {"created_at": Cmp("<", cutoff)})
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, NamedTuple, Protocol

COMPARISON_OPERATORS = frozenset({"<", "<=", ">", ">=", "!="})


class Cmp(NamedTuple):
    """Comparison filter value (``column <op> value``)."""

    op: str
    value: Any


class DatabaseClient(Protocol):
    """Table-level CRUD over dict rows, plus connection-bound transactions.

    Implemented by ``AsyncPostgresAdapter`` in production and by an
    in-memory fake in the test suite.
    """

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict]:
        """Read rows matching ``filters``.

        Args:
            table: Table to read.
            columns: Comma-separated column names (e.g., ``"id, username"``).
            filters: Optional dict of filters (see module docstring).
            order_by: Optional ORDER BY expression (e.g., ``"archived_at DESC"``).
            limit: Optional maximum number of rows.
            offset: Optional number of rows to skip.

        Returns:
            One dict per row, ``[]`` when nothing matches.

        Example:
            rows = await client.select(
                "couples",
                "*",
                filters={"user_id": 7},
                order_by="id",
            )
        """
        ...

    async def insert(self, table: str, data: dict) -> dict:
        """Insert one row.

        An explicit ``id`` in ``data`` is kept (archive restore relies on it);
        otherwise the store generates one.

        Returns:
            The stored row, generated id included.

        Raises:
            Exception: On a constraint violation (driver-specific type).
        """
        ...

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        """Update matching rows; returns the first one.

        Raises:
            ValueError: If nothing matches.
        """
        ...

    async def delete(self, table: str, filters: dict[str, Any]) -> int:
        """Delete rows matching ``filters`` (required, never empty).

        Returns:
            Number of rows deleted.

        Example:
            removed = await client.delete("password_reset_codes", {"used": True})
        """
        ...

    async def count(self, table: str, filters: dict[str, Any] | None = None) -> int:
        """Count rows in table matching filters."""
        ...

    async def execute(self, sql: str, params: dict | None = None) -> None:
        """Run a statement that returns no rows."""
        ...

    def transaction(
        self,
        isolation_level: str | None = None,
    ) -> AbstractAsyncContextManager["DatabaseClient"]:
        """Open a transaction bound to a single connection.

        The yielded client runs every call on that connection.  The
        transaction commits when the block exits normally and rolls back
        when it raises.  ``isolation_level`` (``"REPEATABLE READ"``, ...)
        overrides the server default for this transaction only.

        Example:
            async with client.transaction() as tx:
                await tx.delete("couples", {"user_id": 7})
                await tx.insert("couples", {"user_id": 7, "nest_number": "A1"})
        """
        ...

    async def close(self) -> None:
        """Release pooled connections."""
        ...
