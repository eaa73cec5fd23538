"""Database adapters package.

Provides the ``DatabaseClient`` Protocol, the ``Cmp`` comparison filter,
and the async PostgreSQL adapter implementation.

Usage:
    from pigeonfarm_lifecycle.adapters import AsyncPostgresAdapter, Cmp, DatabaseClient
"""

from pigeonfarm_lifecycle.adapters.base import Cmp, DatabaseClient
from pigeonfarm_lifecycle.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "Cmp",
    "DatabaseClient",
    "AsyncPostgresAdapter",
]
