"""Archival of consumed notifications and purge of aged logs.

Usage:
    from pigeonfarm_lifecycle.archive import ArchiveEngine
"""

from pigeonfarm_lifecycle.archive.engine import ArchiveEngine
from pigeonfarm_lifecycle.archive.models import ArchiveResult, ArchiveRunSummary, ArchiveStats

__all__ = [
    "ArchiveEngine",
    "ArchiveResult",
    "ArchiveRunSummary",
    "ArchiveStats",
]
