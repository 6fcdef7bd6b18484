"""Firestore helpers and the Koffee Karma data migrations."""

from .migrations import (
    MIGRATIONS,
    BatchWriter,
    MigrationJob,
    MigrationRunner,
    Page,
    RunSummary,
    SourceDocument,
    fetch_all,
    fetch_page,
    run_migration,
)
from .operations import SERVER_TIMESTAMP, DeleteField, PlannedWrite, SetField

__all__ = [
    "MIGRATIONS",
    "SERVER_TIMESTAMP",
    "BatchWriter",
    "DeleteField",
    "MigrationJob",
    "MigrationRunner",
    "Page",
    "PlannedWrite",
    "RunSummary",
    "SetField",
    "SourceDocument",
    "fetch_all",
    "fetch_page",
    "run_migration",
]
