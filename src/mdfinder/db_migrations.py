"""
Schema versioning for the on-disk SQLite stores.
Each store is a component with its own ordered list of DDL migrations; the
versions already applied live in a shared `schema_migrations` table.
"""
from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

from .observability import get_logger

logger = get_logger(__name__)

_SCHEMA_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    component TEXT NOT NULL,
    version INTEGER NOT NULL,
    name TEXT NOT NULL,
    applied_at TEXT NOT NULL,
    PRIMARY KEY(component, version)
)
"""


@dataclass(frozen=True)
class SqliteMigration:
    """One schema step. Statements run in order inside the caller's transaction."""
    version: int
    name: str
    statements: tuple[str, ...] = ()


def applied_versions(conn: sqlite3.Connection, component: str) -> set[int]:
    """
    Versions recorded for a component. A database without the bookkeeping
    table reports none; a file that is not a database raises DatabaseError.
    """
    try:
        rows = conn.execute(
            "SELECT version FROM schema_migrations WHERE component = ?",
            (component,),
        ).fetchall()
    except sqlite3.OperationalError:
        return set()
    return {int(row[0]) for row in rows}


def apply_sqlite_migrations(
    conn: sqlite3.Connection,
    *,
    component: str,
    migrations: list[SqliteMigration],
) -> list[int]:
    """Applies the pending migrations in version order; returns the versions it applied."""
    conn.execute(_SCHEMA_TABLE_DDL)
    done = applied_versions(conn, component)

    newly_applied: list[int] = []
    for migration in sorted(migrations, key=lambda m: m.version):
        if migration.version in done:
            continue
        for statement in migration.statements:
            if statement.strip():
                conn.execute(statement)
        conn.execute(
            "INSERT INTO schema_migrations (component, version, name, applied_at) VALUES (?, ?, ?, ?)",
            (
                component,
                migration.version,
                migration.name,
                datetime.now(timezone.utc).isoformat(timespec="seconds"),
            ),
        )
        newly_applied.append(migration.version)
        logger.info(
            "db_migration_applied",
            component=component,
            version=migration.version,
            name=migration.name,
        )
    return newly_applied
