"""
Schema migrations for datasette-vendor-catalog.

Each migration is a numbered SQL file in this directory
(e.g. 0002_evaluation_audit.sql), applied once, in numeric order, and
recorded in schema_migrations.
"""

import re
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

MIGRATIONS_DIR = Path(__file__).parent

MIGRATION_NAME = re.compile(r"^(\d+)_\w+\.sql$")

SCHEMA_MIGRATIONS_DDL = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        applied_ts TEXT NOT NULL
    )
"""


def get_migration_files() -> list[tuple[int, Path]]:
    """Migration files sorted by version number."""
    migrations = []
    for path in MIGRATIONS_DIR.glob("*.sql"):
        match = MIGRATION_NAME.match(path.name)
        if match:
            migrations.append((int(match.group(1)), path))
    return sorted(migrations)


def get_applied_versions(conn: sqlite3.Connection) -> set[int]:
    """Versions already recorded in schema_migrations (empty for a new database)."""
    try:
        cursor = conn.execute("SELECT version FROM schema_migrations")
    except sqlite3.OperationalError:
        return set()
    return {row[0] for row in cursor.fetchall()}


def apply_migration(conn: sqlite3.Connection, version: int, path: Path) -> None:
    """Run one migration script and record it."""
    conn.executescript(path.read_text())
    conn.execute(
        "INSERT INTO schema_migrations (version, name, applied_ts) VALUES (?, ?, ?)",
        (version, path.stem, datetime.now(UTC).isoformat()),
    )
    conn.commit()


def run_migrations(db_path: Path, verbose: bool = True) -> list[int]:
    """
    Bring the database up to the latest schema.

    Creates the file if needed. Safe to call on every startup.

    Returns the versions applied by this call.
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    applied = []
    try:
        conn.execute(SCHEMA_MIGRATIONS_DDL)
        conn.commit()

        done = get_applied_versions(conn)
        for version, path in get_migration_files():
            if version in done:
                if verbose:
                    print(f"  Skipping migration {version} (already applied)")
                continue
            if verbose:
                print(f"  Applying migration {version}: {path.name}")
            apply_migration(conn, version, path)
            applied.append(version)

        if verbose and not applied:
            print("  Schema is up to date.")
    finally:
        conn.close()

    return applied


def get_current_version(db_path: Path) -> int:
    """Highest applied migration version, 0 for a missing or empty database."""
    if not Path(db_path).exists():
        return 0

    conn = sqlite3.connect(db_path)
    try:
        applied = get_applied_versions(conn)
    finally:
        conn.close()
    return max(applied, default=0)
