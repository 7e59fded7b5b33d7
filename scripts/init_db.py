#!/usr/bin/env python3
"""Create or upgrade the vendor catalog database."""

import argparse
import sqlite3
from pathlib import Path

from datasette_vendor_catalog.migrations import get_current_version, run_migrations


def init_db(db_path: Path) -> None:
    """Apply all pending migrations and print the resulting schema state."""
    print(f"Initializing database: {db_path} (current version: {get_current_version(db_path)})")
    print("Running migrations...")
    applied = run_migrations(db_path, verbose=True)
    if applied:
        print(f"Applied {len(applied)} migration(s).")

    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.execute(
            "SELECT version, name, applied_ts FROM schema_migrations ORDER BY version"
        )
        print("\nSchema versions:")
        for version, name, applied_ts in cursor:
            print(f"  v{version} {name} applied at {applied_ts}")

        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        )
        tables = [row[0] for row in cursor if not row[0].startswith("sqlite_")]
        print(f"\nTables: {', '.join(tables)}")
    finally:
        conn.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Initialize the vendor catalog database")
    parser.add_argument(
        "--db",
        type=Path,
        default=Path("vendor_catalog.db"),
        help="Path to the SQLite database file (default: vendor_catalog.db)",
    )
    args = parser.parse_args()

    init_db(args.db)


if __name__ == "__main__":
    main()
