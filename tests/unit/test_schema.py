"""Unit tests for database schema and migrations."""

import sqlite3

import pytest

from datasette_vendor_catalog.migrations import (
    get_current_version,
    get_migration_files,
    run_migrations,
)


def table_names(db_path) -> set[str]:
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        return {row[0] for row in cursor}
    finally:
        conn.close()


def test_migration_files_are_numbered_in_order():
    """Migration files are discovered and sorted by version."""
    versions = [version for version, _ in get_migration_files()]
    assert versions == sorted(versions)
    assert versions[:2] == [1, 2]


def test_migrations_create_all_tables(tmp_path):
    """A fresh database gets every table."""
    db_path = tmp_path / "fresh.db"

    applied = run_migrations(db_path, verbose=False)

    assert applied == [version for version, _ in get_migration_files()]
    assert {"products", "evaluations", "evaluation_events", "schema_migrations"} <= table_names(
        db_path
    )


def test_migrations_are_idempotent(db_path):
    """Running migrations twice applies nothing the second time."""
    assert run_migrations(db_path, verbose=False) == []


def test_current_version(db_path, tmp_path):
    assert get_current_version(db_path) == max(v for v, _ in get_migration_files())
    assert get_current_version(tmp_path / "missing.db") == 0


def test_run_migrations_creates_parent_directory(tmp_path):
    db_path = tmp_path / "nested" / "dir" / "catalog.db"

    run_migrations(db_path, verbose=False)

    assert db_path.exists()


def test_verbose_output(tmp_path, capsys):
    db_path = tmp_path / "verbose.db"

    run_migrations(db_path, verbose=True)
    run_migrations(db_path, verbose=True)

    out = capsys.readouterr().out
    assert "Applying migration 1" in out
    assert "Skipping migration 1 (already applied)" in out
    assert "Schema is up to date." in out


class TestConstraints:
    """The schema rejects values the application never writes."""

    def test_product_price_must_not_be_negative(self, db_path):
        conn = sqlite3.connect(db_path)
        try:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    """
                    INSERT INTO products (name, description, price, created_ts)
                    VALUES ('Mug', 'Ceramic', -1, '2025-01-01T00:00:00Z')
                    """
                )
        finally:
            conn.close()

    def test_evaluation_decision_values(self, db_path):
        conn = sqlite3.connect(db_path)
        try:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    """
                    INSERT INTO evaluations
                        (evaluation_id, created_ts, product_name, submission_json,
                         evaluation_json, score, decision, evaluation_method)
                    VALUES ('e1', '2025-01-01T00:00:00Z', 'Mug', '{}', '{}', 80,
                            'MAYBE', 'model')
                    """
                )
        finally:
            conn.close()

    def test_product_defaults(self, db_path):
        conn = sqlite3.connect(db_path)
        try:
            conn.execute(
                """
                INSERT INTO products (name, description, created_ts)
                VALUES ('Mug', 'Ceramic', '2025-01-01T00:00:00Z')
                """
            )
            row = conn.execute("SELECT status, price, ai_score FROM products").fetchone()
        finally:
            conn.close()

        assert row == ("active", 0, None)
