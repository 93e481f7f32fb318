import sqlite3
from pathlib import Path

import pytest

from gstbill.repositories.sqlite_repo import DEFAULT_CATEGORIES, SqliteRepository


def test_init_db_is_idempotent(tmp_path: Path):
    db = tmp_path / "billing.db"
    repo = SqliteRepository(db)
    repo.init_db()
    repo.init_db()

    assert repo.schema_version() == 3
    conn = sqlite3.connect(db)
    tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    seeded = conn.execute("SELECT COUNT(*) FROM categories").fetchone()[0]
    conn.close()

    assert {"products", "purchases", "invoices", "invoice_items", "stock_movements", "company_details"} <= tables
    assert seeded == len(DEFAULT_CATEGORIES)


class BrokenMigrationRepo(SqliteRepository):
    def migrations(self):
        return super().migrations() + [(4, self._broken)]

    def _broken(self, cur):
        cur.execute("CREATE TABLE half_done (id INTEGER)")
        raise sqlite3.OperationalError("boom")


def test_failed_migration_restores_previous_database(tmp_path: Path):
    db = tmp_path / "billing.db"
    SqliteRepository(db).init_db()
    conn = sqlite3.connect(db)
    conn.execute("INSERT INTO units (name, abbreviation) VALUES ('Bag', 'bag')")
    conn.commit()
    conn.close()

    repo = BrokenMigrationRepo(db)
    with pytest.raises(RuntimeError, match="Original database restored"):
        repo.init_db()

    assert repo.schema_version() == 3
    assert [u.name for u in repo.list_units()] == ["Bag"]
    assert list(tmp_path.glob("billing.pre_migration_*.bak"))
