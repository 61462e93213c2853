from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect

from orgtree.infra.migrate import run_upgrade_head

ROOT = Path(__file__).resolve().parents[1]


def test_upgrade_head_creates_directory_schema(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    db_url = f"sqlite:///{tmp_path / 'migrations_test.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)

    run_upgrade_head(str(ROOT / "alembic.ini"))

    inspector = inspect(create_engine(db_url))
    tables = set(inspector.get_table_names())
    assert {"users", "organizations", "organization_members", "departments", "people", "audit_logs", "events"} <= tables
    department_fks = inspector.get_foreign_keys("departments")
    assert any(fk["constrained_columns"] == ["organization_id", "parent_id"] for fk in department_fks)
    person_columns = {column["name"] for column in inspector.get_columns("people")}
    assert {"deleted_at", "is_starred", "sort_order", "email", "phone"} <= person_columns
