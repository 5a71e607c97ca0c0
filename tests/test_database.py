"""Tests for the SQLite store."""

import os

from mcp_servers.servers.factory_floor.database import FactoryDatabase


def test_schema_is_created_idempotently(tmp_path):
    path = str(tmp_path / "nested" / "factory.db")
    FactoryDatabase(path)
    db = FactoryDatabase(path)  # second boot on the same file

    assert os.path.exists(path)
    tables = {
        row["name"]
        for row in db.fetch_all("SELECT name FROM sqlite_master WHERE type = 'table'")
    }
    assert {"daily_reports", "inspection_logs", "anomaly_reports", "user_roles"} <= tables


def test_execute_returns_row_id(db):
    first = db.execute(
        "INSERT INTO inspection_logs (equipment_id, inspect_date, inspect_by) VALUES (?, ?, ?)",
        [1, "2026-10-18", 2],
    )
    second = db.execute(
        "INSERT INTO inspection_logs (equipment_id, inspect_date, inspect_by) VALUES (?, ?, ?)",
        [1, "2026-10-19", 2],
    )
    assert second == first + 1


def test_fetch_all_returns_plain_dicts(db):
    db.execute(
        "INSERT INTO anomaly_reports (equipment_id, occurred_at, reported_by, title) VALUES (?, ?, ?, ?)",
        [5, "2026-10-18 08:00:00", 3, "Jam"],
    )
    rows = db.fetch_all("SELECT equipment_id, title FROM anomaly_reports")
    assert rows == [{"equipment_id": 5, "title": "Jam"}]


class TestRoles:
    def test_unknown_email_has_no_permissions(self, db):
        assert db.get_permissions("ghost@plant.example") == []

    def test_set_permissions_normalizes_and_replaces(self, db):
        db.set_permissions(" Lead@Plant.Example ", ["Write_Daily", " read_daily ", ""])
        assert db.get_permissions("lead@plant.example") == ["read_daily", "write_daily"]

        db.set_permissions("lead@plant.example", ["read_daily"])
        assert db.get_permissions("LEAD@plant.example") == ["read_daily"]

    def test_seed_roles(self, db):
        db.seed_roles({"a@plant.example": ["read_daily"], "b@plant.example": ["read_daily", "write_daily"]})
        assert db.get_permissions("a@plant.example") == ["read_daily"]
        assert db.get_permissions("b@plant.example") == ["read_daily", "write_daily"]
