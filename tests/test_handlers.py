"""Tests for the data-access handlers and their SQL assembly."""

import datetime
import json
import sqlite3

import pytest

from mcp_servers.servers.factory_floor.handlers import (
    ANOMALY_REPORT_INSERT,
    ANOMALY_REPORTS,
    DAILY_REPORTS,
    GATED_HANDLERS,
    INSPECTION_LOGS,
    TOOL_PERMISSIONS,
    build_insert,
    build_select,
    get_handler,
)
from mcp_servers.servers.factory_floor.permissions import ToolContext


DAILY_ROW = {
    "reportDate": "2026-10-18",
    "employeeId": 7,
    "workPlan": "Line 3 changeover",
    "workResult": "Done",
    "issues": "None",
    "nextPlan": "Line 4",
}


class TestBuildSelect:
    def test_no_filters_has_no_where_clause(self):
        sql, params = build_select(DAILY_REPORTS, {})
        assert sql == "SELECT * FROM daily_reports ORDER BY report_date DESC LIMIT 50"
        assert params == []

    def test_one_filter(self):
        sql, params = build_select(DAILY_REPORTS, {"date": "2026-10-18"})
        assert sql == (
            "SELECT * FROM daily_reports WHERE report_date = ? "
            "ORDER BY report_date DESC LIMIT 50"
        )
        assert params == ["2026-10-18"]

    def test_both_filters_joined_with_and(self):
        sql, params = build_select(DAILY_REPORTS, {"employeeId": 7, "date": "2026-10-18"})
        assert " WHERE report_date = ? AND employee_id = ? " in sql
        assert params == ["2026-10-18", 7]

    def test_none_values_are_not_filters(self):
        sql, params = build_select(INSPECTION_LOGS, {"equipmentId": None, "date": "2026-10-01"})
        assert sql == (
            "SELECT * FROM inspection_logs WHERE inspect_date = ? "
            "ORDER BY inspect_date DESC LIMIT 50"
        )
        assert params == ["2026-10-01"]

    def test_zero_is_a_provided_filter(self):
        sql, params = build_select(INSPECTION_LOGS, {"equipmentId": 0})
        assert "WHERE equipment_id = ?" in sql
        assert params == [0]

    def test_since_is_inclusive_lower_bound(self):
        sql, params = build_select(ANOMALY_REPORTS, {"since": "2026-10-01 00:00:00"})
        assert "WHERE occurred_at >= ?" in sql
        assert sql.endswith("ORDER BY occurred_at DESC LIMIT 50")
        assert params == ["2026-10-01 00:00:00"]

    def test_values_are_never_inlined(self):
        hostile = "x'; DROP TABLE daily_reports; --"
        sql, params = build_select(DAILY_REPORTS, {"date": hostile})
        assert hostile not in sql
        assert params == [hostile]


class TestBuildInsert:
    def test_anomaly_insert_ignores_caller_timestamp(self):
        sql, params = build_insert(
            ANOMALY_REPORT_INSERT,
            {
                "equipmentId": 3,
                "reportedBy": 9,
                "title": "Leak",
                "description": "Oil under press 2",
                "occurredAt": "1999-01-01 00:00:00",
                "occurred_at": "1999-01-01 00:00:00",
            },
        )
        assert sql == (
            "INSERT INTO anomaly_reports (equipment_id, reported_by, title, description, occurred_at) "
            "VALUES (?, ?, ?, ?, datetime('now'))"
        )
        assert params == [3, 9, "Leak", "Oil under press 2"]


class TestHandlers:
    @pytest.mark.asyncio
    async def test_insert_then_query_daily_reports(self, writer):
        result = await get_handler("insertDailyReport")(DAILY_ROW, writer)
        assert result.text == "✅ Daily report inserted"

        result = await get_handler("queryDailyReports")({"employeeId": 7}, writer)
        rows = json.loads(result.text)
        assert len(rows) == 1
        assert rows[0]["work_plan"] == "Line 3 changeover"
        assert rows[0]["report_date"] == "2026-10-18"

    @pytest.mark.asyncio
    async def test_query_returns_newest_first_and_capped(self, writer):
        insert = get_handler("insertDailyReport")
        first = datetime.date(2026, 8, 1)
        for offset in range(60):
            day = first + datetime.timedelta(days=offset)
            await insert({**DAILY_ROW, "reportDate": day.isoformat()}, writer)

        rows = json.loads((await get_handler("queryDailyReports")({}, writer)).text)
        assert len(rows) == 50
        assert rows[0]["report_date"] == "2026-09-29"
        dates = [r["report_date"] for r in rows]
        assert dates == sorted(dates, reverse=True)

    @pytest.mark.asyncio
    async def test_empty_result_is_empty_json_array(self, reader):
        result = await get_handler("queryInspectionLogs")({"equipmentId": 42}, reader)
        assert json.loads(result.text) == []

    @pytest.mark.asyncio
    async def test_anomaly_timestamp_comes_from_database_clock(self, writer, db):
        result = await get_handler("insertAnomalyReport")(
            {
                "equipmentId": 3,
                "reportedBy": 9,
                "title": "Leak",
                "description": "Oil under press 2",
                "occurredAt": "1999-01-01 00:00:00",
            },
            writer,
        )
        assert result.text == "✅ Anomaly report inserted"

        rows = db.fetch_all("SELECT occurred_at FROM anomaly_reports")
        assert len(rows) == 1
        assert rows[0]["occurred_at"] != "1999-01-01 00:00:00"
        assert not rows[0]["occurred_at"].startswith("1999")

    @pytest.mark.asyncio
    async def test_inspection_log_round_trip_through_filters(self, writer):
        await get_handler("insertInspectionLog")(
            {
                "equipmentId": 11,
                "inspectDate": "2026-10-17",
                "inspectBy": 4,
                "result": "OK",
                "notes": "Belts tensioned",
                "nextSchedule": "2026-11-17",
            },
            writer,
        )
        rows = json.loads(
            (await get_handler("queryInspectionLogs")({"equipmentId": 11, "date": "2026-10-17"}, writer)).text
        )
        assert [r["notes"] for r in rows] == ["Belts tensioned"]

    @pytest.mark.asyncio
    async def test_read_permission_does_not_grant_write(self, reader, db):
        result = await get_handler("insertDailyReport")(DAILY_ROW, reader)
        assert result.denied
        assert result.text == "Permission denied - need write_daily"
        assert db.fetch_all("SELECT * FROM daily_reports") == []

    @pytest.mark.asyncio
    async def test_denied_call_never_touches_store(self):
        class ExplodingDb:
            def fetch_all(self, *args):
                raise AssertionError("store was touched")

            execute = fetch_all

        context = ToolContext.build([], db=ExplodingDb())
        for name in TOOL_PERMISSIONS:
            result = await get_handler(name)({}, context)
            assert result.denied

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self):
        class BrokenDb:
            def fetch_all(self, *args):
                raise sqlite3.OperationalError("database is locked")

        context = ToolContext.build(["read_daily"], db=BrokenDb())
        with pytest.raises(sqlite3.OperationalError):
            await get_handler("queryAnomalyReports")({}, context)

    @pytest.mark.asyncio
    async def test_who_am_i_is_ungated(self, nobody):
        result = await get_handler("whoAmI")({}, nobody)
        payload = json.loads(result.text)
        assert not result.denied
        assert payload["permissions"] == []


def test_every_data_tool_is_gated():
    expected = {
        "queryDailyReports": "read_daily",
        "queryInspectionLogs": "read_daily",
        "queryAnomalyReports": "read_daily",
        "insertDailyReport": "write_daily",
        "insertInspectionLog": "write_daily",
        "insertAnomalyReport": "write_daily",
    }
    assert {name: h.required_permission for name, h in GATED_HANDLERS.items()} == expected
