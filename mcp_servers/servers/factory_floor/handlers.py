"""
Data-access handlers for the factory-floor tools.

Each handler takes the already-validated argument dict plus the explicit
ToolContext and runs exactly one parameterized statement against
``context.db``. Store errors (sqlite3.Error) are not caught here: they
propagate to the protocol runtime and surface as a failed tool call.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from mcp_servers.servers.factory_floor.config import QUERY_LIMIT
from mcp_servers.servers.factory_floor.permissions import (
    Handler,
    ToolContext,
    ToolResult,
    require_permission,
)
from mcp_servers.servers.factory_floor.thread_pool import run_in_thread

READ_DAILY = "read_daily"
WRITE_DAILY = "write_daily"


@dataclass(frozen=True)
class QuerySpec:
    """
    How a list tool maps its optional filters onto SQL.

    filters is ordered: (argument name, column, operator). The order here is
    the order predicates appear in the WHERE clause.
    """

    table: str
    filters: Tuple[Tuple[str, str, str], ...]
    order_by: str


@dataclass(frozen=True)
class InsertSpec:
    """
    A fixed-column insert.

    columns maps column -> argument name. server_columns maps column -> a SQL
    expression evaluated by the database (never bound from caller input).
    """

    table: str
    columns: Tuple[Tuple[str, str], ...]
    server_columns: Tuple[Tuple[str, str], ...] = ()
    ack: str = ""


DAILY_REPORTS = QuerySpec(
    table="daily_reports",
    filters=(("date", "report_date", "="), ("employeeId", "employee_id", "=")),
    order_by="report_date",
)

INSPECTION_LOGS = QuerySpec(
    table="inspection_logs",
    filters=(("equipmentId", "equipment_id", "="), ("date", "inspect_date", "=")),
    order_by="inspect_date",
)

ANOMALY_REPORTS = QuerySpec(
    table="anomaly_reports",
    filters=(("equipmentId", "equipment_id", "="), ("since", "occurred_at", ">=")),
    order_by="occurred_at",
)

DAILY_REPORT_INSERT = InsertSpec(
    table="daily_reports",
    columns=(
        ("report_date", "reportDate"),
        ("employee_id", "employeeId"),
        ("work_plan", "workPlan"),
        ("work_result", "workResult"),
        ("issues", "issues"),
        ("next_plan", "nextPlan"),
    ),
    ack="✅ Daily report inserted",
)

INSPECTION_LOG_INSERT = InsertSpec(
    table="inspection_logs",
    columns=(
        ("equipment_id", "equipmentId"),
        ("inspect_date", "inspectDate"),
        ("inspect_by", "inspectBy"),
        ("result", "result"),
        ("notes", "notes"),
        ("next_schedule", "nextSchedule"),
    ),
    ack="✅ Inspection log inserted",
)

ANOMALY_REPORT_INSERT = InsertSpec(
    table="anomaly_reports",
    columns=(
        ("equipment_id", "equipmentId"),
        ("reported_by", "reportedBy"),
        ("title", "title"),
        ("description", "description"),
    ),
    server_columns=(("occurred_at", "datetime('now')"),),
    ack="✅ Anomaly report inserted",
)


# ------------------------------------------------------------------
# SQL assembly
# ------------------------------------------------------------------

def build_select(spec: QuerySpec, arguments: Dict[str, Any]) -> Tuple[str, List[Any]]:
    """
    Build the list query for *spec* from whichever filters were provided.

    A filter counts as provided when its argument is present and not None.
    No filters: no WHERE clause at all.
    """
    sql = f"SELECT * FROM {spec.table}"
    clauses: List[str] = []
    params: List[Any] = []

    for arg_name, column, op in spec.filters:
        value = arguments.get(arg_name)
        if value is None:
            continue
        clauses.append(f"{column} {op} ?")
        params.append(value)

    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += f" ORDER BY {spec.order_by} DESC LIMIT {QUERY_LIMIT}"
    return sql, params


def build_insert(spec: InsertSpec, arguments: Dict[str, Any]) -> Tuple[str, List[Any]]:
    """
    Build the insert for *spec*.

    Only the declared argument names are read; any extra key in *arguments*
    (for example a caller-supplied timestamp) is ignored.
    """
    columns = [column for column, _ in spec.columns]
    placeholders = ["?"] * len(columns)
    params = [arguments[arg_name] for _, arg_name in spec.columns]

    for column, expression in spec.server_columns:
        columns.append(column)
        placeholders.append(expression)

    sql = (
        f"INSERT INTO {spec.table} ({', '.join(columns)}) "
        f"VALUES ({', '.join(placeholders)})"
    )
    return sql, params


# ------------------------------------------------------------------
# Shared runners
# ------------------------------------------------------------------

async def _run_query(spec: QuerySpec, arguments: Dict[str, Any], context: ToolContext) -> ToolResult:
    sql, params = build_select(spec, arguments)
    rows = await run_in_thread(context.db.fetch_all, sql, params)
    return ToolResult(text=json.dumps(rows, indent=2, ensure_ascii=False))


async def _run_insert(spec: InsertSpec, arguments: Dict[str, Any], context: ToolContext) -> ToolResult:
    sql, params = build_insert(spec, arguments)
    await run_in_thread(context.db.execute, sql, params)
    return ToolResult(text=spec.ack)


# ------------------------------------------------------------------
# 1. Daily Reports
# ------------------------------------------------------------------

async def query_daily_reports(arguments: Dict[str, Any], context: ToolContext) -> ToolResult:
    return await _run_query(DAILY_REPORTS, arguments, context)


async def insert_daily_report(arguments: Dict[str, Any], context: ToolContext) -> ToolResult:
    return await _run_insert(DAILY_REPORT_INSERT, arguments, context)


# ------------------------------------------------------------------
# 2. Inspection Logs
# ------------------------------------------------------------------

async def query_inspection_logs(arguments: Dict[str, Any], context: ToolContext) -> ToolResult:
    return await _run_query(INSPECTION_LOGS, arguments, context)


async def insert_inspection_log(arguments: Dict[str, Any], context: ToolContext) -> ToolResult:
    return await _run_insert(INSPECTION_LOG_INSERT, arguments, context)


# ------------------------------------------------------------------
# 3. Anomaly Reports
# ------------------------------------------------------------------

async def query_anomaly_reports(arguments: Dict[str, Any], context: ToolContext) -> ToolResult:
    return await _run_query(ANOMALY_REPORTS, arguments, context)


async def insert_anomaly_report(arguments: Dict[str, Any], context: ToolContext) -> ToolResult:
    return await _run_insert(ANOMALY_REPORT_INSERT, arguments, context)


# ------------------------------------------------------------------
# 4. Debug
# ------------------------------------------------------------------

async def who_am_i(arguments: Dict[str, Any], context: Optional[ToolContext]) -> ToolResult:
    """Echo the caller's auth context. Deliberately un-gated."""
    if context is None:
        payload: Dict[str, Any] = {"email": None, "name": None, "permissions": []}
    else:
        payload = {
            "email": context.email,
            "name": context.name,
            "clientId": context.client_id,
            "scopes": list(context.scopes),
            "permissions": sorted(context.permissions),
        }
    return ToolResult(text=json.dumps(payload, indent=2))


# ------------------------------------------------------------------
# Registry: tool name -> (required permission, raw handler)
# ------------------------------------------------------------------

TOOL_PERMISSIONS: Dict[str, Tuple[str, Handler]] = {
    "queryDailyReports": (READ_DAILY, query_daily_reports),
    "insertDailyReport": (WRITE_DAILY, insert_daily_report),
    "queryInspectionLogs": (READ_DAILY, query_inspection_logs),
    "insertInspectionLog": (WRITE_DAILY, insert_inspection_log),
    "queryAnomalyReports": (READ_DAILY, query_anomaly_reports),
    "insertAnomalyReport": (WRITE_DAILY, insert_anomaly_report),
}

GATED_HANDLERS: Dict[str, Handler] = {
    name: require_permission(permission, handler)
    for name, (permission, handler) in TOOL_PERMISSIONS.items()
}


def get_handler(tool_name: str) -> Handler:
    """Gated handler for *tool_name*; whoAmI is the only un-gated tool."""
    if tool_name == "whoAmI":
        return who_am_i
    return GATED_HANDLERS[tool_name]
