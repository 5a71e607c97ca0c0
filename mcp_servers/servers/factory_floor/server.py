"""
Factory-Floor Log MCP Server
============================
Exposes daily reports, inspection logs and anomaly reports over MCP.

HOW IT WORKS:
1. FastMCP owns the tool registry: each @mcp.tool() below declares the tool
   name, description and input schema (from the typed signature). FastMCP
   validates arguments against that schema before our code runs.
2. Each tool body builds an explicit ToolContext for the call (caller
   permissions from the verified access token + the database handle) and
   hands the arguments to the gated handler from handlers.py.
3. The gated handler either answers 403 or runs one parameterized statement.

RUN DIRECTLY:
    python -m mcp_servers.servers.factory_floor.server

Transport is picked by FACTORY_MCP_TRANSPORT ("streamable-http", "sse" or
"stdio"). Token verification turns on when FACTORY_AUTH_ISSUER_URL and
FACTORY_INTROSPECTION_ENDPOINT are both set.
"""

from typing import Any, Dict, Optional

from mcp.server.auth.middleware.auth_context import get_access_token
from mcp.server.auth.settings import AuthSettings
from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult, TextContent

from mcp_servers.servers.factory_floor import config
from mcp_servers.servers.factory_floor.auth import FactoryAccessToken, FactoryTokenVerifier
from mcp_servers.servers.factory_floor.database import FactoryDatabase
from mcp_servers.servers.factory_floor.factory_floor_descriptions import (
    INSERT_ANOMALY_REPORT_DESCRIPTION,
    INSERT_DAILY_REPORT_DESCRIPTION,
    INSERT_INSPECTION_LOG_DESCRIPTION,
    QUERY_ANOMALY_REPORTS_DESCRIPTION,
    QUERY_DAILY_REPORTS_DESCRIPTION,
    QUERY_INSPECTION_LOGS_DESCRIPTION,
    WHO_AM_I_DESCRIPTION,
)
from mcp_servers.servers.factory_floor.handlers import get_handler
from mcp_servers.servers.factory_floor.permissions import ToolContext, ToolResult

# ── Storage ────────────────────────────────────────────────────────────
db = FactoryDatabase(config.DATABASE_PATH)
if config.ROLES:
    db.seed_roles(config.ROLES)


# ── Auth ───────────────────────────────────────────────────────────────
def _build_auth() -> Dict[str, Any]:
    if not config.auth_enabled():
        print("[Auth] Token verification disabled (no issuer / introspection endpoint)")
        return {}
    verifier = FactoryTokenVerifier(
        config.INTROSPECTION_ENDPOINT,
        db,
        allowed_emails=config.ALLOWED_EMAILS,
        client_id=config.INTROSPECTION_CLIENT_ID,
        client_secret=config.INTROSPECTION_CLIENT_SECRET,
    )
    settings = AuthSettings(
        issuer_url=config.AUTH_ISSUER_URL,
        resource_server_url=config.RESOURCE_SERVER_URL,
    )
    return {"token_verifier": verifier, "auth": settings}


# ── Create the MCP server ──────────────────────────────────────────────
mcp = FastMCP(config.SERVER_NAME, host=config.HOST, port=config.PORT, **_build_auth())


def build_context() -> ToolContext:
    """
    Invocation context for the current request.

    No token (auth disabled, or stdio) means the anonymous permission set,
    which is empty unless FACTORY_ANONYMOUS_PERMISSIONS says otherwise.
    """
    token = get_access_token()
    if token is None:
        return ToolContext.build(config.ANONYMOUS_PERMISSIONS, db=db)

    if isinstance(token, FactoryAccessToken):
        return ToolContext.build(
            token.permissions,
            db=db,
            email=token.email,
            name=token.name,
            client_id=token.client_id,
            scopes=tuple(token.scopes),
        )
    return ToolContext.build(
        token.scopes, db=db, client_id=token.client_id, scopes=tuple(token.scopes)
    )


def to_call_tool_result(result: ToolResult) -> CallToolResult:
    """
    Protocol shape of a handler result.

    A denial stays a normal (non-exception) result: isError is set and the
    403 status rides along in structuredContent.
    """
    content = [TextContent(type="text", text=result.text)]
    if result.denied:
        return CallToolResult(
            content=content,
            isError=True,
            structuredContent={"status": result.status, "message": result.text},
        )
    return CallToolResult(content=content)


async def _dispatch(tool_name: str, arguments: Dict[str, Any]) -> CallToolResult:
    handler = get_handler(tool_name)
    result = await handler(arguments, build_context())
    return to_call_tool_result(result)


# ------------------------------------------------------------------
# 0. Debug
# ------------------------------------------------------------------
@mcp.tool(name="whoAmI", description=WHO_AM_I_DESCRIPTION, structured_output=False)
async def who_am_i() -> CallToolResult:
    return await _dispatch("whoAmI", {})


# ------------------------------------------------------------------
# 1. Daily Reports
# ------------------------------------------------------------------
@mcp.tool(
    name="queryDailyReports",
    description=QUERY_DAILY_REPORTS_DESCRIPTION,
    structured_output=False,
)
async def query_daily_reports(
    date: Optional[str] = None, employeeId: Optional[int] = None
) -> CallToolResult:
    return await _dispatch("queryDailyReports", {"date": date, "employeeId": employeeId})


@mcp.tool(
    name="insertDailyReport",
    description=INSERT_DAILY_REPORT_DESCRIPTION,
    structured_output=False,
)
async def insert_daily_report(
    reportDate: str,
    employeeId: int,
    workPlan: str,
    workResult: str,
    issues: str,
    nextPlan: str,
) -> CallToolResult:
    return await _dispatch(
        "insertDailyReport",
        {
            "reportDate": reportDate,
            "employeeId": employeeId,
            "workPlan": workPlan,
            "workResult": workResult,
            "issues": issues,
            "nextPlan": nextPlan,
        },
    )


# ------------------------------------------------------------------
# 2. Inspection Logs
# ------------------------------------------------------------------
@mcp.tool(
    name="queryInspectionLogs",
    description=QUERY_INSPECTION_LOGS_DESCRIPTION,
    structured_output=False,
)
async def query_inspection_logs(
    equipmentId: Optional[int] = None, date: Optional[str] = None
) -> CallToolResult:
    return await _dispatch("queryInspectionLogs", {"equipmentId": equipmentId, "date": date})


@mcp.tool(
    name="insertInspectionLog",
    description=INSERT_INSPECTION_LOG_DESCRIPTION,
    structured_output=False,
)
async def insert_inspection_log(
    equipmentId: int,
    inspectBy: int,
    result: str,
    notes: str,
    nextSchedule: str,
    inspectDate: str,
) -> CallToolResult:
    return await _dispatch(
        "insertInspectionLog",
        {
            "equipmentId": equipmentId,
            "inspectBy": inspectBy,
            "result": result,
            "notes": notes,
            "nextSchedule": nextSchedule,
            "inspectDate": inspectDate,
        },
    )


# ------------------------------------------------------------------
# 3. Anomaly Reports
# ------------------------------------------------------------------
@mcp.tool(
    name="queryAnomalyReports",
    description=QUERY_ANOMALY_REPORTS_DESCRIPTION,
    structured_output=False,
)
async def query_anomaly_reports(
    equipmentId: Optional[int] = None, since: Optional[str] = None
) -> CallToolResult:
    return await _dispatch("queryAnomalyReports", {"equipmentId": equipmentId, "since": since})


@mcp.tool(
    name="insertAnomalyReport",
    description=INSERT_ANOMALY_REPORT_DESCRIPTION,
    structured_output=False,
)
async def insert_anomaly_report(
    equipmentId: int, reportedBy: int, title: str, description: str
) -> CallToolResult:
    # No timestamp parameter on purpose: occurred_at comes from the database clock.
    return await _dispatch(
        "insertAnomalyReport",
        {
            "equipmentId": equipmentId,
            "reportedBy": reportedBy,
            "title": title,
            "description": description,
        },
    )


# ── Entry point ────────────────────────────────────────────────────────
def main():
    print(f"[MCP] Starting '{config.SERVER_NAME}' ({config.TRANSPORT})")
    mcp.run(transport=config.TRANSPORT)


if __name__ == "__main__":
    main()
