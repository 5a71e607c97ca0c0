"""
Factory-Floor Log MCP server: daily reports, inspection logs and anomaly
reports behind per-tool permission gates.
"""
