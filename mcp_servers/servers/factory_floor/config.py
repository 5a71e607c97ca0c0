"""
Factory-Floor Log MCP server configuration.

Centralizes all configuration values for the server process. Values come
from environment variables (optionally loaded from the project's .env file).
"""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[3]

load_dotenv(os.path.join(PROJECT_ROOT, ".env"))

# Server identity (what clients see in the initialize handshake)
SERVER_NAME = "Factory-Floor Log MCP"

# Storage
DATABASE_PATH = os.environ.get(
    "FACTORY_DATABASE_PATH", os.path.join("user_data", "factory_floor.db")
)

# Transport: "streamable-http", "sse" or "stdio"
TRANSPORT = os.environ.get("FACTORY_MCP_TRANSPORT", "streamable-http")
HOST = os.environ.get("FACTORY_MCP_HOST", "127.0.0.1")
PORT = int(os.environ.get("FACTORY_MCP_PORT", "8787"))

# Query result cap shared by every list tool
QUERY_LIMIT = 50

# ── OAuth resource-server settings ─────────────────────────────────────
# Token issuance is done by an external authorization server. This server
# only validates bearer tokens through RFC 7662 introspection.
AUTH_ISSUER_URL = os.environ.get("FACTORY_AUTH_ISSUER_URL", "")
INTROSPECTION_ENDPOINT = os.environ.get("FACTORY_INTROSPECTION_ENDPOINT", "")
INTROSPECTION_CLIENT_ID = os.environ.get("FACTORY_INTROSPECTION_CLIENT_ID", "")
INTROSPECTION_CLIENT_SECRET = os.environ.get("FACTORY_INTROSPECTION_CLIENT_SECRET", "")
RESOURCE_SERVER_URL = os.environ.get(
    "FACTORY_RESOURCE_SERVER_URL", f"http://{HOST}:{PORT}/mcp"
)


def _split_csv(raw: str) -> list[str]:
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


# Comma-separated list of emails allowed to open a session. Empty = everyone
# with a valid token.
ALLOWED_EMAILS = _split_csv(os.environ.get("FACTORY_ALLOWED_EMAILS", ""))

# Permissions granted when auth is disabled (local development only)
ANONYMOUS_PERMISSIONS = _split_csv(os.environ.get("FACTORY_ANONYMOUS_PERMISSIONS", ""))

# JSON object of email -> [permissions] written to the role table at boot,
# e.g. {"lead@plant.example": ["read_daily", "write_daily"]}
ROLES = json.loads(os.environ.get("FACTORY_ROLES", "{}") or "{}")


def auth_enabled() -> bool:
    """Token verification is on only when both the issuer and introspection endpoint are set."""
    return bool(AUTH_ISSUER_URL and INTROSPECTION_ENDPOINT)
