"""
Application configuration module.

Centralizes all configuration values and constants for the aggregator agent.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Project paths
PROJECT_ROOT = Path(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
SOURCE_DIR = Path(os.path.dirname(os.path.abspath(__file__)))
STATIC_DIR = SOURCE_DIR / "static"

# Load environment variables from .env file
load_dotenv(os.path.join(PROJECT_ROOT, ".env"))

# Server configuration
DEFAULT_PORT = int(os.environ.get("AGENT_PORT", "8000"))
MAX_PORT_ATTEMPTS = 10

# Externally reachable base URL of this agent. OAuth redirect URIs handed to
# upstream authorization servers are built from it, so it must be what the
# user's browser can reach.
PUBLIC_BASE_URL = os.environ.get("AGENT_PUBLIC_URL", f"http://localhost:{DEFAULT_PORT}").rstrip("/")

# Upstream connection behaviour
AUTH_TIMEOUT_SECONDS = float(os.environ.get("AGENT_AUTH_TIMEOUT_SECONDS", "300"))
ADD_SERVER_WAIT_SECONDS = float(os.environ.get("AGENT_ADD_SERVER_WAIT_SECONDS", "10"))
TOOL_CALL_TIMEOUT_SECONDS = 180.0
DISCONNECT_GRACE_SECONDS = 5.0

# OAuth client metadata sent during dynamic client registration
OAUTH_CLIENT_NAME = os.environ.get("AGENT_OAUTH_CLIENT_NAME", "Factory-Floor MCP Agent")
OAUTH_SCOPE = os.environ.get("AGENT_OAUTH_SCOPE") or None

# Python client: where the session identifier is persisted
CLIENT_STATE_FILE = os.environ.get(
    "AGENT_CLIENT_STATE_FILE", os.path.join("user_data", "client_state.json")
)


# Connection states of an upstream server record
class ConnectionState:
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    ERROR = "error"
