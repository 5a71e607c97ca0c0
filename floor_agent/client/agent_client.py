"""
HTTP client for one agent session.
"""

import json
from typing import Any, Dict, Optional

import httpx


def parse_auth_url(body: str) -> Optional[str]:
    """
    Extract an authorization URL from an add-mcp response body.

    Accepts a JSON object carrying "authUrl", a bare JSON string, or plain
    text. Anything that does not start with "http" is not a URL to open.
    """
    candidate: Any = body
    try:
        parsed = json.loads(body)
    except ValueError:
        parsed = None
    else:
        if isinstance(parsed, str):
            candidate = parsed
        elif isinstance(parsed, dict):
            candidate = parsed.get("authUrl")
        else:
            candidate = None

    if not isinstance(candidate, str):
        return None
    candidate = candidate.strip()
    return candidate if candidate.startswith("http") else None


class AgentClient:
    """Talks to /agents/{session_id}/... on a running agent."""

    def __init__(self, base_url: str, session_id: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.session_id = session_id
        self._http = httpx.Client(timeout=timeout)

    @property
    def session_url(self) -> str:
        return f"{self.base_url}/agents/{self.session_id}"

    def add_server(self, url: str) -> Optional[str]:
        """
        Register an upstream server.

        Returns:
            The authorization URL the user must open, or None when no
            authorization is needed (yet).

        Raises:
            httpx.HTTPStatusError: the agent rejected the request
        """
        response = self._http.post(f"{self.session_url}/add-mcp", json={"url": url})
        response.raise_for_status()
        return parse_auth_url(response.text)

    def remove_server(self, server_id: str) -> None:
        response = self._http.delete(f"{self.session_url}/servers/{server_id}")
        response.raise_for_status()

    def get_state(self) -> Dict[str, Any]:
        response = self._http.get(f"{self.session_url}/state")
        response.raise_for_status()
        return response.json()

    def end_session(self) -> None:
        response = self._http.delete(self.session_url)
        response.raise_for_status()

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
