"""
Agent entry point.

Starts the aggregator's FastAPI server on the first free port at or after
AGENT_PORT.
"""
import socket

import uvicorn

from .config import DEFAULT_PORT, MAX_PORT_ATTEMPTS


def find_available_port(start_port: int = DEFAULT_PORT, max_attempts: int = MAX_PORT_ATTEMPTS) -> int:
    """Find an available port starting from start_port."""
    for port in range(start_port, start_port + max_attempts):
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind(('', port))
                return port
        except OSError:
            continue
    raise RuntimeError(f"Could not find an available port in range {start_port}-{start_port + max_attempts - 1}")


def main():
    try:
        port = find_available_port()
    except RuntimeError as e:
        print(f"Error finding available port: {e}")
        return

    if port != DEFAULT_PORT:
        print(f"[Agent] Port {DEFAULT_PORT} busy; OAuth redirect URIs still use AGENT_PUBLIC_URL")
    print(f"Starting server on port {port}")
    print(f"Visit http://localhost:{port} to manage MCP servers")

    from .app import app

    uvicorn.run(app, host="0.0.0.0", port=port, log_level="warning")


if __name__ == "__main__":
    main()
