"""
Command-line client.

    python -m floor_agent.client http://localhost:8000 https://mcp.example.com/mcp

Registers the MCP server with the agent under this machine's persisted
session id and opens the authorization page in a browser when one is needed.
"""

import argparse
import sys
import webbrowser

import httpx

from ..config import CLIENT_STATE_FILE
from .agent_client import AgentClient
from .session import FileStorage, clear_session_id, ensure_session_id


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m floor_agent.client",
        description="Register an upstream MCP server with a running agent.",
    )
    parser.add_argument("agent_url", help="Base URL of the agent, e.g. http://localhost:8000")
    parser.add_argument("mcp_url", nargs="?", help="URL of the MCP server to add")
    parser.add_argument("--state-file", default=CLIENT_STATE_FILE, help="Where the session id is kept")
    parser.add_argument("--sign-out", action="store_true", help="End the session and forget its id")
    parser.add_argument("--no-browser", action="store_true", help="Print the authorization URL instead of opening it")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    storage = FileStorage(args.state_file)
    session_id = ensure_session_id(storage)

    with AgentClient(args.agent_url, session_id) as client:
        try:
            if args.sign_out:
                client.end_session()
                clear_session_id(storage)
                print(f"Session {session_id} ended")
                return 0

            if not args.mcp_url:
                print("An MCP server URL is required unless --sign-out is given", file=sys.stderr)
                return 2

            auth_url = client.add_server(args.mcp_url)
        except httpx.HTTPError as e:
            print(f"Agent request failed: {e}", file=sys.stderr)
            return 1

    print(f"Session: {session_id}")
    if auth_url is None:
        print("Server added; no authorization needed yet.")
    elif args.no_browser:
        print(f"Authorize at: {auth_url}")
    else:
        print(f"Opening authorization page: {auth_url}")
        webbrowser.open(auth_url)
    return 0


if __name__ == "__main__":
    sys.exit(main())
