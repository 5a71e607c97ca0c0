"""Tests for the Python client: session identity, add-mcp parsing, CLI."""

import json

import httpx
import pytest
import respx

from floor_agent.client import (
    SESSION_KEY,
    AgentClient,
    FileStorage,
    clear_session_id,
    ensure_session_id,
    parse_auth_url,
)
from floor_agent.client.__main__ import main

AGENT = "http://agent.local:8000"


class TestSessionId:
    def test_created_once_then_reused(self):
        storage = {}
        first = ensure_session_id(storage)
        second = ensure_session_id(storage)

        assert first == second
        assert storage == {SESSION_KEY: first}

    def test_existing_id_is_returned_untouched(self):
        storage = {"sessionId": "abc-123"}
        assert ensure_session_id(storage) == "abc-123"

    def test_clear_starts_a_new_session(self):
        storage = {}
        first = ensure_session_id(storage)
        clear_session_id(storage)
        clear_session_id(storage)  # idempotent

        assert ensure_session_id(storage) != first

    def test_file_storage_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "state" / "client.json")
        first = ensure_session_id(FileStorage(path))

        assert ensure_session_id(FileStorage(path)) == first
        with open(path, encoding="utf-8") as f:
            assert json.load(f) == {"sessionId": first}

    def test_corrupt_state_file_is_treated_as_empty(self, tmp_path):
        path = tmp_path / "client.json"
        path.write_text("{broken", encoding="utf-8")

        storage = FileStorage(str(path))
        session_id = ensure_session_id(storage)

        assert FileStorage(str(path))[SESSION_KEY] == session_id


class TestParseAuthUrl:
    @pytest.mark.parametrize(
        "body, expected",
        [
            ('{"id": "a1", "state": "authenticating", "authUrl": "https://auth.example/go"}', "https://auth.example/go"),
            ('"https://auth.example/go"', "https://auth.example/go"),
            ("https://auth.example/go\n", "https://auth.example/go"),
            ('{"id": "a1", "state": "ready"}', None),
            ('"not a url"', None),
            ("ok", None),
            ("[1, 2]", None),
            ('{"authUrl": 42}', None),
            ("", None),
        ],
    )
    def test_shapes(self, body, expected):
        assert parse_auth_url(body) == expected


class TestAgentClient:
    @respx.mock
    def test_add_server_returns_auth_url(self):
        route = respx.post(f"{AGENT}/agents/s1/add-mcp").mock(
            return_value=httpx.Response(
                200, json={"id": "a1", "state": "authenticating", "authUrl": "https://auth.example/go"}
            )
        )
        with AgentClient(AGENT + "/", "s1") as client:
            assert client.add_server("https://plant.example/mcp") == "https://auth.example/go"

        assert json.loads(route.calls.last.request.content) == {"url": "https://plant.example/mcp"}

    @respx.mock
    def test_add_server_without_authorization(self):
        respx.post(f"{AGENT}/agents/s1/add-mcp").mock(
            return_value=httpx.Response(200, json={"id": "a1", "state": "ready"})
        )
        with AgentClient(AGENT, "s1") as client:
            assert client.add_server("https://plant.example/mcp") is None

    @respx.mock
    def test_rejected_request_raises(self):
        respx.post(f"{AGENT}/agents/s1/add-mcp").mock(
            return_value=httpx.Response(400, json={"detail": "Server URL cannot be empty"})
        )
        with AgentClient(AGENT, "s1") as client:
            with pytest.raises(httpx.HTTPStatusError):
                client.add_server(" ")

    @respx.mock
    def test_state_remove_and_end(self):
        respx.get(f"{AGENT}/agents/s1/state").mock(
            return_value=httpx.Response(200, json={"servers": {}, "tools": [], "prompts": [], "resources": []})
        )
        remove = respx.delete(f"{AGENT}/agents/s1/servers/a1").mock(return_value=httpx.Response(200, json={}))
        end = respx.delete(f"{AGENT}/agents/s1").mock(return_value=httpx.Response(200, json={"status": "ended"}))

        with AgentClient(AGENT, "s1") as client:
            assert client.get_state()["servers"] == {}
            client.remove_server("a1")
            client.end_session()

        assert remove.called
        assert end.called


class TestCli:
    @respx.mock
    def test_opens_authorization_page(self, tmp_path, monkeypatch):
        state_file = str(tmp_path / "client.json")
        opened = []
        monkeypatch.setattr("webbrowser.open", lambda url: opened.append(url))
        respx.post(url__regex=rf"{AGENT}/agents/[^/]+/add-mcp").mock(
            return_value=httpx.Response(200, text='"https://auth.example/go"')
        )

        code = main([AGENT, "https://plant.example/mcp", "--state-file", state_file])

        assert code == 0
        assert opened == ["https://auth.example/go"]
        assert SESSION_KEY in FileStorage(state_file)

    @respx.mock
    def test_sign_out_forgets_session(self, tmp_path):
        state_file = str(tmp_path / "client.json")
        storage = FileStorage(state_file)
        session_id = ensure_session_id(storage)
        respx.delete(f"{AGENT}/agents/{session_id}").mock(
            return_value=httpx.Response(200, json={"status": "ended"})
        )

        assert main([AGENT, "--sign-out", "--state-file", state_file]) == 0
        assert SESSION_KEY not in FileStorage(state_file)

    @respx.mock
    def test_agent_unreachable(self, tmp_path):
        respx.post(url__regex=rf"{AGENT}/agents/[^/]+/add-mcp").mock(side_effect=httpx.ConnectError("refused"))
        code = main([AGENT, "https://plant.example/mcp", "--state-file", str(tmp_path / "c.json")])
        assert code == 1

    def test_mcp_url_required(self, tmp_path):
        assert main([AGENT, "--state-file", str(tmp_path / "c.json")]) == 2
