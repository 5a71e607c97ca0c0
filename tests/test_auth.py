"""Tests for bearer-token verification via introspection."""

import httpx
import pytest
import respx

from mcp_servers.servers.factory_floor.auth import FactoryAccessToken, FactoryTokenVerifier

INTROSPECT = "https://auth.plant.example/oauth/introspect"


@pytest.fixture
def verifier(db):
    db.set_permissions("lead@plant.example", ["read_daily", "write_daily"])
    return FactoryTokenVerifier(INTROSPECT, db)


class TestVerifyToken:
    @pytest.mark.asyncio
    @respx.mock
    async def test_active_token_carries_role_and_scope_permissions(self, verifier):
        route = respx.post(INTROSPECT).mock(
            return_value=httpx.Response(
                200,
                json={
                    "active": True,
                    "client_id": "agent",
                    "email": "Lead@Plant.Example",
                    "name": "Shift Lead",
                    "scope": "openid extra_perm",
                    "exp": 4102444800,
                },
            )
        )

        token = await verifier.verify_token("tok-123")

        assert route.called
        assert b"token=tok-123" in route.calls.last.request.content
        assert isinstance(token, FactoryAccessToken)
        assert token.email == "lead@plant.example"
        assert token.name == "Shift Lead"
        assert token.client_id == "agent"
        assert token.scopes == ["openid", "extra_perm"]
        assert token.permissions == ["extra_perm", "openid", "read_daily", "write_daily"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_inactive_token_is_rejected(self, verifier):
        respx.post(INTROSPECT).mock(return_value=httpx.Response(200, json={"active": False}))
        assert await verifier.verify_token("tok") is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_introspection_http_error_is_rejected(self, verifier):
        respx.post(INTROSPECT).mock(return_value=httpx.Response(500, text="boom"))
        assert await verifier.verify_token("tok") is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_unreachable_endpoint_is_rejected(self, verifier):
        respx.post(INTROSPECT).mock(side_effect=httpx.ConnectError("refused"))
        assert await verifier.verify_token("tok") is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_body_is_rejected(self, verifier):
        respx.post(INTROSPECT).mock(return_value=httpx.Response(200, text="not json"))
        assert await verifier.verify_token("tok") is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_unknown_user_has_no_permissions(self, verifier):
        respx.post(INTROSPECT).mock(
            return_value=httpx.Response(200, json={"active": True, "sub": "temp@plant.example"})
        )
        token = await verifier.verify_token("tok")
        assert token is not None
        assert token.permissions == []


class TestAllowList:
    @pytest.mark.asyncio
    @respx.mock
    async def test_email_outside_allow_list_is_rejected(self, db):
        respx.post(INTROSPECT).mock(
            return_value=httpx.Response(200, json={"active": True, "email": "intruder@else.example"})
        )
        verifier = FactoryTokenVerifier(INTROSPECT, db, allowed_emails=["lead@plant.example"])
        assert await verifier.verify_token("tok") is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_email_on_allow_list_is_accepted(self, db):
        respx.post(INTROSPECT).mock(
            return_value=httpx.Response(200, json={"active": True, "email": "LEAD@plant.example"})
        )
        verifier = FactoryTokenVerifier(INTROSPECT, db, allowed_emails=[" lead@plant.example "])
        assert await verifier.verify_token("tok") is not None

    def test_empty_allow_list_admits_everyone(self, db):
        assert FactoryTokenVerifier(INTROSPECT, db).is_allowed(None)

    def test_missing_email_fails_a_non_empty_allow_list(self, db):
        verifier = FactoryTokenVerifier(INTROSPECT, db, allowed_emails=["lead@plant.example"])
        assert not verifier.is_allowed(None)


@pytest.mark.asyncio
@respx.mock
async def test_introspection_client_credentials_use_basic_auth(db):
    route = respx.post(INTROSPECT).mock(return_value=httpx.Response(200, json={"active": False}))
    verifier = FactoryTokenVerifier(INTROSPECT, db, client_id="rs", client_secret="s3cret")

    await verifier.verify_token("tok")

    assert route.calls.last.request.headers["Authorization"].startswith("Basic ")
