"""Shared fixtures.

Server config is read from the environment at import time, so the database
location is pinned here before any test module imports the server package.
"""

import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="factory-floor-tests-")
os.environ["FACTORY_DATABASE_PATH"] = os.path.join(_TMP, "server.db")
os.environ.pop("FACTORY_AUTH_ISSUER_URL", None)
os.environ.pop("FACTORY_INTROSPECTION_ENDPOINT", None)
os.environ.pop("FACTORY_ROLES", None)
os.environ.pop("FACTORY_ANONYMOUS_PERMISSIONS", None)

import pytest

from mcp_servers.servers.factory_floor.database import FactoryDatabase
from mcp_servers.servers.factory_floor.permissions import ToolContext


@pytest.fixture
def db(tmp_path):
    return FactoryDatabase(str(tmp_path / "factory.db"))


@pytest.fixture
def reader(db):
    return ToolContext.build(["read_daily"], db=db, email="reader@plant.example")


@pytest.fixture
def writer(db):
    return ToolContext.build(["read_daily", "write_daily"], db=db, email="lead@plant.example")


@pytest.fixture
def nobody(db):
    return ToolContext.build([], db=db)
