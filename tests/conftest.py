"""Test fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from ldaplink.config import Config
from ldaplink.factory import Factory

from .support.config import configure
from .support.constants import TEST_ENCRYPTION_KEY
from .support.database import create_test_engine
from .support.ldap import MockLDAP, patch_ldap

_LDAP_VARIABLES = (
    "BASE_DN",
    "BIND_DN",
    "BIND_PASSWORD",
    "ENABLED",
    "ENCRYPTION_KEY",
    "SERVER_URL",
    "TLS_ENABLED",
    "TLS_SKIP_VERIFY",
    "USER_FILTER",
)
"""``LDAP_`` environment variables that must not leak into tests."""


@pytest.fixture(autouse=True)
def environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set default values of environment variables for testing."""
    monkeypatch.setenv("LDAPLINK_ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
    for name in _LDAP_VARIABLES:
        monkeypatch.delenv(f"LDAP_{name}", raising=False)


@pytest.fixture
def config() -> Config:
    """Set up and return the default test configuration."""
    return configure("base")


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Create an empty test database and return an engine for it."""
    engine = await create_test_engine(tmp_path)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def factory(
    config: Config, engine: AsyncEngine
) -> AsyncIterator[Factory]:
    """Return a component factory using the test database."""
    async with Factory.standalone(config, engine) as factory:
        yield factory


@pytest.fixture
def mock_ldap() -> Iterator[MockLDAP]:
    """Replace the ldap3 connection with a mock."""
    yield from patch_ldap()
