"""Tests for authentication of users against LDAP."""

from __future__ import annotations

from datetime import timedelta

import pytest
from safir.datetime import current_datetime
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine
from structlog.testing import capture_logs

from ldaplink.config import Config
from ldaplink.exceptions import (
    LDAPBindError,
    LDAPDisabledError,
    LDAPInvalidCredentialsError,
    LDAPUserNotFoundError,
)
from ldaplink.factory import Factory
from ldaplink.models.enums import UserRole, UserStatus
from ldaplink.schema import LDAPUser as SQLLDAPUser
from ldaplink.schema import User as SQLUser
from ldaplink.storage.ldap_user import LDAPUserStore

from ..support.constants import (
    TEST_BASE_DN,
    TEST_BIND_DN,
    TEST_BIND_PASSWORD,
    TEST_SERVER_URL,
)
from ..support.database import count_rows
from ..support.ldap import MockLDAP, configure_ldap


@pytest.mark.asyncio
async def test_authenticate(
    factory: Factory, config: Config, mock_ldap: MockLDAP
) -> None:
    await configure_ldap(factory)
    dn = mock_ldap.add_test_user("alice", password="secret")
    ldap_service = factory.create_ldap_service()

    user = await ldap_service.authenticate("alice", "secret")
    assert user.email == "alice@example.com"
    assert user.username == "alice"
    assert user.role == UserRole.user
    assert user.balance == config.user_defaults.balance
    assert user.concurrency == config.user_defaults.concurrency
    assert user.is_active
    assert mock_ldap.user == dn
    assert mock_ldap.unbound

    again = await ldap_service.authenticate("alice", "secret")
    assert again == user


@pytest.mark.asyncio
async def test_disabled(factory: Factory, mock_ldap: MockLDAP) -> None:
    mock_ldap.add_test_user("alice", password="secret")
    ldap_service = factory.create_ldap_service()

    with pytest.raises(LDAPDisabledError):
        await ldap_service.authenticate("alice", "secret")

    await configure_ldap(factory, enabled=False)
    with pytest.raises(LDAPDisabledError):
        await ldap_service.authenticate("alice", "secret")
    assert not mock_ldap.opened


@pytest.mark.asyncio
async def test_failure(
    factory: Factory, engine: AsyncEngine, mock_ldap: MockLDAP
) -> None:
    await configure_ldap(factory)
    mock_ldap.add_test_user("alice", password="secret")
    ldap_service = factory.create_ldap_service()

    with pytest.raises(LDAPInvalidCredentialsError):
        await ldap_service.authenticate("alice", "wrong")
    with pytest.raises(LDAPUserNotFoundError):
        await ldap_service.authenticate("bob", "secret")
    assert await count_rows(engine, SQLUser) == 0
    assert await count_rows(engine, SQLLDAPUser) == 0

    await configure_ldap(factory, bind_password="wrong")
    with pytest.raises(LDAPBindError):
        await ldap_service.authenticate("alice", "secret")


@pytest.mark.asyncio
async def test_sync(factory: Factory, mock_ldap: MockLDAP) -> None:
    await configure_ldap(factory)
    mock_ldap.add_test_user("alice", password="secret")
    ldap_service = factory.create_ldap_service()
    user = await ldap_service.authenticate("alice", "secret")

    # Pretend the last login was a day ago.
    yesterday = (current_datetime() - timedelta(days=1)).replace(tzinfo=None)
    async with factory.session.begin():
        await factory.session.execute(
            update(SQLLDAPUser).values(last_sync_at=yesterday)
        )

    # The entry moved within the directory.
    new_dn = "uid=alice,ou=staff,dc=example,dc=com"
    mock_ldap.add_test_user("alice", dn=new_dn, password="secret")
    start = current_datetime()
    again = await ldap_service.authenticate("alice", "secret")
    assert again.id == user.id

    store = LDAPUserStore(factory.session)
    async with factory.session.begin():
        link = await store.get_by_username("alice")
    assert link
    assert link.ldap_dn == new_dn
    assert link.last_sync_at >= start


@pytest.mark.asyncio
async def test_inactive_user(factory: Factory, mock_ldap: MockLDAP) -> None:
    await configure_ldap(factory)
    mock_ldap.add_test_user("alice", password="secret")
    ldap_service = factory.create_ldap_service()
    user = await ldap_service.authenticate("alice", "secret")

    async with factory.session.begin():
        await factory.session.execute(
            update(SQLUser)
            .where(SQLUser.id == user.id)
            .values(status=UserStatus.disabled)
        )

    user = await ldap_service.authenticate("alice", "secret")
    assert user.status == UserStatus.disabled
    assert not user.is_active


@pytest.mark.asyncio
async def test_logs_redacted(
    config: Config, engine: AsyncEngine, mock_ldap: MockLDAP
) -> None:
    dn = mock_ldap.add_test_user("alice", password="alice-password-123")

    with capture_logs() as entries:
        async with Factory.standalone(config, engine) as factory:
            stored = await configure_ldap(factory)
            ldap_service = factory.create_ldap_service()
            await ldap_service.authenticate("alice", "alice-password-123")
            with pytest.raises(LDAPInvalidCredentialsError):
                await ldap_service.authenticate("alice", "wrong-password-456")
            await configure_ldap(factory, bind_password="wrong-service-789")
            with pytest.raises(LDAPBindError):
                await ldap_service.authenticate("alice", "alice-password-123")

    assert entries
    logged = "\n".join(repr(e) for e in entries)
    assert config.encryption_key
    forbidden = [
        "alice-password-123",
        "wrong-password-456",
        "wrong-service-789",
        TEST_BIND_PASSWORD,
        stored.bind_password_encrypted,
        config.encryption_key.get_secret_value(),
        dn,
        TEST_BIND_DN,
        TEST_BASE_DN,
        TEST_SERVER_URL,
    ]
    for value in forbidden:
        assert value not in logged
    assert "uid=alice,***" in logged
    assert "cn=service,***" in logged
    assert "ldaps://ldap.examp***" in logged
