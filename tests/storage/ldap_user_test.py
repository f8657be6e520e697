"""Tests for the storage of links between LDAP and local users."""

from __future__ import annotations

from datetime import timedelta

import pytest
from safir.datetime import current_datetime
from sqlalchemy.ext.asyncio import AsyncEngine

from ldaplink.exceptions import DuplicateLDAPUserError
from ldaplink.factory import Factory
from ldaplink.models.ldap import LDAPUser
from ldaplink.storage.ldap_user import LDAPUserStore

from ..support.database import insert_user


@pytest.mark.asyncio
async def test_add_get(factory: Factory, engine: AsyncEngine) -> None:
    user_id = await insert_user(engine, "alice@example.com", username="Alice")
    store = LDAPUserStore(factory.session)
    now = current_datetime()
    link = LDAPUser(
        user_id=user_id,
        ldap_username="alice",
        ldap_dn="uid=alice,ou=people,dc=example,dc=com",
        last_sync_at=now,
    )

    async with factory.session.begin():
        assert not await store.exists_by_username("alice")
        stored = await store.add(link)
    assert stored.id is not None
    assert stored.ldap_username == "alice"

    async with factory.session.begin():
        assert await store.exists_by_username("alice")
        by_username = await store.get_by_username("alice")
        by_email = await store.get_by_email("alice@example.com")
        by_user_id = await store.get_by_user_id(user_id)
        assert await store.get_by_username("bob") is None
        assert await store.get_by_email("ALICE@example.com") is None
        assert await store.get_by_user_id(user_id + 1) is None

    assert by_username
    assert by_username == by_email == by_user_id
    assert by_username.id == stored.id
    assert by_username.ldap_dn == link.ldap_dn
    assert by_username.last_sync_at == now
    assert by_username.user
    assert by_username.user.id == user_id
    assert by_username.user.username == "Alice"


@pytest.mark.asyncio
async def test_duplicate(factory: Factory, engine: AsyncEngine) -> None:
    alice_id = await insert_user(engine, "alice@example.com")
    bob_id = await insert_user(engine, "bob@example.com")
    store = LDAPUserStore(factory.session)
    link = LDAPUser(
        user_id=alice_id,
        ldap_username="alice",
        ldap_dn="uid=alice,dc=example,dc=com",
        last_sync_at=current_datetime(),
    )
    async with factory.session.begin():
        await store.add(link)

    # Same LDAP username for another local user.
    with pytest.raises(DuplicateLDAPUserError):
        async with factory.session.begin():
            await store.add(link.model_copy(update={"user_id": bob_id}))

    # Second LDAP username for the same local user.
    with pytest.raises(DuplicateLDAPUserError):
        async with factory.session.begin():
            await store.add(link.model_copy(update={"ldap_username": "al"}))


@pytest.mark.asyncio
async def test_update(factory: Factory, engine: AsyncEngine) -> None:
    alice_id = await insert_user(engine, "alice@example.com")
    bob_id = await insert_user(engine, "bob@example.com")
    store = LDAPUserStore(factory.session)
    start = current_datetime() - timedelta(days=1)
    async with factory.session.begin():
        alice = await store.add(
            LDAPUser(
                user_id=alice_id,
                ldap_username="alice",
                ldap_dn="uid=alice,dc=example,dc=com",
                last_sync_at=start,
            )
        )
        await store.add(
            LDAPUser(
                user_id=bob_id,
                ldap_username="bob",
                ldap_dn="uid=bob,dc=example,dc=com",
                last_sync_at=start,
            )
        )
    assert alice.id is not None

    now = current_datetime()
    async with factory.session.begin():
        await store.update_last_sync(alice.id, now)
        updated = await store.update_username_and_dn(
            alice.id, "alice2", "uid=alice2,dc=example,dc=com"
        )
        assert updated
        missing = await store.update_username_and_dn(
            alice.id + 100, "carol", "uid=carol,dc=example,dc=com"
        )
        assert not missing

    async with factory.session.begin():
        link = await store.get_by_user_id(alice_id)
    assert link
    assert link.ldap_username == "alice2"
    assert link.ldap_dn == "uid=alice2,dc=example,dc=com"
    assert link.last_sync_at == now

    with pytest.raises(DuplicateLDAPUserError):
        async with factory.session.begin():
            await store.update_username_and_dn(
                alice.id, "bob", "uid=bob,dc=example,dc=com"
            )
