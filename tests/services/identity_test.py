"""Tests for reconciliation of LDAP identities with local users."""

from __future__ import annotations

import pytest
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, async_scoped_session

from ldaplink.config import Config
from ldaplink.exceptions import (
    DuplicateLDAPUserError,
    LDAPIdentityConflictError,
    LDAPUserEmailRequiredError,
)
from ldaplink.factory import Factory
from ldaplink.models.enums import UserRole, UserStatus
from ldaplink.models.ldap import LDAPUser
from ldaplink.models.user import LocalUser, NewLocalUser
from ldaplink.schema import LDAPUser as SQLLDAPUser
from ldaplink.schema import User as SQLUser
from ldaplink.services.identity import IdentityService
from ldaplink.storage.ldap_user import LDAPUserStore
from ldaplink.storage.user import UserStore

from ..support.database import count_rows, insert_link, insert_user

ALICE_DN = "uid=alice,ou=people,dc=example,dc=com"


class RacingUserStore(UserStore):
    """Creates the same user from another session just before each add."""

    def __init__(
        self, session: async_scoped_session, engine: AsyncEngine
    ) -> None:
        super().__init__(session)
        self._engine = engine

    async def add(self, user: NewLocalUser) -> LocalUser:
        await insert_user(self._engine, user.email, username="rival")
        return await super().add(user)


class RacingLinkStore(LDAPUserStore):
    """Creates the same link from another session before the first add."""

    def __init__(
        self, session: async_scoped_session, engine: AsyncEngine
    ) -> None:
        super().__init__(session)
        self._engine = engine
        self.calls = 0

    async def add(self, link: LDAPUser) -> LDAPUser:
        self.calls += 1
        if self.calls == 1:
            await insert_link(
                self._engine, link.user_id, link.ldap_username, link.ldap_dn
            )
        return await super().add(link)


class ConflictingLinkStore(LDAPUserStore):
    """Loses every race to create a link."""

    def __init__(self, session: async_scoped_session) -> None:
        super().__init__(session)
        self.calls = 0

    async def add(self, link: LDAPUser) -> LDAPUser:
        self.calls += 1
        raise DuplicateLDAPUserError(f"{link.ldap_username} already linked")


def build_service(
    factory: Factory,
    config: Config,
    *,
    user_store: UserStore | None = None,
    ldap_user_store: LDAPUserStore | None = None,
) -> IdentityService:
    return IdentityService(
        user_store=user_store or UserStore(factory.session),
        ldap_user_store=ldap_user_store or LDAPUserStore(factory.session),
        user_defaults=config.user_defaults,
        max_retries=config.reconcile_retries,
        session=factory.session,
        logger=structlog.get_logger("ldaplink"),
    )


@pytest.mark.asyncio
async def test_create(
    factory: Factory, config: Config, engine: AsyncEngine
) -> None:
    identity_service = factory.create_identity_service()

    user = await identity_service.resolve(
        "alice", ALICE_DN, "alice@example.com"
    )
    assert user.email == "alice@example.com"
    assert user.username == "alice"
    assert user.role == UserRole.user
    assert user.status == UserStatus.active
    assert user.balance == config.user_defaults.balance
    assert user.concurrency == config.user_defaults.concurrency
    assert user.is_active

    async with factory.session.begin():
        password_hash = await factory.session.scalar(
            select(SQLUser.password_hash).where(SQLUser.id == user.id)
        )
        link = await factory.session.scalar(select(SQLLDAPUser))
    assert password_hash
    assert password_hash.startswith("$argon2")
    assert link
    assert link.user_id == user.id
    assert link.ldap_username == "alice"
    assert link.ldap_dn == ALICE_DN

    user_store = UserStore(factory.session)
    async with factory.session.begin():
        assert await user_store.get(user.id) == user
        assert await user_store.get(user.id + 1) is None


@pytest.mark.asyncio
async def test_idempotent(factory: Factory, engine: AsyncEngine) -> None:
    identity_service = factory.create_identity_service()

    first = await identity_service.resolve(
        "alice", ALICE_DN, "alice@example.com"
    )
    second = await identity_service.resolve(
        "alice", ALICE_DN, "alice@example.com"
    )
    assert first == second
    assert await count_rows(engine, SQLUser) == 1
    assert await count_rows(engine, SQLLDAPUser) == 1


@pytest.mark.asyncio
async def test_existing_user(factory: Factory, engine: AsyncEngine) -> None:
    user_id = await insert_user(engine, "carol@example.com", username="Carol")
    identity_service = factory.create_identity_service()

    user = await identity_service.resolve(
        "carol", "uid=carol,dc=example,dc=com", "carol@example.com"
    )
    assert user.id == user_id
    assert user.username == "Carol"
    assert await count_rows(engine, SQLUser) == 1
    assert await count_rows(engine, SQLLDAPUser) == 1


@pytest.mark.asyncio
async def test_email_required(factory: Factory, engine: AsyncEngine) -> None:
    identity_service = factory.create_identity_service()

    with pytest.raises(LDAPUserEmailRequiredError):
        await identity_service.resolve("alice", ALICE_DN, "")
    assert await count_rows(engine, SQLUser) == 0


@pytest.mark.asyncio
async def test_identity_drift(factory: Factory, engine: AsyncEngine) -> None:
    identity_service = factory.create_identity_service()
    user = await identity_service.resolve(
        "alice", ALICE_DN, "alice@example.com"
    )

    new_dn = "uid=alice.smith,ou=staff,dc=example,dc=com"
    link = await identity_service.resolve_link(
        "alice.smith", new_dn, "alice@example.com"
    )
    assert link.user_id == user.id
    assert link.ldap_username == "alice.smith"
    assert link.ldap_dn == new_dn
    assert await count_rows(engine, SQLUser) == 1
    assert await count_rows(engine, SQLLDAPUser) == 1

    store = LDAPUserStore(factory.session)
    async with factory.session.begin():
        assert await store.get_by_username("alice") is None
        stored = await store.get_by_username("alice.smith")
    assert stored
    assert stored.ldap_dn == new_dn


@pytest.mark.asyncio
async def test_identity_conflict(
    factory: Factory, engine: AsyncEngine
) -> None:
    identity_service = factory.create_identity_service()
    await identity_service.resolve("alice", ALICE_DN, "alice@example.com")
    await identity_service.resolve(
        "bob", "uid=bob,ou=people,dc=example,dc=com", "bob@example.com"
    )

    with pytest.raises(LDAPIdentityConflictError):
        await identity_service.resolve("alice", ALICE_DN, "bob@example.com")

    # A changed email address with no other link is not a conflict.
    user = await identity_service.resolve(
        "alice", ALICE_DN, "alice@new.example.com"
    )
    assert user.email == "alice@example.com"


@pytest.mark.asyncio
async def test_user_race(
    factory: Factory, config: Config, engine: AsyncEngine
) -> None:
    user_store = RacingUserStore(factory.session, engine)
    identity_service = build_service(factory, config, user_store=user_store)

    user = await identity_service.resolve(
        "alice", ALICE_DN, "alice@example.com"
    )
    assert user.username == "rival"
    assert await count_rows(engine, SQLUser) == 1
    assert await count_rows(engine, SQLLDAPUser) == 1


@pytest.mark.asyncio
async def test_link_race(
    factory: Factory, config: Config, engine: AsyncEngine
) -> None:
    link_store = RacingLinkStore(factory.session, engine)
    identity_service = build_service(
        factory, config, ldap_user_store=link_store
    )

    user = await identity_service.resolve(
        "alice", ALICE_DN, "alice@example.com"
    )
    assert user.email == "alice@example.com"
    assert link_store.calls == 1
    assert await count_rows(engine, SQLUser) == 1
    assert await count_rows(engine, SQLLDAPUser) == 1


@pytest.mark.asyncio
async def test_retries_exhausted(
    factory: Factory, config: Config, engine: AsyncEngine
) -> None:
    link_store = ConflictingLinkStore(factory.session)
    identity_service = build_service(
        factory, config, ldap_user_store=link_store
    )

    with pytest.raises(DuplicateLDAPUserError):
        await identity_service.resolve("alice", ALICE_DN, "alice@example.com")
    assert link_store.calls == config.reconcile_retries + 1
    assert await count_rows(engine, SQLUser) == 1
    assert await count_rows(engine, SQLLDAPUser) == 0
