"""Reconciliation of LDAP identities with local users."""

from __future__ import annotations

import asyncio
import secrets

from argon2 import PasswordHasher
from safir.datetime import current_datetime
from sqlalchemy.ext.asyncio import async_scoped_session
from structlog.stdlib import BoundLogger

from ..config import UserDefaults
from ..exceptions import (
    DuplicateEmailError,
    LDAPIdentityConflictError,
    LDAPUserEmailRequiredError,
)
from ..models.enums import UserRole, UserStatus
from ..models.ldap import LDAPIdentity, LDAPUser
from ..models.user import LocalUser, NewLocalUser
from ..retry import with_retry
from ..storage.ldap_user import LDAPUserStore
from ..storage.user import UserStore
from ..util import mask_dn

__all__ = ["IdentityService"]


class IdentityService:
    """Find or create the local user for an LDAP identity.

    Each LDAP username is linked to exactly one local user, and each local
    user to at most one LDAP username. The local user is matched by email
    address the first time an LDAP user logs in, and created if there is no
    match.

    Two logins for the same new LDAP user may race to create the same local
    user or link. The loser sees a uniqueness conflict and resolution is
    retried, at which point it finds the rows the winner created.

    Parameters
    ----------
    user_store
        Storage for local users.
    ldap_user_store
        Storage for links between LDAP identities and local users.
    user_defaults
        Settings for newly created local users.
    max_retries
        Maximum number of retries after a uniqueness conflict.
    session
        Database session.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        user_store: UserStore,
        ldap_user_store: LDAPUserStore,
        user_defaults: UserDefaults,
        max_retries: int,
        session: async_scoped_session,
        logger: BoundLogger,
    ) -> None:
        self._user_store = user_store
        self._ldap_user_store = ldap_user_store
        self._user_defaults = user_defaults
        self._max_retries = max_retries
        self._session = session
        self._logger = logger
        self._hasher = PasswordHasher()

    async def record_sync(
        self, link: LDAPUser, identity: LDAPIdentity
    ) -> LDAPUser:
        """Record a successful LDAP login for a link.

        Parameters
        ----------
        link
            Link returned by `resolve_link` for that identity.
        identity
            The verified LDAP identity.

        Returns
        -------
        LDAPUser
            Copy of the link with the sync time and DN updated.
        """
        if link.id is None:
            raise ValueError("Link has not been stored")
        now = current_datetime()
        update: dict[str, object] = {"last_sync_at": now}
        async with self._session.begin():
            if identity.dn != link.ldap_dn:
                await self._ldap_user_store.update_username_and_dn(
                    link.id, link.ldap_username, identity.dn
                )
                update["ldap_dn"] = identity.dn
                self._logger.info(
                    "Updated LDAP DN",
                    user=link.ldap_username,
                    old_dn=mask_dn(link.ldap_dn),
                    new_dn=mask_dn(identity.dn),
                )
            await self._ldap_user_store.update_last_sync(link.id, now)
        return link.model_copy(update=update)

    async def resolve(self, username: str, dn: str, email: str) -> LocalUser:
        """Find or create the local user for an LDAP identity.

        Parameters
        ----------
        username
            LDAP username.
        dn
            DN of the user's LDAP entry.
        email
            Email address from LDAP.

        Returns
        -------
        LocalUser
            The linked local user.

        Raises
        ------
        ConflictError
            Raised if every attempt lost a race with a concurrent writer.
        LDAPIdentityConflictError
            Raised if the LDAP username and the email address are linked to
            different local users.
        LDAPUserEmailRequiredError
            Raised if the email address is empty.
        """
        link = await self.resolve_link(username, dn, email)
        if not link.user:
            raise RuntimeError(f"Link for {username} has no local user")
        return link.user

    async def resolve_link(
        self, username: str, dn: str, email: str
    ) -> LDAPUser:
        """Find or create the link and local user for an LDAP identity.

        Parameters
        ----------
        username
            LDAP username.
        dn
            DN of the user's LDAP entry.
        email
            Email address from LDAP.

        Returns
        -------
        LDAPUser
            The link, with the local user attached.

        Raises
        ------
        ConflictError
            Raised if every attempt lost a race with a concurrent writer.
        LDAPIdentityConflictError
            Raised if the LDAP username and the email address are linked to
            different local users.
        LDAPUserEmailRequiredError
            Raised if the email address is empty.
        """
        if not email:
            raise LDAPUserEmailRequiredError
        logger = self._logger.bind(user=username)
        return await with_retry(
            self._max_retries,
            lambda: self._resolve_once(username, dn, email, logger),
            logger=logger,
        )

    async def _create_user(
        self, username: str, email: str, logger: BoundLogger
    ) -> LocalUser:
        """Create a local user for a new LDAP user.

        The local password is a random string that is hashed and discarded,
        so the account cannot be used for local password login.

        If another login created the user first, returns that user instead.
        """
        password = secrets.token_hex(32)
        password_hash = await asyncio.to_thread(self._hasher.hash, password)
        new_user = NewLocalUser(
            email=email,
            username=username,
            password_hash=password_hash,
            role=UserRole.user,
            balance=self._user_defaults.balance,
            concurrency=self._user_defaults.concurrency,
            status=UserStatus.active,
        )
        try:
            async with self._session.begin():
                user = await self._user_store.add(new_user)
        except DuplicateEmailError:
            async with self._session.begin():
                existing = await self._user_store.get_by_email(email)
            if not existing:
                raise
            logger.debug(
                "Local user created concurrently", user_id=existing.id
            )
            return existing
        logger.info("Created local user for LDAP user", user_id=user.id)
        return user

    async def _resolve_once(
        self, username: str, dn: str, email: str, logger: BoundLogger
    ) -> LDAPUser:
        async with self._session.begin():
            link = await self._ldap_user_store.get_by_username(username)
            if link:
                if link.user and link.user.email != email:
                    other = await self._ldap_user_store.get_by_email(email)
                    if other and other.id != link.id:
                        logger.error(
                            "LDAP username and email linked to different"
                            " local users",
                            user_id=link.user_id,
                            other_user_id=other.user_id,
                        )
                        raise LDAPIdentityConflictError(username)
                return link

            # The email address is already linked, so the username or DN
            # changed in LDAP.
            link = await self._ldap_user_store.get_by_email(email)
            if link and link.id is not None:
                await self._ldap_user_store.update_username_and_dn(
                    link.id, username, dn
                )
                logger.info(
                    "LDAP identity changed, updated link",
                    user_id=link.user_id,
                    old_username=link.ldap_username,
                    old_dn=mask_dn(link.ldap_dn),
                    new_dn=mask_dn(dn),
                )
                update = {"ldap_username": username, "ldap_dn": dn}
                return link.model_copy(update=update)

            user = await self._user_store.get_by_email(email)

        if not user:
            user = await self._create_user(username, email, logger)
        link = LDAPUser(
            user_id=user.id,
            ldap_username=username,
            ldap_dn=dn,
            last_sync_at=current_datetime(),
            user=user,
        )
        async with self._session.begin():
            link = await self._ldap_user_store.add(link)
        logger.info("Linked LDAP user to local user", user_id=user.id)
        return link
