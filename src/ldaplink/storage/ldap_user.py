"""Storage for links between LDAP identities and local users."""

from __future__ import annotations

from datetime import datetime
from typing import cast

from safir.database import datetime_to_db
from sqlalchemy import CursorResult, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_scoped_session
from sqlalchemy.orm import contains_eager, joinedload

from ..exceptions import DuplicateLDAPUserError
from ..models.ldap import LDAPUser
from ..models.user import LocalUser
from ..schema import LDAPUser as SQLLDAPUser
from ..schema import User as SQLUser
from .base import is_unique_violation

__all__ = ["LDAPUserStore"]


class LDAPUserStore:
    """Stores and retrieves links between LDAP identities and local users.

    Every link returned by a lookup has the linked local user attached.

    Parameters
    ----------
    session
        The database session proxy.
    """

    def __init__(self, session: async_scoped_session) -> None:
        self._session = session

    async def add(self, link: LDAPUser) -> LDAPUser:
        """Create a new link.

        Must be called inside a transaction.

        Parameters
        ----------
        link
            The link to create. Its ``id`` is ignored.

        Returns
        -------
        LDAPUser
            Copy of the link with the new ID set.

        Raises
        ------
        DuplicateLDAPUserError
            Raised if the LDAP username or the local user is already linked.
        """
        new = SQLLDAPUser(
            user_id=link.user_id,
            ldap_username=link.ldap_username,
            ldap_dn=link.ldap_dn,
            last_sync_at=datetime_to_db(link.last_sync_at),
        )
        self._session.add(new)
        try:
            await self._session.flush()
        except IntegrityError as e:
            if is_unique_violation(e):
                msg = f"LDAP user {link.ldap_username} already linked"
                raise DuplicateLDAPUserError(msg) from e
            raise
        return link.model_copy(update={"id": new.id})

    async def exists_by_username(self, username: str) -> bool:
        """Check whether a link exists for an LDAP username.

        Parameters
        ----------
        username
            LDAP username.

        Returns
        -------
        bool
            Whether that username is linked to a local user.
        """
        stmt = select(
            exists().where(SQLLDAPUser.ldap_username == username)
        )
        result = await self._session.scalar(stmt)
        return bool(result)

    async def get_by_email(self, email: str) -> LDAPUser | None:
        """Retrieve the link for the local user with an email address.

        Parameters
        ----------
        email
            Email address of the local user.

        Returns
        -------
        LDAPUser or None
            The link, or `None` if there is no such user or it is not linked.
        """
        stmt = (
            select(SQLLDAPUser)
            .join(SQLLDAPUser.user)
            .where(SQLUser.email == email)
            .options(contains_eager(SQLLDAPUser.user))
        )
        link = await self._session.scalar(stmt)
        return self._to_model(link) if link else None

    async def get_by_user_id(self, user_id: int) -> LDAPUser | None:
        """Retrieve the link for a local user.

        Parameters
        ----------
        user_id
            ID of the local user.

        Returns
        -------
        LDAPUser or None
            The link, or `None` if that user is not linked.
        """
        stmt = (
            select(SQLLDAPUser)
            .where(SQLLDAPUser.user_id == user_id)
            .options(joinedload(SQLLDAPUser.user))
        )
        link = await self._session.scalar(stmt)
        return self._to_model(link) if link else None

    async def get_by_username(self, username: str) -> LDAPUser | None:
        """Retrieve the link for an LDAP username.

        Parameters
        ----------
        username
            LDAP username.

        Returns
        -------
        LDAPUser or None
            The link, or `None` if that username is not linked.
        """
        stmt = (
            select(SQLLDAPUser)
            .where(SQLLDAPUser.ldap_username == username)
            .options(joinedload(SQLLDAPUser.user))
        )
        link = await self._session.scalar(stmt)
        return self._to_model(link) if link else None

    async def update_last_sync(
        self, link_id: int, sync_time: datetime
    ) -> None:
        """Record a successful authentication.

        Parameters
        ----------
        link_id
            ID of the link.
        sync_time
            Time of the authentication.
        """
        stmt = (
            update(SQLLDAPUser)
            .where(SQLLDAPUser.id == link_id)
            .values(last_sync_at=datetime_to_db(sync_time))
        )
        await self._session.execute(stmt)

    async def update_username_and_dn(
        self, link_id: int, username: str, dn: str
    ) -> bool:
        """Change the LDAP username and DN of an existing link.

        Parameters
        ----------
        link_id
            ID of the link.
        username
            New LDAP username.
        dn
            New DN.

        Returns
        -------
        bool
            `True` if the link was found and updated, `False` otherwise.

        Raises
        ------
        DuplicateLDAPUserError
            Raised if the new username is already used by another link.
        """
        stmt = (
            update(SQLLDAPUser)
            .where(SQLLDAPUser.id == link_id)
            .values(ldap_username=username, ldap_dn=dn)
        )
        try:
            # See https://github.com/sqlalchemy/sqlalchemy/issues/9185
            result = cast("CursorResult", await self._session.execute(stmt))
        except IntegrityError as e:
            if is_unique_violation(e):
                msg = f"LDAP user {username} already linked"
                raise DuplicateLDAPUserError(msg) from e
            raise
        return result.rowcount > 0

    def _to_model(self, link: SQLLDAPUser) -> LDAPUser:
        user = LocalUser.model_validate(link.user, from_attributes=True)
        return LDAPUser(
            id=link.id,
            user_id=link.user_id,
            ldap_username=link.ldap_username,
            ldap_dn=link.ldap_dn,
            last_sync_at=link.last_sync_at,
            user=user,
        )
