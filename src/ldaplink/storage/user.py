"""Storage for local users."""

from __future__ import annotations

from safir.database import datetime_to_db
from safir.datetime import current_datetime
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_scoped_session

from ..exceptions import DuplicateEmailError
from ..models.user import LocalUser, NewLocalUser
from ..schema import User as SQLUser
from .base import is_unique_violation

__all__ = ["UserStore"]


class UserStore:
    """Stores and retrieves local users.

    Parameters
    ----------
    session
        The database session proxy.
    """

    def __init__(self, session: async_scoped_session) -> None:
        self._session = session

    async def add(self, user: NewLocalUser) -> LocalUser:
        """Create a new local user.

        Must be called inside a transaction. The new row is flushed so that
        a duplicate email address is detected immediately.

        Parameters
        ----------
        user
            The user to create.

        Returns
        -------
        LocalUser
            The stored user, including its new ID.

        Raises
        ------
        DuplicateEmailError
            Raised if a user with that email address already exists.
        """
        new = SQLUser(
            email=user.email,
            username=user.username,
            password_hash=user.password_hash,
            role=user.role,
            balance=user.balance,
            concurrency=user.concurrency,
            status=user.status,
            created_at=datetime_to_db(current_datetime()),
        )
        self._session.add(new)
        try:
            await self._session.flush()
        except IntegrityError as e:
            if is_unique_violation(e):
                raise DuplicateEmailError(f"User {user.email} exists") from e
            raise
        return LocalUser.model_validate(new, from_attributes=True)

    async def get(self, user_id: int) -> LocalUser | None:
        """Retrieve a user by ID.

        Parameters
        ----------
        user_id
            ID of the user.

        Returns
        -------
        LocalUser or None
            The user, or `None` if no user has that ID.
        """
        user = await self._session.get(SQLUser, user_id)
        if not user:
            return None
        return LocalUser.model_validate(user, from_attributes=True)

    async def get_by_email(self, email: str) -> LocalUser | None:
        """Retrieve a user by email address.

        Parameters
        ----------
        email
            Email address of the user. Matched exactly.

        Returns
        -------
        LocalUser or None
            The user, or `None` if no user has that email address.
        """
        stmt = select(SQLUser).where(SQLUser.email == email)
        user = await self._session.scalar(stmt)
        if not user:
            return None
        return LocalUser.model_validate(user, from_attributes=True)
