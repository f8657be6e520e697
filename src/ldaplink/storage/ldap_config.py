"""Storage for the LDAP configuration."""

from __future__ import annotations

from typing import Any

from safir.database import datetime_to_db
from safir.datetime import current_datetime
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_scoped_session

from ..exceptions import ConfigurationError
from ..models.ldap import LDAPConfig
from ..schema import LDAPConfig as SQLLDAPConfig
from .base import is_unique_violation

__all__ = ["LDAPConfigStore"]


class LDAPConfigStore:
    """Stores and retrieves the LDAP configuration.

    Normally there is only one row. The database allows more, but at most
    one of them may be enabled.

    Parameters
    ----------
    session
        The database session proxy.
    """

    def __init__(self, session: async_scoped_session) -> None:
        self._session = session

    async def add(self, config: LDAPConfig) -> LDAPConfig:
        """Store a new LDAP configuration.

        Parameters
        ----------
        config
            The configuration to store. Its ``id`` and timestamps are
            ignored.

        Returns
        -------
        LDAPConfig
            The stored configuration.

        Raises
        ------
        ConfigurationError
            Raised if the new configuration is enabled and another enabled
            configuration already exists.
        """
        now = datetime_to_db(current_datetime())
        new = SQLLDAPConfig(
            **self._columns(config), created_at=now, updated_at=now
        )
        self._session.add(new)
        await self._flush()
        return LDAPConfig.model_validate(new, from_attributes=True)

    async def exists(self) -> bool:
        """Check whether any LDAP configuration is stored.

        Returns
        -------
        bool
            Whether a configuration exists, enabled or not.
        """
        stmt = select(SQLLDAPConfig.id).limit(1)
        return await self._session.scalar(stmt) is not None

    async def get(self) -> LDAPConfig | None:
        """Retrieve the stored configuration, whether or not it is enabled.

        Returns
        -------
        LDAPConfig or None
            The oldest stored configuration, or `None` if there is none.
        """
        stmt = select(SQLLDAPConfig).order_by(SQLLDAPConfig.id).limit(1)
        config = await self._session.scalar(stmt)
        if not config:
            return None
        return LDAPConfig.model_validate(config, from_attributes=True)

    async def get_active(self) -> LDAPConfig | None:
        """Retrieve the enabled configuration.

        Returns
        -------
        LDAPConfig or None
            The enabled configuration, or `None` if LDAP is disabled.
        """
        stmt = select(SQLLDAPConfig).where(SQLLDAPConfig.enabled.is_(True))
        config = await self._session.scalar(stmt)
        if not config:
            return None
        return LDAPConfig.model_validate(config, from_attributes=True)

    async def update(self, config: LDAPConfig) -> LDAPConfig | None:
        """Overwrite an existing configuration.

        Parameters
        ----------
        config
            New contents of the configuration. Its ``id`` selects the row to
            overwrite.

        Returns
        -------
        LDAPConfig or None
            The updated configuration, or `None` if no configuration with
            that ID exists.

        Raises
        ------
        ConfigurationError
            Raised if this would enable a second configuration.
        """
        if config.id is None:
            return None
        stored = await self._session.get(SQLLDAPConfig, config.id)
        if not stored:
            return None
        for key, value in self._columns(config).items():
            setattr(stored, key, value)
        stored.updated_at = datetime_to_db(current_datetime())
        await self._flush()
        return LDAPConfig.model_validate(stored, from_attributes=True)

    async def upsert(self, config: LDAPConfig) -> LDAPConfig:
        """Store the configuration, overwriting any existing one.

        The existing row keeps its ID and creation time.

        Parameters
        ----------
        config
            The configuration to store. Its ``id`` is ignored.

        Returns
        -------
        LDAPConfig
            The stored configuration.

        Raises
        ------
        ConfigurationError
            Raised if this would enable a second configuration.
        """
        existing = await self.get()
        if existing:
            config = config.model_copy(update={"id": existing.id})
            updated = await self.update(config)
            if updated:
                return updated
        return await self.add(config)

    def _columns(self, config: LDAPConfig) -> dict[str, Any]:
        return config.model_dump(
            exclude={"id", "created_at", "updated_at"}
        )

    async def _flush(self) -> None:
        try:
            await self._session.flush()
        except IntegrityError as e:
            if is_unique_violation(e):
                msg = "Another LDAP configuration is already enabled"
                raise ConfigurationError(msg) from e
            raise
