"""Create ldaplink components."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from typing import Self

import structlog
from safir.database import create_async_session
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, async_scoped_session
from structlog.stdlib import BoundLogger

from .config import Config
from .crypto import CredentialCipher
from .schema import LDAPConfig as SQLLDAPConfig
from .services.identity import IdentityService
from .services.ldap import LDAPService
from .services.ldap_config import LDAPConfigService
from .storage.ldap import LDAPStorage
from .storage.ldap_config import LDAPConfigStore
from .storage.ldap_user import LDAPUserStore
from .storage.user import UserStore

__all__ = ["Factory", "ProcessContext"]


@dataclass(frozen=True, slots=True)
class ProcessContext:
    """Per-process application context.

    This object caches all of the per-process singletons that can be reused
    for every authentication and only need to be recreated if the
    configuration changes. This does not include the database session.
    """

    config: Config
    """ldaplink's configuration."""

    cipher: CredentialCipher
    """Cipher for the LDAP service bind password."""

    @classmethod
    def from_config(cls, config: Config) -> Self:
        """Create a new process context from the ldaplink configuration.

        Parameters
        ----------
        config
            The ldaplink configuration.

        Returns
        -------
        ProcessContext
            Shared context for an ldaplink process.
        """
        key = None
        if config.encryption_key:
            key = config.encryption_key.get_secret_value()
        return cls(config=config, cipher=CredentialCipher(key))


class Factory:
    """Build ldaplink components.

    Uses the contents of a `ProcessContext` to construct the components of
    the application on demand.

    Parameters
    ----------
    context
        Shared process context.
    session
        Database session.
    logger
        Logger to use for errors.
    """

    @classmethod
    async def create(
        cls, config: Config, engine: AsyncEngine, *, check_db: bool = False
    ) -> Self:
        """Create a component factory.

        If an async context manager can be used, call `standalone` rather
        than this method.

        Parameters
        ----------
        config
            ldaplink configuration.
        engine
            Database engine to use for connections.
        check_db
            If set to `True`, check database connectivity before returning by
            doing a simple query.

        Returns
        -------
        Factory
            Newly-created factory. The caller must call `aclose` on the
            returned object during shutdown.
        """
        logger = structlog.get_logger("ldaplink")
        statement = select(SQLLDAPConfig.id) if check_db else None
        session = await create_async_session(engine, statement=statement)
        context = ProcessContext.from_config(config)
        return cls(context, session, logger)

    @classmethod
    @asynccontextmanager
    async def standalone(
        cls, config: Config, engine: AsyncEngine, *, check_db: bool = False
    ) -> AsyncIterator[Self]:
        """Async context manager for ldaplink components.

        Parameters
        ----------
        config
            ldaplink configuration.
        engine
            Database engine to use for connections.
        check_db
            If set to `True`, check database connectivity before returning by
            doing a simple query.

        Yields
        ------
        Factory
            The factory. Must be used as an async context manager.

        Examples
        --------
        .. code-block:: python

           async with Factory.standalone(config, engine) as factory:
               ldap_service = factory.create_ldap_service()
               user = await ldap_service.authenticate(username, password)
        """
        factory = await cls.create(config, engine, check_db=check_db)
        async with aclosing(factory):
            yield factory

    def __init__(
        self,
        context: ProcessContext,
        session: async_scoped_session,
        logger: BoundLogger,
    ) -> None:
        self.session = session
        self._context = context
        self._logger = logger

    async def aclose(self) -> None:
        """Shut down the factory.

        After this method is called, the factory object is no longer valid
        and must not be used.
        """
        await self.session.remove()

    def create_identity_service(self) -> IdentityService:
        """Create the service that links LDAP users to local users.

        Returns
        -------
        IdentityService
            Newly-created identity service.
        """
        config = self._context.config
        return IdentityService(
            user_store=UserStore(self.session),
            ldap_user_store=LDAPUserStore(self.session),
            user_defaults=config.user_defaults,
            max_retries=config.reconcile_retries,
            session=self.session,
            logger=self._logger,
        )

    def create_ldap_config_service(self) -> LDAPConfigService:
        """Create the service that manages the LDAP configuration.

        Returns
        -------
        LDAPConfigService
            Newly-created LDAP configuration service.
        """
        return LDAPConfigService(
            config_store=LDAPConfigStore(self.session),
            cipher=self._context.cipher,
            session=self.session,
            logger=self._logger,
        )

    def create_ldap_service(self) -> LDAPService:
        """Create the LDAP authentication service.

        Returns
        -------
        LDAPService
            Newly-created LDAP authentication service.
        """
        return LDAPService(
            config_store=LDAPConfigStore(self.session),
            cipher=self._context.cipher,
            ldap=self.create_ldap_storage(),
            identity_service=self.create_identity_service(),
            session=self.session,
            logger=self._logger,
        )

    def create_ldap_storage(self) -> LDAPStorage:
        """Create the LDAP protocol layer.

        Returns
        -------
        LDAPStorage
            Newly-created LDAP storage.
        """
        return LDAPStorage(self._logger)
