"""Authentication of users against LDAP."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import async_scoped_session
from structlog.stdlib import BoundLogger

from ..crypto import CredentialCipher
from ..exceptions import LDAPDisabledError
from ..models.user import LocalUser
from ..storage.ldap import LDAPStorage
from ..storage.ldap_config import LDAPConfigStore
from ..util import mask_server_url
from .identity import IdentityService

__all__ = ["LDAPService"]


class LDAPService:
    """Authenticate users with their LDAP password.

    This is the entry point used by login handlers. On success, the caller
    gets the linked local user and decides what session or token to issue.

    Parameters
    ----------
    config_store
        Storage for the LDAP configuration.
    cipher
        Cipher used to decrypt the service bind password.
    ldap
        The underlying LDAP protocol layer.
    identity_service
        Service that links LDAP identities to local users.
    session
        Database session.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        config_store: LDAPConfigStore,
        cipher: CredentialCipher,
        ldap: LDAPStorage,
        identity_service: IdentityService,
        session: async_scoped_session,
        logger: BoundLogger,
    ) -> None:
        self._config_store = config_store
        self._cipher = cipher
        self._ldap = ldap
        self._identity_service = identity_service
        self._session = session
        self._logger = logger

    async def authenticate(self, username: str, password: str) -> LocalUser:
        """Authenticate a user with their LDAP username and password.

        Parameters
        ----------
        username
            Username as entered by the user.
        password
            Password as entered by the user.

        Returns
        -------
        LocalUser
            The local user linked to that LDAP identity, created if needed.
            The caller should check `LocalUser.is_active` before starting a
            session.

        Raises
        ------
        LDAPLinkError
            Raised on any failure. The subclass indicates the kind of failure
            (see `ldaplink.exceptions`).
        """
        async with self._session.begin():
            config = await self._config_store.get_active()
        if not config:
            raise LDAPDisabledError
        logger = self._logger.bind(
            ldap_url=mask_server_url(config.server_url), user=username
        )

        bind_password = self._cipher.decrypt(config.bind_password_encrypted)
        identity = await self._ldap.authenticate(
            config, bind_password, username, password
        )
        link = await self._identity_service.resolve_link(
            identity.username, identity.dn, identity.email
        )
        link = await self._identity_service.record_sync(link, identity)
        if not link.user:
            raise RuntimeError(f"Link for {username} has no local user")
        logger.info("Authenticated with LDAP", user_id=link.user_id)
        return link.user
