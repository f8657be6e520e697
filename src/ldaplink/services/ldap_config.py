"""Management of the stored LDAP configuration."""

from __future__ import annotations

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import async_scoped_session
from structlog.stdlib import BoundLogger

from ..config import LDAPEnvironment
from ..constants import USER_FILTER_PLACEHOLDER
from ..crypto import CredentialCipher
from ..exceptions import (
    ConfigurationError,
    IncompleteExternalConfigError,
    InvalidUserFilterError,
)
from ..models.enums import LDAPConfigSource
from ..models.ldap import LDAPConfig, LDAPConfigUpdate
from ..storage.ldap_config import LDAPConfigStore
from ..util import mask_server_url

__all__ = ["LDAPConfigService", "validate_user_filter"]


def validate_user_filter(user_filter: str) -> None:
    """Check that a search filter template has one username placeholder.

    Parameters
    ----------
    user_filter
        Filter template, such as ``(uid=%s)``.

    Raises
    ------
    InvalidUserFilterError
        Raised if the template does not contain exactly one ``%s``.
    """
    count = user_filter.count(USER_FILTER_PLACEHOLDER)
    if count != 1:
        msg = (
            f"LDAP user filter {user_filter} must contain exactly one"
            f" {USER_FILTER_PLACEHOLDER} (found {count})"
        )
        raise InvalidUserFilterError(msg)


class LDAPConfigService:
    """Load, update, and retrieve the LDAP configuration.

    Parameters
    ----------
    config_store
        Storage for the LDAP configuration.
    cipher
        Cipher used to encrypt the service bind password.
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
        session: async_scoped_session,
        logger: BoundLogger,
    ) -> None:
        self._config_store = config_store
        self._cipher = cipher
        self._session = session
        self._logger = logger

    async def get_config(self) -> LDAPConfig | None:
        """Retrieve the stored configuration.

        Returns
        -------
        LDAPConfig or None
            The configuration whether or not it is enabled, or `None` if LDAP
            has never been configured.
        """
        async with self._session.begin():
            return await self._config_store.get()

    async def is_enabled(self) -> bool:
        """Determine whether LDAP login is enabled.

        Returns
        -------
        bool
            Whether an enabled configuration exists.
        """
        async with self._session.begin():
            return await self._config_store.get_active() is not None

    async def load_from_external_source(
        self, env: LDAPEnvironment | None = None
    ) -> LDAPConfig | None:
        """Store the LDAP configuration from environment variables.

        Does nothing if ``LDAP_SERVER_URL`` is not set. Otherwise, overwrites
        any stored configuration.

        Parameters
        ----------
        env
            LDAP settings. If not given, they are read from the environment.

        Returns
        -------
        LDAPConfig or None
            The stored configuration, or `None` if ``LDAP_SERVER_URL`` is not
            set.

        Raises
        ------
        ConfigurationError
            Raised if an environment variable has an invalid value, such as
            a boolean setting that is not a recognized boolean.
        EncryptionError
            Raised if the encryption key is missing or invalid.
        IncompleteExternalConfigError
            Raised if ``LDAP_SERVER_URL`` is set but some other required
            variable is not.
        InvalidUserFilterError
            Raised if the search filter template is invalid.
        """
        if env is None:
            try:
                env = LDAPEnvironment()
            except ValidationError as e:
                names = sorted(
                    f"LDAP_{str(err['loc'][0]).upper()}" for err in e.errors()
                )
                msg = f"Invalid LDAP environment variables: {', '.join(names)}"
                raise ConfigurationError(msg) from e
        if not env.server_url:
            self._logger.debug("No LDAP configuration in environment")
            return None
        if not env.bind_dn or not env.bind_password or not env.base_dn:
            raise IncompleteExternalConfigError(env.missing)
        validate_user_filter(env.user_filter)

        encrypted = self._cipher.encrypt(env.bind_password.get_secret_value())
        config = LDAPConfig(
            server_url=env.server_url,
            bind_dn=env.bind_dn,
            bind_password_encrypted=encrypted,
            base_dn=env.base_dn,
            user_filter=env.user_filter,
            enabled=env.enabled,
            tls_enabled=env.tls_enabled,
            tls_skip_verify=env.tls_skip_verify,
            config_source=LDAPConfigSource.env,
        )
        async with self._session.begin():
            stored = await self._config_store.upsert(config)
        self._logger.info(
            "Loaded LDAP configuration from environment",
            ldap_url=mask_server_url(stored.server_url),
            enabled=stored.enabled,
        )
        return stored

    async def update_config(self, update: LDAPConfigUpdate) -> LDAPConfig:
        """Change the LDAP configuration.

        Parameters
        ----------
        update
            New configuration. If the bind password is omitted, the stored
            password is kept.

        Returns
        -------
        LDAPConfig
            The stored configuration.

        Raises
        ------
        ConfigurationError
            Raised if the bind password is omitted and no configuration is
            stored yet.
        EncryptionError
            Raised if the encryption key is missing or invalid.
        InvalidUserFilterError
            Raised if the search filter template is invalid.
        """
        validate_user_filter(update.user_filter)
        encrypted = None
        if update.bind_password:
            encrypted = self._cipher.encrypt(update.bind_password)

        async with self._session.begin():
            existing = await self._config_store.get()
            if not encrypted:
                if not existing:
                    msg = "LDAP bind password is required"
                    raise ConfigurationError(msg)
                encrypted = existing.bind_password_encrypted
            config = LDAPConfig(
                server_url=update.server_url,
                bind_dn=update.bind_dn,
                bind_password_encrypted=encrypted,
                base_dn=update.base_dn,
                user_filter=update.user_filter,
                enabled=update.enabled,
                tls_enabled=update.tls_enabled,
                tls_skip_verify=update.tls_skip_verify,
                config_source=LDAPConfigSource.database,
            )
            stored = await self._config_store.upsert(config)

        self._logger.info(
            "Updated LDAP configuration",
            ldap_url=mask_server_url(stored.server_url),
            enabled=stored.enabled,
        )
        return stored
