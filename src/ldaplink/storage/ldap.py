"""LDAP storage layer for ldaplink."""

from __future__ import annotations

import asyncio
import socket
import ssl
from typing import Any

from ldap3 import (
    AUTO_BIND_NONE,
    NONE,
    SUBTREE,
    Connection,
    Server,
    Tls,
)
from ldap3.core.exceptions import LDAPCommunicationError, LDAPException
from ldap3.core.results import RESULT_SUCCESS
from ldap3.utils.conv import escape_filter_chars
from structlog.stdlib import BoundLogger

from ..constants import (
    LDAP_CONNECT_TIMEOUT,
    LDAP_RECEIVE_TIMEOUT,
    LDAP_SEARCH_ATTRIBUTES,
    LDAP_SEARCH_TIME_LIMIT,
    USER_FILTER_PLACEHOLDER,
)
from ..exceptions import (
    LDAPBindError,
    LDAPConnectionError,
    LDAPInvalidCredentialsError,
    LDAPMultipleUsersError,
    LDAPUserEmailRequiredError,
    LDAPUserNotFoundError,
)
from ..models.ldap import LDAPConfig, LDAPIdentity
from ..util import mask_dn, mask_server_url

__all__ = ["LDAPStorage", "build_search_filter"]


def build_search_filter(template: str, username: str) -> str:
    """Substitute a username into a search filter template.

    Parameters
    ----------
    template
        Filter template containing ``%s``, such as ``(uid=%s)``.
    username
        Username as provided by the user.

    Returns
    -------
    str
        Search filter with the username escaped per :rfc:`4515`, so that
        characters such as ``*`` and ``(`` cannot change the search.
    """
    escaped = escape_filter_chars(username)
    return template.replace(USER_FILTER_PLACEHOLDER, escaped)


def _is_ldaps(url: str) -> bool:
    return url.lower().startswith("ldaps://")


class LDAPStorage:
    """Verify a password against LDAP.

    Each call uses a new connection that is closed before the call returns.
    ldap3 is synchronous, so the protocol exchange runs in a worker thread.

    Parameters
    ----------
    logger
        Logger for debug messages and errors.
    """

    def __init__(self, logger: BoundLogger) -> None:
        self._logger = logger

    async def authenticate(
        self,
        config: LDAPConfig,
        bind_password: str,
        username: str,
        password: str,
    ) -> LDAPIdentity:
        """Find a user in LDAP and verify their password.

        Binds as the service account, searches for the user's entry, and
        then rebinds as that entry with the provided password.

        Parameters
        ----------
        config
            Active LDAP configuration.
        bind_password
            Decrypted password of the service account.
        username
            Username as provided by the user.
        password
            Password as provided by the user.

        Returns
        -------
        LDAPIdentity
            The verified identity.

        Raises
        ------
        LDAPBindError
            Raised if the service account bind failed.
        LDAPConnectionError
            Raised if the LDAP server could not be reached or the connection
            failed.
        LDAPInvalidCredentialsError
            Raised if the password is empty or the bind as the user failed.
        LDAPMultipleUsersError
            Raised if the search matched more than one entry.
        LDAPUserEmailRequiredError
            Raised if the entry has no email address.
        LDAPUserNotFoundError
            Raised if the search matched no entries or failed.
        """
        logger = self._logger.bind(
            ldap_url=mask_server_url(config.server_url), user=username
        )
        if not password:
            logger.info("Rejecting LDAP login with empty password")
            raise LDAPInvalidCredentialsError
        conn = self._build_connection(config, bind_password)
        try:
            return await asyncio.to_thread(
                self._authenticate, conn, config, username, password, logger
            )
        except asyncio.CancelledError:
            self._abort(conn, logger)
            raise

    def _abort(self, conn: Connection, logger: BoundLogger) -> None:
        """Shut down the socket so that the worker thread stops waiting."""
        sock = conn.socket
        if not sock:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Cannot shut down LDAP socket", error=str(e))

    def _authenticate(
        self,
        conn: Connection,
        config: LDAPConfig,
        username: str,
        password: str,
        logger: BoundLogger,
    ) -> LDAPIdentity:
        try:
            self._open(conn, config, logger)
            self._bind(conn, config, logger)
            dn, email = self._search(conn, config, username, logger)
            self._verify(conn, dn, password, logger)
        finally:
            self._close(conn, logger)
        logger.debug("LDAP authentication succeeded", ldap_dn=mask_dn(dn))
        return LDAPIdentity(username=username, dn=dn, email=email)

    def _bind(
        self, conn: Connection, config: LDAPConfig, logger: BoundLogger
    ) -> None:
        """Bind as the service account."""
        try:
            bound = conn.bind()
        except LDAPCommunicationError as e:
            logger.warning("LDAP connection failed", error=type(e).__name__)
            raise LDAPConnectionError from e
        except LDAPException as e:
            logger.debug("LDAP service bind error", error=type(e).__name__)
            bound = False
        if not bound:
            logger.warning(
                "LDAP service bind failed",
                bind_dn=mask_dn(config.bind_dn),
                result=self._describe_result(conn),
            )
            raise LDAPBindError

    def _build_connection(
        self, config: LDAPConfig, bind_password: str
    ) -> Connection:
        """Create the connection without opening it."""
        use_ssl = _is_ldaps(config.server_url)
        tls = None
        if use_ssl or config.tls_enabled:
            if config.tls_skip_verify:
                tls = Tls(validate=ssl.CERT_NONE)
            else:
                tls = Tls(validate=ssl.CERT_REQUIRED)
        server = Server(
            config.server_url,
            use_ssl=use_ssl,
            tls=tls,
            get_info=NONE,
            connect_timeout=LDAP_CONNECT_TIMEOUT,
        )
        return Connection(
            server,
            user=config.bind_dn,
            password=bind_password,
            auto_bind=AUTO_BIND_NONE,
            read_only=True,
            raise_exceptions=False,
            receive_timeout=LDAP_RECEIVE_TIMEOUT,
        )

    def _close(self, conn: Connection, logger: BoundLogger) -> None:
        try:
            conn.unbind()
        except (LDAPException, OSError) as e:
            logger.warning(
                "Failed to close LDAP connection", error=type(e).__name__
            )

    def _describe_result(self, conn: Connection) -> str | None:
        result = conn.result
        if isinstance(result, dict):
            return result.get("description")
        return None

    def _first_value(self, value: Any) -> str | None:
        """Get the first non-empty value of an attribute.

        Without schema information, ldap3 may return either a list or a
        single value.
        """
        if isinstance(value, list | tuple):
            for item in value:
                if item:
                    return str(item)
            return None
        return str(value) if value else None

    def _open(
        self, conn: Connection, config: LDAPConfig, logger: BoundLogger
    ) -> None:
        """Connect to the server, negotiating StartTLS if configured."""
        start_tls = config.tls_enabled and not _is_ldaps(config.server_url)
        try:
            conn.open()
            if start_tls and not conn.start_tls():
                logger.warning(
                    "LDAP StartTLS failed",
                    result=self._describe_result(conn),
                )
                raise LDAPConnectionError
        except LDAPException as e:
            logger.warning("LDAP connection failed", error=type(e).__name__)
            raise LDAPConnectionError from e

    def _search(
        self,
        conn: Connection,
        config: LDAPConfig,
        username: str,
        logger: BoundLogger,
    ) -> tuple[str, str]:
        """Search for the user's entry.

        Returns
        -------
        tuple of str, str
            DN and email address of the entry.
        """
        search = build_search_filter(config.user_filter, username)
        logger = logger.bind(ldap_base=mask_dn(config.base_dn))
        try:
            conn.search(
                search_base=config.base_dn,
                search_filter=search,
                search_scope=SUBTREE,
                attributes=LDAP_SEARCH_ATTRIBUTES,
                time_limit=LDAP_SEARCH_TIME_LIMIT,
            )
        except LDAPCommunicationError as e:
            logger.warning("LDAP connection failed", error=type(e).__name__)
            raise LDAPConnectionError from e
        except LDAPException as e:
            logger.error("LDAP search failed", error=type(e).__name__)
            raise LDAPUserNotFoundError from e
        result = conn.result
        if isinstance(result, dict) and result.get("result") != RESULT_SUCCESS:
            logger.error(
                "LDAP search failed", result=self._describe_result(conn)
            )
            raise LDAPUserNotFoundError

        entries = [
            e
            for e in conn.response or []
            if e.get("type") == "searchResEntry"
        ]
        if not entries:
            logger.info("LDAP user not found")
            raise LDAPUserNotFoundError
        if len(entries) > 1:
            logger.error(
                "LDAP search matched multiple users", count=len(entries)
            )
            raise LDAPMultipleUsersError

        entry = entries[0]
        dn = entry["dn"]
        attributes = entry.get("attributes") or {}
        email = self._first_value(attributes.get("mail"))
        if not email:
            email = self._first_value(attributes.get("userPrincipalName"))
        if not email:
            logger.error(
                "LDAP user has no email address", ldap_dn=mask_dn(dn)
            )
            raise LDAPUserEmailRequiredError
        return dn, email

    def _verify(
        self, conn: Connection, dn: str, password: str, logger: BoundLogger
    ) -> None:
        """Verify the password by rebinding as the user's entry."""
        try:
            bound = conn.rebind(user=dn, password=password)
        except LDAPCommunicationError as e:
            logger.warning("LDAP connection failed", error=type(e).__name__)
            raise LDAPConnectionError from e
        except LDAPException as e:
            # ldap3 reports a dropped connection during rebind as a bind error.
            dropped = isinstance(e.__context__, LDAPCommunicationError)
            if dropped or conn.closed:
                logger.warning(
                    "LDAP connection failed", error=type(e).__name__
                )
                raise LDAPConnectionError from e
            logger.info(
                "LDAP user bind failed",
                ldap_dn=mask_dn(dn),
                error=type(e).__name__,
            )
            raise LDAPInvalidCredentialsError from e
        if not bound:
            logger.info("LDAP user bind failed", ldap_dn=mask_dn(dn))
            raise LDAPInvalidCredentialsError
