"""Exceptions for ldaplink."""

from __future__ import annotations

from typing import ClassVar

__all__ = [
    "ConfigurationError",
    "ConflictError",
    "DecryptionFailedError",
    "DuplicateEmailError",
    "DuplicateLDAPUserError",
    "EncryptionError",
    "EncryptionKeyInvalidError",
    "EncryptionKeyMissingError",
    "IncompleteExternalConfigError",
    "InvalidUserFilterError",
    "LDAPBindError",
    "LDAPConnectionError",
    "LDAPCredentialsError",
    "LDAPDisabledError",
    "LDAPIdentityConflictError",
    "LDAPInvalidCredentialsError",
    "LDAPLinkError",
    "LDAPMisconfiguredError",
    "LDAPMultipleUsersError",
    "LDAPUnavailableError",
    "LDAPUserEmailRequiredError",
    "LDAPUserNotFoundError",
]


class LDAPLinkError(Exception):
    """Base class for all errors raised while authenticating via LDAP.

    The caller (normally a login route) uses the subclass to decide how to
    respond. The ``error`` code is stable and suitable for returning to
    clients.
    """

    error: ClassVar[str] = "ldap_error"
    """Machine-readable code for this error."""


class EncryptionError(LDAPLinkError):
    """The LDAP bind password could not be encrypted or decrypted.

    These errors indicate a deployment problem and require administrator
    action. They are never caused by user input.
    """

    error = "ldap_encryption_error"


class EncryptionKeyMissingError(EncryptionError):
    """No encryption key for the LDAP bind password was configured."""

    error = "ldap_encryption_key_not_set"

    def __init__(self) -> None:
        super().__init__("LDAP encryption key not configured")


class EncryptionKeyInvalidError(EncryptionError):
    """The encryption key is not 32 bytes of hex-encoded data."""

    error = "ldap_invalid_encryption_key"

    def __init__(self) -> None:
        super().__init__("Invalid LDAP encryption key format")


class DecryptionFailedError(EncryptionError):
    """The stored bind password could not be decrypted.

    Raised if the stored value is malformed or truncated, or if the GCM
    authentication tag does not verify, which means either the data was
    modified or it was encrypted with a different key.
    """

    error = "ldap_decryption_failed"


class ConfigurationError(LDAPLinkError):
    """An LDAP configuration was rejected before being stored."""

    error = "ldap_invalid_config"


class IncompleteExternalConfigError(ConfigurationError):
    """The LDAP server URL is set in the environment but not the rest.

    Parameters
    ----------
    missing
        Names of the missing environment variables.
    """

    error = "ldap_incomplete_config"

    def __init__(self, missing: list[str]) -> None:
        msg = f"Incomplete LDAP environment variables: {', '.join(missing)}"
        super().__init__(msg)
        self.missing = missing


class InvalidUserFilterError(ConfigurationError):
    """The search filter template does not have exactly one ``%s``."""

    error = "ldap_invalid_user_filter"


class LDAPDisabledError(LDAPLinkError):
    """No enabled LDAP configuration exists.

    The caller should fall back to local authentication or reject the
    request.
    """

    error = "ldap_disabled"

    def __init__(self) -> None:
        super().__init__("LDAP authentication is disabled")


class LDAPUnavailableError(LDAPLinkError):
    """The LDAP server could not be used.

    This is either a transient infrastructure problem or bad service
    credentials. It is not retried here, but the caller may retry the whole
    request.
    """

    error = "ldap_unavailable"


class LDAPConnectionError(LDAPUnavailableError):
    """Unable to connect to the LDAP server or the connection failed."""

    error = "ldap_connection_failed"

    def __init__(self) -> None:
        super().__init__("Failed to connect to LDAP server")


class LDAPBindError(LDAPUnavailableError):
    """The bind as the configured service account failed."""

    error = "ldap_bind_failed"

    def __init__(self) -> None:
        super().__init__("LDAP service account bind failed")


class LDAPCredentialsError(LDAPLinkError):
    """The username or password is not valid.

    Subclasses are distinguished only for logging and testing. They all use
    the same message so that the response does not reveal whether the
    account exists.
    """

    error = "ldap_invalid_credentials"

    def __init__(self) -> None:
        super().__init__("Invalid LDAP credentials")


class LDAPUserNotFoundError(LDAPCredentialsError):
    """The search for the user's entry returned no results."""

    error = "ldap_user_not_found"


class LDAPInvalidCredentialsError(LDAPCredentialsError):
    """The bind as the user's entry failed."""


class LDAPMisconfiguredError(LDAPLinkError):
    """The directory data or search filter is misconfigured.

    This is reported distinctly from a credential failure since only an
    administrator can fix it.
    """

    error = "ldap_misconfigured"


class LDAPMultipleUsersError(LDAPMisconfiguredError):
    """The user search matched more than one entry."""

    error = "ldap_multiple_users_found"

    def __init__(self) -> None:
        super().__init__(
            "LDAP search returned multiple users. Please contact"
            " administrator to fix LDAP filter configuration."
        )


class LDAPUserEmailRequiredError(LDAPMisconfiguredError):
    """The user's entry has neither ``mail`` nor ``userPrincipalName``."""

    error = "ldap_user_email_required"

    def __init__(self) -> None:
        super().__init__(
            "LDAP user must have email attribute (mail or"
            " userPrincipalName). Please contact administrator."
        )


class LDAPIdentityConflictError(LDAPMisconfiguredError):
    """The LDAP username and email are linked to different local users.

    Raised when the link found for the LDAP username belongs to a local user
    with a different email address, while a separate link exists for the
    email address reported by LDAP. Picking either one could give the user
    access to someone else's account.
    """

    error = "ldap_identity_conflict"

    def __init__(self, username: str) -> None:
        super().__init__(
            f"LDAP user {username} is linked to a different local account"
            " than its email address. Please contact administrator."
        )


class ConflictError(LDAPLinkError):
    """A uniqueness constraint was violated by a concurrent writer.

    This is an expected outcome when two authentications for the same new
    identity race. It is retried and only surfaces if retries run out.
    """

    error = "ldap_concurrent_conflict"


class DuplicateEmailError(ConflictError):
    """A local user with that email address already exists."""


class DuplicateLDAPUserError(ConflictError):
    """A link for that LDAP username or local user already exists."""
