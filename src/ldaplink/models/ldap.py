"""Data models for LDAP."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field
from safir.pydantic import UtcDatetime

from ..constants import DEFAULT_USER_FILTER
from .enums import LDAPConfigSource
from .user import LocalUser

__all__ = [
    "LDAPConfig",
    "LDAPConfigUpdate",
    "LDAPIdentity",
    "LDAPUser",
]


class LDAPConfig(BaseModel):
    """Configuration for reaching and searching the LDAP server.

    At most one stored configuration is enabled at a time, and only the
    enabled one is used for authentication.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int | None = Field(
        None,
        title="Configuration ID",
        description="Database ID, or `None` if not yet stored",
    )

    server_url: str = Field(
        ...,
        title="LDAP server URL",
        examples=["ldaps://ldap.example.com:636"],
        min_length=1,
        max_length=255,
    )

    bind_dn: str = Field(
        ...,
        title="Service bind DN",
        description="DN of the service account used to search for users",
        examples=["cn=service,ou=accounts,dc=example,dc=com"],
        min_length=1,
        max_length=255,
    )

    bind_password_encrypted: str = Field(
        ...,
        title="Encrypted service bind password",
        description="AES-256-GCM encrypted password, base64-encoded",
        min_length=1,
        repr=False,
    )

    base_dn: str = Field(
        ...,
        title="Search base DN",
        examples=["ou=people,dc=example,dc=com"],
        min_length=1,
        max_length=255,
    )

    user_filter: str = Field(
        DEFAULT_USER_FILTER,
        title="User search filter",
        description="Filter template with one ``%s`` for the username",
        examples=["(uid=%s)", "(sAMAccountName=%s)"],
        max_length=255,
    )

    enabled: bool = Field(False, title="Whether LDAP login is enabled")

    tls_enabled: bool = Field(
        False,
        title="Whether to use TLS",
        description=(
            "Use StartTLS for ``ldap`` URLs. ``ldaps`` URLs always use TLS."
        ),
    )

    tls_skip_verify: bool = Field(
        False, title="Whether to skip TLS certificate verification"
    )

    config_source: LDAPConfigSource = Field(
        LDAPConfigSource.database, title="Source of the configuration"
    )

    created_at: UtcDatetime | None = Field(None, title="Creation time")

    updated_at: UtcDatetime | None = Field(None, title="Last update time")


class LDAPConfigUpdate(BaseModel):
    """Administrative change to the LDAP configuration.

    Unlike `LDAPConfig`, this holds the plaintext bind password, which will
    be encrypted before it is stored.
    """

    server_url: str = Field(..., title="LDAP server URL", min_length=1)

    bind_dn: str = Field(..., title="Service bind DN", min_length=1)

    bind_password: str | None = Field(
        None,
        title="Service bind password",
        description=(
            "Plaintext password. If omitted, the stored password is kept."
        ),
        repr=False,
    )

    base_dn: str = Field(..., title="Search base DN", min_length=1)

    user_filter: str = Field(DEFAULT_USER_FILTER, title="User search filter")

    enabled: bool = Field(False, title="Whether LDAP login is enabled")

    tls_enabled: bool = Field(False, title="Whether to use TLS")

    tls_skip_verify: bool = Field(
        False, title="Whether to skip TLS certificate verification"
    )


@dataclass(frozen=True)
class LDAPIdentity:
    """An LDAP identity whose password has been verified."""

    username: str
    """Username as provided by the user."""

    dn: str
    """Distinguished name of the user's entry."""

    email: str
    """Email address from ``mail`` or ``userPrincipalName``."""


class LDAPUser(BaseModel):
    """Link between an LDAP identity and a local user."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = Field(None, title="Link ID")

    user_id: int = Field(..., title="Local user ID")

    ldap_username: str = Field(
        ...,
        title="LDAP username",
        description="Username in LDAP, unique across all links",
        min_length=1,
        max_length=255,
    )

    ldap_dn: str = Field(
        ...,
        title="LDAP DN",
        description="DN of the user's entry when last verified",
        min_length=1,
        max_length=500,
    )

    last_sync_at: UtcDatetime = Field(
        ..., title="Last successful authentication"
    )

    user: LocalUser | None = Field(
        None,
        title="Local user",
        description="The linked local user, if loaded with the link",
    )
