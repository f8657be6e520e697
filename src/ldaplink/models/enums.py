"""Enums used in ldaplink models.

Notes
-----
These are kept in a separate module because the ORM schema uses them for
column definitions and the models refer to the schema for queries.
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "LDAPConfigSource",
    "UserRole",
    "UserStatus",
]


class LDAPConfigSource(Enum):
    """Where the stored LDAP configuration came from."""

    env = "env"
    """Loaded from environment variables at startup."""

    database = "database"
    """Written by an administrator through the application."""


class UserRole(Enum):
    """Role of a local user."""

    admin = "admin"
    user = "user"


class UserStatus(Enum):
    """Status of a local user account."""

    active = "active"
    disabled = "disabled"
