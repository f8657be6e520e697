"""All database schema objects."""

from __future__ import annotations

from .base import SchemaBase
from .ldap_config import LDAPConfig
from .ldap_user import LDAPUser
from .user import User

__all__ = [
    "LDAPConfig",
    "LDAPUser",
    "SchemaBase",
    "User",
]
