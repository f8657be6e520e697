"""The ldap_users database table."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import SchemaBase
from .user import User

__all__ = ["LDAPUser"]


class LDAPUser(SchemaBase):
    """Link between an LDAP identity and a local user."""

    __tablename__ = "ldap_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True
    )
    ldap_username: Mapped[str] = mapped_column(String(255), unique=True)
    ldap_dn: Mapped[str] = mapped_column(String(500))
    last_sync_at: Mapped[datetime] = mapped_column(DateTime)

    user: Mapped[User] = relationship(lazy="raise")
