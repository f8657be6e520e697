"""The ldap_configs database table."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..models.enums import LDAPConfigSource
from .base import SchemaBase

__all__ = ["LDAPConfig"]


class LDAPConfig(SchemaBase):
    """Connection and search settings for the LDAP server.

    The partial unique index allows any number of disabled rows but at most
    one enabled row.
    """

    __tablename__ = "ldap_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    server_url: Mapped[str] = mapped_column(String(255))
    bind_dn: Mapped[str] = mapped_column(String(255))
    bind_password_encrypted: Mapped[str] = mapped_column(Text)
    base_dn: Mapped[str] = mapped_column(String(255))
    user_filter: Mapped[str] = mapped_column(String(255))
    enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    tls_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    tls_skip_verify: Mapped[bool] = mapped_column(Boolean, default=False)
    config_source: Mapped[LDAPConfigSource] = mapped_column(
        Enum(LDAPConfigSource)
    )
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)

    __table_args__ = (
        Index(
            "ldap_configs_single_enabled",
            "enabled",
            unique=True,
            postgresql_where=text("enabled"),
            sqlite_where=text("enabled"),
        ),
    )
