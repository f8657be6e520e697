"""The users database table.

Local users are owned by the application that uses ldaplink. Only the columns
needed to look up and create users are mapped here.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..models.enums import UserRole, UserStatus
from .base import SchemaBase

__all__ = ["User"]


class User(SchemaBase):
    """A local user account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    username: Mapped[str] = mapped_column(String(100), default="")
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[UserRole] = mapped_column(Enum(UserRole))
    balance: Mapped[float] = mapped_column(Float, default=0.0)
    concurrency: Mapped[int] = mapped_column(Integer, default=5)
    status: Mapped[UserStatus] = mapped_column(Enum(UserStatus))
    created_at: Mapped[datetime] = mapped_column(DateTime)
