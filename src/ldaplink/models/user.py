"""Representation of a local user account."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from safir.pydantic import UtcDatetime

from .enums import UserRole, UserStatus

__all__ = ["LocalUser", "NewLocalUser"]


class BaseLocalUser(BaseModel):
    """Fields shared by new and stored local users."""

    model_config = ConfigDict(from_attributes=True)

    email: str = Field(
        ...,
        title="Email address",
        description="Email address, unique across all local users",
        examples=["someuser@example.com"],
        min_length=1,
        max_length=255,
    )

    username: str = Field(
        "",
        title="Display name",
        description="Display name of the user",
        examples=["someuser"],
        max_length=100,
    )

    role: UserRole = Field(UserRole.user, title="Role")

    balance: float = Field(0.0, title="Balance")

    concurrency: int = Field(5, title="Concurrency limit", ge=0)

    status: UserStatus = Field(UserStatus.active, title="Account status")


class NewLocalUser(BaseLocalUser):
    """A local user to be created.

    Never returned from storage, so the password hash does not leave the
    service that created it.
    """

    password_hash: str = Field(
        ...,
        title="Password hash",
        description="Hash of the local password",
        repr=False,
    )


class LocalUser(BaseLocalUser):
    """A stored local user account."""

    id: int = Field(..., title="Local user ID", examples=[42])

    created_at: UtcDatetime = Field(..., title="Creation time")

    @property
    def is_active(self) -> bool:
        """Whether the account may log in."""
        return self.status == UserStatus.active
