"""Helpers shared by the database stores."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

__all__ = ["is_unique_violation"]

_UNIQUE_VIOLATION = "23505"
"""PostgreSQL SQLSTATE for a unique constraint violation."""


def is_unique_violation(error: IntegrityError) -> bool:
    """Determine whether an integrity error is a uniqueness violation.

    Parameters
    ----------
    error
        Exception raised by SQLAlchemy on flush or commit.

    Returns
    -------
    bool
        `True` if the driver reported a unique constraint violation, `False`
        for any other integrity error such as a foreign key violation.
    """
    orig = error.orig
    for attr in ("sqlstate", "pgcode"):
        if getattr(orig, attr, None) == _UNIQUE_VIOLATION:
            return True
    message = str(orig).lower()
    return "unique" in message or "duplicate" in message
