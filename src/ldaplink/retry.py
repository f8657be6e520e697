"""Retry of operations that lost a race on a uniqueness constraint."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from structlog.stdlib import BoundLogger

from .exceptions import ConflictError

__all__ = ["with_retry"]


async def with_retry[T](
    max_retries: int,
    operation: Callable[[], Awaitable[T]],
    *,
    logger: BoundLogger | None = None,
) -> T:
    """Run an operation, retrying if it hits a concurrent write conflict.

    There is no delay between attempts. A conflict means another writer has
    already committed the row this operation tried to create, so the next
    attempt will find it.

    Parameters
    ----------
    max_retries
        Maximum number of retries. The operation is called at most
        ``max_retries + 1`` times.
    operation
        Coroutine function taking no arguments.
    logger
        If given, used to log each retry.

    Returns
    -------
    T
        The result of the first successful call.

    Raises
    ------
    ConflictError
        Raised if every attempt failed with a conflict. The error from the
        last attempt is raised unchanged.
    ValueError
        Raised if ``max_retries`` is negative.

    Notes
    -----
    Any exception other than `~ldaplink.exceptions.ConflictError` is raised
    immediately without retrying.
    """
    if max_retries < 0:
        raise ValueError(f"Invalid max_retries {max_retries}")
    for attempt in range(max_retries):
        try:
            return await operation()
        except ConflictError as e:
            if logger:
                logger.debug(
                    "Retrying after concurrent conflict",
                    attempt=attempt + 1,
                    error=str(e),
                )
    return await operation()
