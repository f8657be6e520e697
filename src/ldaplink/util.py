"""General utility functions."""

from __future__ import annotations

from urllib.parse import urlsplit

from .constants import MASKED_HOST_LENGTH

__all__ = [
    "mask_dn",
    "mask_server_url",
]


def mask_dn(dn: str) -> str:
    """Mask a distinguished name for logging.

    Only the first RDN is kept, since the rest of the DN reveals the
    structure of the directory.

    Parameters
    ----------
    dn
        Distinguished name to mask.

    Returns
    -------
    str
        The first RDN followed by ``,***``, or the DN unchanged if it has
        only one component.
    """
    if not dn:
        return ""
    first, sep, _ = dn.partition(",")
    return f"{first},***" if sep else dn


def mask_server_url(url: str) -> str:
    """Mask an LDAP server URL for logging.

    Keeps the scheme and a prefix of the host. The port, any path, and any
    credentials embedded in the URL are dropped.

    Parameters
    ----------
    url
        LDAP server URL, such as ``ldaps://ldap.example.com:636``.

    Returns
    -------
    str
        Masked form of the URL, such as ``ldaps://ldap.exampl***``, or
        ``***`` if the URL could not be parsed.
    """
    if not url:
        return ""
    try:
        parsed = urlsplit(url)
        host = parsed.hostname
    except ValueError:
        return "***"
    if not parsed.scheme or not host:
        return "***"
    return f"{parsed.scheme}://{host[:MASKED_HOST_LENGTH]}***"
