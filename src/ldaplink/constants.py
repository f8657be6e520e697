"""Constants for ldaplink."""

__all__ = [
    "CONFIG_PATH",
    "DEFAULT_USER_FILTER",
    "ENCRYPTION_KEY_SIZE",
    "ENCRYPTION_NONCE_SIZE",
    "LDAP_CONNECT_TIMEOUT",
    "LDAP_RECEIVE_TIMEOUT",
    "LDAP_SEARCH_ATTRIBUTES",
    "LDAP_SEARCH_TIME_LIMIT",
    "MASKED_HOST_LENGTH",
    "RECONCILE_RETRIES",
    "USER_FILTER_PLACEHOLDER",
]

CONFIG_PATH = "/etc/ldaplink/ldaplink.yaml"
"""Default configuration path."""

DEFAULT_USER_FILTER = "(uid=%s)"
"""Search filter template used if none is configured."""

ENCRYPTION_KEY_SIZE = 32
"""Size in bytes of the AES-256 key protecting the LDAP bind password."""

ENCRYPTION_NONCE_SIZE = 12
"""Size in bytes of the random AES-GCM nonce prepended to ciphertext."""

LDAP_CONNECT_TIMEOUT = 3
"""Timeout (in seconds) for opening the connection to the LDAP server."""

LDAP_RECEIVE_TIMEOUT = 10
"""Timeout (in seconds) for any single blocking read from the LDAP server.

This is longer than the search time limit so that the server has a chance to
report that the time limit was exceeded before the client gives up.
"""

LDAP_SEARCH_ATTRIBUTES = ["dn", "mail", "userPrincipalName"]
"""Attributes requested when searching for the user's entry."""

LDAP_SEARCH_TIME_LIMIT = 5
"""Server-side time limit (in seconds) for the user search."""

MASKED_HOST_LENGTH = 10
"""Number of host characters kept when logging an LDAP server URL."""

RECONCILE_RETRIES = 3
"""Default number of retries after a uniqueness conflict on user creation."""

USER_FILTER_PLACEHOLDER = "%s"
"""Placeholder in the search filter template replaced by the username."""
