"""Session cookie storage via OS keyring, and csrf extraction."""

from __future__ import annotations

import logging

import keyring
from keyring.errors import KeyringError

from parkreserve.errors import AuthError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "parkreserve-bilibili"
KEYRING_USER = "cookie"
CSRF_COOKIE = "bili_jct"


def csrf_from_cookie(cookie: str) -> str:
    """Pull the csrf token (bili_jct) out of a raw Cookie header value."""
    for part in cookie.split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name == CSRF_COOKIE and value:
            return value
    raise AuthError(f"No {CSRF_COOKIE} found in cookie. Log in again and copy a fresh cookie.")


class SessionManager:
    """Handles cookie storage (OS keyring) and lookup."""

    def store_cookie(self, cookie: str) -> None:
        """Store the session cookie in the OS keyring."""
        csrf_from_cookie(cookie)  # refuse to store something unusable
        try:
            keyring.set_password(KEYRING_SERVICE, KEYRING_USER, cookie)
        except KeyringError as e:
            raise AuthError(f"Could not store cookie in keyring: {e}") from e
        logger.info("Cookie stored in keyring.")

    def load_cookie(self, configured: str | None = None) -> str:
        """Return the configured cookie, falling back to the keyring."""
        if configured:
            return configured
        try:
            cookie = keyring.get_password(KEYRING_SERVICE, KEYRING_USER)
        except KeyringError as e:
            raise AuthError(f"Could not read keyring: {e}") from e
        if not cookie:
            raise AuthError("No cookie configured. Run 'parkreserve configure' first.")
        return cookie
