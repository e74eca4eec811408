"""
Anti-forgery token capability.

The dispatcher only ever sees a TokenStore: issue() hands out the
session-bound token (the host embeds it in the pages it renders),
validate() checks what came back in the request header. The dispatcher
never rotates or mutates the token.
"""

import hmac
import secrets
import threading
from abc import ABC, abstractmethod
from typing import Optional

# Request header carrying the token
CSRF_HEADER = "X-CSRF-Token"


class TokenStore(ABC):
    """Session-bound anti-forgery token."""

    @abstractmethod
    def issue(self) -> str:
        """Return the session token, creating it on first use."""

    @abstractmethod
    def validate(self, token: Optional[str]) -> bool:
        """True only if token matches the session token."""


class SessionTokenStore(TokenStore):
    """
    In-process token store for a single session.

    A fixed token can be supplied by the host (config.csrf_token); otherwise
    one is generated on the first issue(). Before anything is issued, every
    token is rejected.
    """

    def __init__(self, token: Optional[str] = None, nbytes: int = 32):
        self._token = token or None
        self._nbytes = nbytes
        self._lock = threading.Lock()

    def issue(self) -> str:
        with self._lock:
            if self._token is None:
                self._token = secrets.token_urlsafe(self._nbytes)
            return self._token

    def validate(self, token: Optional[str]) -> bool:
        expected = self._token
        if not token or expected is None:
            return False
        return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))
