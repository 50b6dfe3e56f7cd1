"""
Caller authentication.

The browser sends its Firebase ID token in the Authorization header. The
token is verified against Google's public certificates for the configured
Firebase project; verified claims are kept in a small directory so the
activity monitor can resolve a user's contact address later.
"""
import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional

import google.auth.transport.requests
import requests
from google.oauth2 import id_token
from fastapi import Depends, Header

from interest_finder.core.config import settings
from interest_finder.core.exceptions import AuthError, ConfigurationError

logger = logging.getLogger(__name__)

CERT_FETCH_TIMEOUT_SECONDS = 30
DIRECTORY_MAX_ENTRIES = 10_000


@dataclass(frozen=True)
class AuthenticatedUser:
    uid: str
    email: Optional[str] = None


class UserDirectory:
    """
    uid -> email, filled from verified identity claims.

    Holds at most `max_entries` users; the least recently seen is evicted.
    """

    def __init__(self, max_entries: int = DIRECTORY_MAX_ENTRIES):
        self._emails: "OrderedDict[str, str]" = OrderedDict()
        self._max_entries = max_entries

    def __len__(self) -> int:
        return len(self._emails)

    def remember(self, user: AuthenticatedUser) -> None:
        if not user.email:
            return
        self._emails[user.uid] = user.email
        self._emails.move_to_end(user.uid)
        while len(self._emails) > self._max_entries:
            self._emails.popitem(last=False)

    async def resolve_contact(self, user_id: str) -> Optional[str]:
        return self._emails.get(user_id)


class TimeoutSession(requests.Session):
    """requests session that applies one fixed timeout to every call."""

    def __init__(self, timeout: float):
        super().__init__()
        self.timeout = timeout

    def request(self, method, url, **kwargs):
        # google-auth passes its own 120s default; ours wins
        kwargs["timeout"] = self.timeout
        return super().request(method, url, **kwargs)


class IdentityVerifier:
    """Verifies Firebase ID tokens."""

    def __init__(self, project_id: str = None, directory: UserDirectory = None):
        self._project_id = project_id if project_id is not None else settings.FIREBASE_PROJECT_ID
        self._directory = directory if directory is not None else UserDirectory()
        self._request = google.auth.transport.requests.Request(
            session=TimeoutSession(CERT_FETCH_TIMEOUT_SECONDS)
        )

    @property
    def directory(self) -> UserDirectory:
        return self._directory

    def _verify_sync(self, token: str) -> Dict[str, Any]:
        return id_token.verify_firebase_token(token, self._request, audience=self._project_id)

    async def verify(self, authorization: Optional[str]) -> AuthenticatedUser:
        """
        Verifies the raw Authorization header value.

        Args:
            authorization: Header value, bare token or "Bearer <token>"

        Returns:
            AuthenticatedUser built from the verified claims

        Raises:
            AuthError: header missing or token invalid
        """
        token = (authorization or "").strip()
        if token.lower() == "bearer" or token.lower().startswith("bearer "):
            token = token[6:].strip()
        if not token:
            raise AuthError("No token provided")

        if not self._project_id:
            logger.error("[Auth] FIREBASE_PROJECT_ID is not configured")
            raise ConfigurationError("Missing required settings: FIREBASE_PROJECT_ID")

        try:
            claims = await asyncio.to_thread(self._verify_sync, token)
        except Exception as e:
            logger.warning(f"[Auth] Token verification failed: {e}")
            raise AuthError("Invalid token") from e

        uid = (claims or {}).get("user_id") or (claims or {}).get("sub")
        if not uid:
            raise AuthError("Invalid token")

        user = AuthenticatedUser(uid=uid, email=claims.get("email"))
        self._directory.remember(user)
        return user


_verifier: Optional[IdentityVerifier] = None


def get_identity_verifier() -> IdentityVerifier:
    """Returns the singleton IdentityVerifier."""
    global _verifier
    if _verifier is None:
        _verifier = IdentityVerifier()
    return _verifier


async def get_current_user(
    authorization: Optional[str] = Header(None),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> AuthenticatedUser:
    """FastAPI dependency: the verified caller, or AuthError (401)."""
    return await verifier.verify(authorization)
