"""
Error taxonomy for the Interest Finder API.

Every request-level error carries the HTTP status it surfaces as and a
message that is safe to show to the browser client. Server-side detail goes
to the logs only.
"""
from typing import Optional


class InterestFinderError(Exception):
    """Base class for errors surfaced at the HTTP boundary."""

    status_code: int = 500
    public_message: str = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class AuthError(InterestFinderError):
    """Missing or invalid caller identity."""

    status_code = 401
    public_message = "Invalid token"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message)
        # the exact reason ("No token provided" / "Invalid token") is safe to return
        self.public_message = self.message


class InvalidInputError(InterestFinderError):
    status_code = 400
    public_message = "Query parameter is required"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message)
        self.public_message = self.message


class ConfigurationError(InterestFinderError):
    """Server-side secret or setting missing. Detail stays in the logs."""

    status_code = 500
    public_message = "Server configuration error"


class UpstreamError(InterestFinderError):
    """The primary Graph API call failed."""

    status_code = 500
    public_message = "Failed to fetch interests"

    def __init__(self, message: Optional[str] = None, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status
        if message:
            self.public_message = f"{self.public_message}: {message}"


class TokenRefreshError(InterestFinderError):
    """The long-lived token exchange failed."""

    status_code = 500
    public_message = "Failed to refresh API credentials"


class EnrichmentError(InterestFinderError):
    """
    Audience estimate failed for a single interest.

    Recovered locally by the orchestrator, never surfaced to the client.
    """

    def __init__(self, interest_id: str, message: Optional[str] = None):
        super().__init__(message)
        self.interest_id = interest_id
