"""Pytest configuration for the Interest Finder test suite."""

import os


def _ensure_test_env() -> None:
    """Seed required environment variables before the package is imported."""
    os.environ.setdefault("FIREBASE_PROJECT_ID", "interest-finder-test")
    os.environ.setdefault("FACEBOOK_ACCESS_TOKEN", "configured-token")
    os.environ.setdefault("FACEBOOK_AD_ACCOUNT_ID", "1234567890")
    os.environ.setdefault("FACEBOOK_APP_ID", "app-id")
    os.environ.setdefault("FACEBOOK_APP_SECRET", "app-secret")
    os.environ.setdefault("ENVIRONMENT", "test")
    os.environ.setdefault("LOG_FORMAT", "text")
    os.environ["DATABASE_URL"] = ""


_ensure_test_env()

from typing import Any, Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStore:
    """In-memory stand-in for DatabaseService."""

    def __init__(self, credential: Optional[Dict[str, Any]] = None, fail: bool = False):
        self.credential = credential
        self.fail = fail
        self.saved_credentials: List[Dict[str, Any]] = []
        self.alerts: List[Dict[str, Any]] = []

    async def load_credential(self, key: str) -> Optional[Dict[str, Any]]:
        if self.fail:
            raise RuntimeError("database unavailable")
        return self.credential

    async def save_credential(self, key: str, token: str, last_refreshed_at: float) -> None:
        if self.fail:
            raise RuntimeError("database unavailable")
        self.saved_credentials.append(
            {"key": key, "token": token, "last_refreshed_at": last_refreshed_at}
        )

    async def save_security_alert(self, user_id: str, reason: str, details: Dict[str, Any]) -> int:
        if self.fail:
            raise RuntimeError("database unavailable")
        self.alerts.append({"user_id": user_id, "reason": reason, "details": details})
        return len(self.alerts)


class FakeNotifier:
    """Records notifications instead of sending email."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict[str, str]] = []

    async def send(self, subject: str, body: str, recipient: Optional[str] = None) -> bool:
        if self.fail:
            raise RuntimeError("smtp relay down")
        self.sent.append({"subject": subject, "body": body})
        return True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


GRAPH_BASE_URL = "https://graph.test/v18.0"


def make_graph_client(handler):
    """GraphApiClient whose HTTP calls are answered by `handler` (sync or async)."""
    import httpx

    from interest_finder.core.http_client import HttpClientManager
    from interest_finder.services.interest_search.graph_client import GraphApiClient

    http = HttpClientManager(timeout=5.0, transport=httpx.MockTransport(handler))
    return GraphApiClient(http=http, base_url=GRAPH_BASE_URL)
