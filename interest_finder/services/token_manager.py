"""
Token Manager - lifecycle of the long-lived Graph API access token.

The Problem:
- The Graph API token expires about 60 days after it was issued
- Exchanging it produces a new token; duplicate concurrent exchanges can
  break the token chain upstream

The Solution:
- The token is refreshed once it is older than the refresh interval (45 days)
- Refresh is single-flight: concurrent callers that see an expired token
  await the same in-flight exchange and all get its result
- Every refreshed token is persisted, so a restart resumes from the newest
  link of the chain
- The operator gets an email on every refresh attempt (success or failure)

Usage:
    manager = get_token_manager()
    await manager.load()                   # at startup
    token = await manager.get_valid_token()
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from interest_finder.core.config import settings
from interest_finder.core.config_loader import build_tunables
from interest_finder.core.exceptions import ConfigurationError, TokenRefreshError
from interest_finder.services.database_service import DatabaseService, get_db_service
from interest_finder.services.interest_search.graph_client import GraphApiClient, get_graph_client
from interest_finder.services.notifier import EmailNotifier, get_notifier

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class TokenTunables:
    """Loaded from configs/token.json."""
    refresh_interval_days: float = 45
    credential_key: str = "facebook_token"


@dataclass(frozen=True)
class Credential:
    token: str
    last_refreshed_at: float


def _format_ts(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


class TokenManager:
    """
    Owns the current access token.

    Only the refresh path mutates the credential, and only one refresh runs
    at a time.
    """

    def __init__(
        self,
        initial_token: str = None,
        graph: GraphApiClient = None,
        store: DatabaseService = None,
        notifier: EmailNotifier = None,
        app_id: str = None,
        app_secret: str = None,
        refresh_interval: float = None,
        credential_key: str = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            initial_token: Token from configuration (FACEBOOK_ACCESS_TOKEN by default)
            graph: Graph client used for the exchange
            store: Credential persistence
            notifier: Operator email
            app_id: Facebook app id for the exchange
            app_secret: Facebook app secret for the exchange
            refresh_interval: Seconds between refreshes (45 days by default)
            credential_key: Key of the persisted record
            clock: Epoch-seconds clock, injectable for tests
        """
        tunables = build_tunables(TokenTunables, "token", credential_key=credential_key)
        token = initial_token if initial_token is not None else settings.FACEBOOK_ACCESS_TOKEN

        self._graph = graph or get_graph_client()
        self._store = store or get_db_service()
        self._notifier = notifier or get_notifier()
        self._app_id = app_id if app_id is not None else settings.FACEBOOK_APP_ID
        self._app_secret = app_secret if app_secret is not None else settings.FACEBOOK_APP_SECRET
        self.refresh_interval = (
            refresh_interval if refresh_interval is not None
            else tunables.refresh_interval_days * DAY_SECONDS
        )
        self._credential_key = tunables.credential_key
        self._clock = clock

        self._credential: Optional[Credential] = Credential(token, clock()) if token else None
        self._inflight: Optional[asyncio.Task] = None

        # Metrics
        self._refresh_count = 0
        self._refresh_failures = 0

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    def needs_refresh(self) -> bool:
        if self._credential is None:
            return False
        return self._clock() - self._credential.last_refreshed_at >= self.refresh_interval

    async def load(self) -> None:
        """
        Adopts the persisted credential, if any.

        A persisted record is the newest link of the token chain, so it wins
        over the token from configuration. Load failures are logged and the
        configured token stays in place.
        """
        try:
            record = await self._store.load_credential(self._credential_key)
        except Exception as e:
            logger.error(f"[TokenManager] Failed to load persisted credential: {e}")
            return

        if not record or not record.get("token"):
            logger.info("[TokenManager] No persisted credential, using configured token")
            return

        persisted = Credential(record["token"], float(record["last_refreshed_at"]))
        self._credential = persisted
        logger.info(
            f"[TokenManager] Loaded persisted credential (last refresh {_format_ts(persisted.last_refreshed_at)})"
        )

    async def get_valid_token(self) -> str:
        """
        Returns the current token, refreshing it first if it is due.

        Raises:
            ConfigurationError: no token, or no app id/secret for a due refresh
            TokenRefreshError: the refresh exchange failed
        """
        if self._credential is None:
            raise ConfigurationError("Missing required settings: FACEBOOK_ACCESS_TOKEN")
        if self.needs_refresh():
            return await self.refresh()
        return self._credential.token

    async def refresh(self) -> str:
        """
        Exchanges the current token for a new long-lived one.

        Concurrent calls share the same in-flight exchange.

        Raises:
            TokenRefreshError: the exchange failed (in-memory token unchanged)
        """
        if self._inflight is None:
            self._inflight = asyncio.create_task(self._run_refresh())
        # shield: a cancelled caller must not cancel the exchange other callers wait on
        return await asyncio.shield(self._inflight)

    async def _run_refresh(self) -> str:
        try:
            return await self._exchange()
        finally:
            self._inflight = None

    async def _exchange(self) -> str:
        if self._credential is None:
            raise ConfigurationError("Missing required settings: FACEBOOK_ACCESS_TOKEN")
        if not self._app_id or not self._app_secret:
            self._refresh_failures += 1
            logger.error("❌ [TokenManager] FACEBOOK_APP_ID/FACEBOOK_APP_SECRET not configured, cannot refresh")
            await self._notifier.send(
                "Token Refresh Failed",
                "Failed to refresh Facebook token: FACEBOOK_APP_ID and FACEBOOK_APP_SECRET must be configured",
            )
            raise ConfigurationError("Missing required settings: FACEBOOK_APP_ID, FACEBOOK_APP_SECRET")

        logger.info("🔄 [TokenManager] Refreshing long-lived token")
        try:
            new_token = await self._graph.exchange_token(
                self._credential.token, app_id=self._app_id, app_secret=self._app_secret
            )
        except Exception as e:
            self._refresh_failures += 1
            logger.error(f"❌ [TokenManager] Token refresh failed: {e}")
            await self._notifier.send(
                "Token Refresh Failed",
                f"Failed to refresh Facebook token: {e}",
            )
            raise TokenRefreshError(f"Token refresh failed: {e}") from e

        refreshed_at = max(self._clock(), self._credential.last_refreshed_at)
        self._credential = Credential(new_token, refreshed_at)
        self._refresh_count += 1

        persisted = True
        try:
            await self._store.save_credential(self._credential_key, new_token, refreshed_at)
        except Exception as e:
            persisted = False
            logger.error(f"❌ [TokenManager] Refreshed token could not be persisted: {e}")

        body = f"Token was successfully refreshed at {_format_ts(refreshed_at)}"
        if not persisted:
            body += "\n\nWARNING: the new token could not be persisted and will be lost on restart."
        await self._notifier.send("Facebook Token Refreshed", body)

        logger.info(f"✅ [TokenManager] Token refreshed at {_format_ts(refreshed_at)}")
        return new_token

    def get_status(self) -> Dict[str, Any]:
        """Token age and refresh metrics (never the token itself)."""
        if self._credential is None:
            return {"configured": False}
        age = self._clock() - self._credential.last_refreshed_at
        return {
            "configured": True,
            "last_refreshed_at": _format_ts(self._credential.last_refreshed_at),
            "age_days": round(age / DAY_SECONDS, 2),
            "next_refresh_in_days": round(max(0.0, self.refresh_interval - age) / DAY_SECONDS, 2),
            "refresh_in_flight": self._inflight is not None,
            "metrics": {
                "refreshes": self._refresh_count,
                "failures": self._refresh_failures,
            },
        }


_token_manager: Optional[TokenManager] = None


def get_token_manager() -> TokenManager:
    """Returns the TokenManager singleton."""
    global _token_manager
    if _token_manager is None:
        _token_manager = TokenManager()
    return _token_manager
