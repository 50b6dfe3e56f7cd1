"""
Facebook Graph API client.

Three calls are used:
- GET /search?type=adinterest             keyword search for ad interests
- GET /act_{account}/delivery_estimate    audience estimate for one interest
- GET /oauth/access_token                 long-lived token exchange

Access tokens travel as query parameters, so request URLs are never logged.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from interest_finder.core.config import settings
from interest_finder.core.exceptions import UpstreamError
from interest_finder.core.http_client import HttpClientManager

logger = logging.getLogger(__name__)


def _error_from_response(response: httpx.Response) -> UpstreamError:
    """Builds an UpstreamError from a Graph error body, when there is one."""
    message = None
    try:
        body = response.json()
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message")
    except ValueError:
        pass
    if not message:
        message = f"HTTP {response.status_code}"
    return UpstreamError(message, upstream_status=response.status_code)


class GraphApiClient:
    """Thin async wrapper around the Graph endpoints the service needs."""

    def __init__(self, http: HttpClientManager = None, base_url: str = None):
        self._http = http or HttpClientManager()
        self._base_url = base_url or settings.graph_base_url

    @property
    def http(self) -> HttpClientManager:
        return self._http

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        client = await self._http.get_client()
        try:
            response = await client.get(f"{self._base_url}{path}", params=params)
        except httpx.TimeoutException as e:
            raise UpstreamError("Request to Graph API timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Request to Graph API failed: {type(e).__name__}") from e

        if response.status_code >= 400:
            raise _error_from_response(response)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("Graph API returned a non-JSON body", upstream_status=response.status_code) from e

    async def search_interests(
        self,
        query: str,
        access_token: str,
        limit: int = 500,
        locale: str = "en_US",
    ) -> List[Dict[str, Any]]:
        """
        Keyword search for ad interests.

        Returns:
            Raw interest dicts in upstream order (empty list when nothing matches)

        Raises:
            UpstreamError: transport failure or non-2xx response
        """
        body = await self._get(
            "/search",
            {
                "q": query,
                "type": "adinterest",
                "limit": limit,
                "access_token": access_token,
                "locale": locale,
                "disable_scoping": "true",
            },
        )
        data = body.get("data") if isinstance(body, dict) else None
        return data if isinstance(data, list) else []

    async def estimate_audience(
        self,
        interest: Dict[str, Any],
        access_token: str,
        ad_account_id: str,
        countries: List[str],
        optimization_goal: str = "REACH",
    ) -> int:
        """
        Daily audience estimate for a single interest, geo-restricted to `countries`.

        Returns:
            estimate_dau, or 0 when the upstream has no estimate

        Raises:
            UpstreamError: transport failure or non-2xx response
        """
        targeting_spec = {
            "geo_locations": {"countries": list(countries)},
            "interests": [{"id": interest.get("id"), "name": interest.get("name")}],
        }
        body = await self._get(
            f"/act_{ad_account_id}/delivery_estimate",
            {
                "optimization_goal": optimization_goal,
                "targeting_spec": json.dumps(targeting_spec),
                "access_token": access_token,
            },
        )
        estimates = body.get("data") if isinstance(body, dict) else None
        if not estimates or not isinstance(estimates[0], dict):
            return 0
        try:
            return max(0, int(estimates[0].get("estimate_dau") or 0))
        except (TypeError, ValueError):
            return 0

    async def exchange_token(self, current_token: str, app_id: str, app_secret: str) -> str:
        """
        Exchanges `current_token` for a new long-lived token.

        Raises:
            UpstreamError: transport failure, non-2xx, or no access_token in the body
        """
        body = await self._get(
            "/oauth/access_token",
            {
                "grant_type": "fb_exchange_token",
                "client_id": app_id,
                "client_secret": app_secret,
                "fb_exchange_token": current_token,
            },
        )
        token: Optional[str] = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise UpstreamError("Token exchange response did not contain an access_token")
        return token

    async def close(self):
        await self._http.close()


_graph_client: Optional[GraphApiClient] = None


def get_graph_client() -> GraphApiClient:
    global _graph_client
    if _graph_client is None:
        _graph_client = GraphApiClient()
    return _graph_client
