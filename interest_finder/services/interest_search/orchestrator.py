"""
Interest search orchestration.

Flow:
1. Primary keyword search (a failure here aborts the request)
2. Audience estimate per interest, in fixed-size batches: items inside a
   batch run concurrently, batches run one after another, which bounds the
   number of simultaneous calls to the Graph API
3. A failed estimate degrades that single item to audience_size=0

Results keep the upstream order: gather() returns results aligned with its
inputs, whatever the completion order.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from interest_finder.core.config_loader import build_tunables
from interest_finder.core.exceptions import EnrichmentError, InvalidInputError
from interest_finder.schemas.interests import InterestResult
from interest_finder.services.interest_search.graph_client import GraphApiClient, get_graph_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchTunables:
    """Loaded from configs/interest_search.json."""
    batch_size: int = 10
    result_limit: int = 500
    locale: str = "en_US"
    countries: List[str] = field(default_factory=lambda: ["US"])
    optimization_goal: str = "REACH"
    request_timeout: float = 30.0


class InterestSearchService:
    """Search + batched audience enrichment."""

    def __init__(
        self,
        graph: GraphApiClient = None,
        batch_size: int = None,
        result_limit: int = None,
        locale: str = None,
        countries: List[str] = None,
        optimization_goal: str = None,
    ):
        tunables = build_tunables(
            SearchTunables,
            "interest_search",
            batch_size=batch_size,
            result_limit=result_limit,
            locale=locale,
            countries=countries,
            optimization_goal=optimization_goal,
        )
        self._graph = graph or get_graph_client()
        self.batch_size = tunables.batch_size
        self.result_limit = tunables.result_limit
        self.locale = tunables.locale
        self.countries = list(tunables.countries)
        self.optimization_goal = tunables.optimization_goal

        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")

    async def _enrich(self, raw: Dict[str, Any], token: str, ad_account_id: str) -> InterestResult:
        """Audience estimate for one interest; never raises."""
        try:
            audience = await self._graph.estimate_audience(
                raw,
                access_token=token,
                ad_account_id=ad_account_id,
                countries=self.countries,
                optimization_goal=self.optimization_goal,
            )
        except Exception as e:
            error = EnrichmentError(str(raw.get("id")), str(e))
            logger.warning(
                f"[InterestSearch] Audience estimate failed for interest={error.interest_id}: {error.message}"
            )
            audience = 0
        return InterestResult.from_upstream(raw, audience_size=audience)

    async def search(self, query: Optional[str], token: str, ad_account_id: str) -> List[InterestResult]:
        """
        Searches interests and enriches each one with an audience estimate.

        Args:
            query: Keyword to search
            token: Graph API access token
            ad_account_id: Ad account used for delivery estimates (without "act_")

        Returns:
            InterestResult list in upstream order (empty when nothing matches)

        Raises:
            InvalidInputError: empty query
            UpstreamError: the primary search failed
        """
        if not query or not query.strip():
            raise InvalidInputError("Query parameter is required")

        start = time.perf_counter()
        matches = await self._graph.search_interests(
            query, access_token=token, limit=self.result_limit, locale=self.locale
        )
        logger.info(f"[InterestSearch] query='{query}' matches={len(matches)}")

        if not matches:
            return []

        results: List[InterestResult] = []
        for offset in range(0, len(matches), self.batch_size):
            batch = matches[offset:offset + self.batch_size]
            batch_results = await asyncio.gather(
                *(self._enrich(raw, token, ad_account_id) for raw in batch)
            )
            results.extend(batch_results)

        duration = time.perf_counter() - start
        logger.info(
            f"[PERF] interest_search query='{query}' results={len(results)} "
            f"batches={(len(matches) + self.batch_size - 1) // self.batch_size} duration={duration:.3f}s"
        )
        return results


_search_service: Optional[InterestSearchService] = None


def get_search_service() -> InterestSearchService:
    global _search_service
    if _search_service is None:
        _search_service = InterestSearchService()
    return _search_service
