"""
Interests endpoint.

Auth is checked first, then the query parameter, then the request is
tracked by the activity monitor before the Graph API is called.
"""
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from interest_finder.core.config import settings
from interest_finder.core.exceptions import ConfigurationError, InvalidInputError
from interest_finder.core.security import AuthenticatedUser, get_current_user
from interest_finder.schemas.interests import ErrorResponse, InterestsResponse
from interest_finder.services.activity_monitor import ActivityMonitor, get_activity_monitor
from interest_finder.services.interest_search.orchestrator import InterestSearchService, get_search_service
from interest_finder.services.token_manager import TokenManager, get_token_manager

logger = logging.getLogger(__name__)

router = APIRouter()

INTERESTS_PATH = "/api/interests"


def get_ad_account_id() -> str:
    """The ad account used for delivery estimates; ConfigurationError if missing."""
    if not settings.FACEBOOK_AD_ACCOUNT_ID:
        logger.error("[config] FACEBOOK_AD_ACCOUNT_ID is not configured")
        raise ConfigurationError("Missing required settings: FACEBOOK_AD_ACCOUNT_ID")
    return settings.FACEBOOK_AD_ACCOUNT_ID


@router.options(INTERESTS_PATH, include_in_schema=False)
async def interests_preflight() -> Response:
    return Response(status_code=200)


@router.get(
    INTERESTS_PATH,
    response_model=InterestsResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def search_interests(
    query: Optional[str] = Query(None, description="Keyword to search"),
    user: AuthenticatedUser = Depends(get_current_user),
    monitor: ActivityMonitor = Depends(get_activity_monitor),
    token_manager: TokenManager = Depends(get_token_manager),
    search_service: InterestSearchService = Depends(get_search_service),
) -> InterestsResponse:
    """
    Searches Facebook ad interests and returns each with an audience estimate.

    Raises:
        AuthError: missing/invalid Authorization header (401)
        InvalidInputError: missing query (400)
        ConfigurationError, TokenRefreshError, UpstreamError: (500)
    """
    if not query or not query.strip():
        raise InvalidInputError("Query parameter is required")

    await monitor.track(user.uid, INTERESTS_PATH)

    start_ts = time.perf_counter()
    logger.info(f"[API] interests query='{query}' user={user.uid}")

    ad_account_id = get_ad_account_id()
    access_token = await token_manager.get_valid_token()
    results = await search_service.search(query, access_token, ad_account_id)

    total = time.perf_counter() - start_ts
    logger.info(f"[PERF] interests query='{query}' results={len(results)} total={total:.3f}s")
    return InterestsResponse(data=results)


@router.get("/api/status")
async def service_status(
    user: AuthenticatedUser = Depends(get_current_user),
    monitor: ActivityMonitor = Depends(get_activity_monitor),
    token_manager: TokenManager = Depends(get_token_manager),
):
    """
    Token age and whether the activity monitor is running.

    Monitor thresholds and process-wide counters are logged, not returned.
    Never exposes the token.
    """
    logger.info(f"[API] status requested by user={user.uid} monitor={monitor.get_status()}")
    return {
        "token": token_manager.get_status(),
        "activity_monitor": {"running": monitor.is_running},
    }
