"""
Interest Search - Graph API search and audience enrichment.

- GraphApiClient: HTTP calls to the Graph API (search, delivery estimate, token exchange)
- InterestSearchService: search + batched audience enrichment
"""

from .graph_client import (
    GraphApiClient,
    get_graph_client,
)
from .orchestrator import (
    InterestSearchService,
    get_search_service,
)

__all__ = [
    "GraphApiClient",
    "get_graph_client",
    "InterestSearchService",
    "get_search_service",
]
