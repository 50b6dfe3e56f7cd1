"""
Pydantic schemas for the interests endpoint.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

# Sentinel for a name or topic the upstream did not provide
UNKNOWN = "N/A"


def normalize_path(path: Any) -> List[str]:
    """Upstream `path` may be a list, a single string, or missing."""
    if isinstance(path, list):
        return [str(p) for p in path]
    if path:
        return [str(path)]
    return []


class InterestResult(BaseModel):
    """
    One ad interest with its audience estimate.

    Fields:
        id: Graph interest id
        name: Interest name ("N/A" if missing upstream)
        audience_size: Daily active audience estimate, 0 when unavailable
        path: Category path, outermost first
        topic: Topic or disambiguation category ("N/A" if missing upstream)
    """
    id: Optional[str] = Field(None, description="Graph interest id")
    name: str = Field(UNKNOWN, description="Interest name")
    audience_size: int = Field(0, ge=0, description="Daily active audience estimate")
    path: List[str] = Field(default_factory=list, description="Category path")
    topic: str = Field(UNKNOWN, description="Topic or disambiguation category")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "6003020834693",
                "name": "Coffee",
                "audience_size": 412000000,
                "path": ["Interests", "Food and drink", "Beverages", "Coffee"],
                "topic": "Food and drink",
            }
        },
    )

    @classmethod
    def from_upstream(cls, raw: Dict[str, Any], audience_size: int = 0) -> "InterestResult":
        interest_id = raw.get("id")
        return cls(
            id=str(interest_id) if interest_id is not None else None,
            name=raw.get("name") or UNKNOWN,
            audience_size=max(0, audience_size),
            path=normalize_path(raw.get("path")),
            topic=raw.get("topic") or raw.get("disambiguation_category") or UNKNOWN,
        )


class InterestsResponse(BaseModel):
    data: List[InterestResult] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Client-safe error message")
    detail: Optional[str] = Field(None, description="Diagnostic detail (non-production only)")
