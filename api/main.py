"""
FastAPI application for key signature matching.

This module provides HTTP endpoints for listing matching strategies and for
matching a described key against a caller-supplied inventory.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from keyscan_core.errors import InvalidSignature, StrategyNotFound
from keyscan_core.models import InventoryCandidate, MatchOutcome, Signature
from src.service import KeyMatchingService

# Initialize FastAPI app
app = FastAPI(
    title="KeyScan Matching API",
    description="API for identifying a scanned key within a user's inventory",
    version="1.0.0"
)


class MatchRequest(BaseModel):
    """Query signature plus the inventory to search."""
    query: Signature
    inventory: List[InventoryCandidate] = Field(default_factory=list)
    strategy: Optional[str] = Field(default=None, description="Strategy name; configured default when omitted")


class StrategySummary(BaseModel):
    name: str
    description: str
    thresholds: Dict[str, float]
    shape_veto_mode: str


class StrategyListing(BaseModel):
    default: str
    strategies: List[StrategySummary]


@lru_cache(maxsize=1)
def get_service() -> KeyMatchingService:
    """Build the service once per process."""
    return KeyMatchingService()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/strategies", response_model=StrategyListing)
async def list_strategies(service: KeyMatchingService = Depends(get_service)) -> StrategyListing:
    """List the registered matching strategies."""
    return StrategyListing(
        default=service.registry.default_name,
        strategies=[
            StrategySummary(
                name=strategy.name,
                description=strategy.description,
                thresholds=strategy.thresholds.model_dump(),
                shape_veto_mode=strategy.shape_veto.mode,
            )
            for strategy in service.registry
        ],
    )


@app.post("/match", response_model=MatchOutcome)
async def match_key(request: MatchRequest, service: KeyMatchingService = Depends(get_service)) -> MatchOutcome:
    """
    Match a key signature against the supplied inventory.

    Args:
        request: The query signature, the inventory and an optional strategy name

    Returns:
        MatchOutcome: Decision, closest candidate and score breakdown
    """
    try:
        return service.match(request.query, request.inventory, request.strategy)
    except StrategyNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidSignature as e:
        raise HTTPException(status_code=422, detail=str(e))


if __name__ == "__main__":
    # For local development
    import os

    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
