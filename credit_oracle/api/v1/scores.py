"""GET /v1/scores/{address} and /v1/merchants/{address}/score - Stored and live merchant scores"""

from fastapi import APIRouter, Depends, HTTPException

from credit_oracle.api.v1.schemas import ScoreResponse
from credit_oracle.api.dependencies import get_orchestrator
from credit_oracle.services.sync import SyncOrchestrator
from credit_oracle.domain.exceptions import FetchFailure

router = APIRouter()


@router.get("/scores/{address}", response_model=ScoreResponse)
async def get_stored_score(address: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """
    Last score computed for a merchant, as saved by the most recent cycle.

    Available even when the ledger write for that cycle failed.
    """
    try:
        stored = await orchestrator.persistence.load(address)
    except FetchFailure as e:
        raise HTTPException(status_code=503, detail=str(e))

    if stored is None:
        raise HTTPException(status_code=404, detail="Score not found")

    return ScoreResponse.from_stored(stored)


@router.get("/merchants/{address}/score", response_model=ScoreResponse)
async def preview_score(address: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Compute a merchant's score now without saving it or writing to the ledger"""
    try:
        breakdown = await orchestrator.preview(address)
    except FetchFailure as e:
        raise HTTPException(status_code=503, detail=str(e))

    if breakdown is None:
        raise HTTPException(status_code=404, detail="Merchant not found")

    return ScoreResponse.from_breakdown(address, breakdown)
