"""GET /v1/status - Oracle authorization and balance"""

from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException

from credit_oracle.api.v1.schemas import StatusResponse
from credit_oracle.api.dependencies import get_orchestrator
from credit_oracle.services.sync import SyncOrchestrator
from credit_oracle.domain.exceptions import AuthorizationMissing, LedgerReadFailure
from credit_oracle.config import settings

router = APIRouter()


@router.get("/status", response_model=StatusResponse)
async def get_status(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Report whether the oracle caller is authorized and funded"""
    try:
        status = await orchestrator.status()
    except AuthorizationMissing as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LedgerReadFailure as e:
        raise HTTPException(status_code=503, detail=str(e))

    return StatusResponse(
        oracle_address=status.oracle_address,
        is_authorized=status.is_authorized,
        balance=str(status.balance),
        low_balance=status.balance < Decimal(str(settings.low_balance_threshold)),
        ledger_url=settings.ledger_api_base,
    )
