"""POST /v1/cycles - Run a credit score reconciliation cycle"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from credit_oracle.api.v1.schemas import CycleRequest, CycleResponse
from credit_oracle.api.dependencies import get_orchestrator, get_request_id
from credit_oracle.services.sync import SyncOrchestrator
from credit_oracle.domain.exceptions import (
    AuthorizationMissing,
    CycleAlreadyRunning,
    FetchFailure,
    LedgerReadFailure,
    LedgerWriteFailure,
)

router = APIRouter()


@router.post("/cycles", response_model=CycleResponse)
async def run_cycle(
    request_body: CycleRequest,
    request: Request,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Score every active merchant and publish changed scores to the ledger.

    Errors:
    - 409: another cycle is in progress
    - 403: oracle is not authorized to write (dry runs are still allowed)
    - 502: batched ledger write failed; body carries the partial cycle result
    - 503: merchant list or ledger unavailable
    """
    request_id = get_request_id(request)

    try:
        result = await orchestrator.run_cycle(mode=request_body.mode, dry_run=request_body.dry_run)
        return CycleResponse.from_result(result)

    except CycleAlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e))

    except AuthorizationMissing as e:
        logging.warning(f"Cycle refused: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=403, detail=str(e))

    except LedgerWriteFailure as e:
        logging.error(f"Batch ledger write failed: {e}", extra={"request_id": request_id})
        if e.result is None:
            raise HTTPException(status_code=502, detail=str(e))
        return JSONResponse(
            status_code=502,
            content=CycleResponse.from_result(e.result).model_dump(mode="json"),
        )

    except (FetchFailure, LedgerReadFailure) as e:
        logging.error(f"Cycle aborted: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail=str(e))
