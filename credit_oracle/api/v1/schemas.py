"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from credit_oracle.domain.models import CycleResult, OutcomeStatus, ScoreBreakdown, StoredScore, SyncMode


class CycleRequest(BaseModel):
    """Request body for POST /v1/cycles"""

    mode: SyncMode = Field(SyncMode.BATCHED, description="One batched ledger write or one write per merchant")
    dry_run: bool = Field(False, description="Compute and persist scores without writing to the ledger")


class OutcomeSchema(BaseModel):
    address: str
    status: OutcomeStatus
    score: Optional[int] = None
    previous_score: Optional[int] = None
    reason: Optional[str] = None
    tx_hash: Optional[str] = None
    persisted: bool = False


class ReceiptSchema(BaseModel):
    tx_hash: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    updates_count: int


class CycleResponse(BaseModel):
    """Response for POST /v1/cycles"""

    cycle_id: str
    mode: SyncMode
    dry_run: bool
    success: bool
    error: Optional[str] = None
    considered: int
    written: int
    skipped: int
    errored: int
    changed: int
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_seconds: float
    outcomes: List[OutcomeSchema]
    receipts: List[ReceiptSchema]

    @classmethod
    def from_result(cls, result: CycleResult) -> "CycleResponse":
        return cls(
            cycle_id=result.cycle_id,
            mode=result.mode,
            dry_run=result.dry_run,
            success=result.success,
            error=result.error,
            considered=result.considered,
            written=result.written,
            skipped=result.skipped,
            errored=result.errored,
            changed=result.changed,
            started_at=result.started_at,
            finished_at=result.finished_at,
            duration_seconds=round(result.duration_seconds, 3),
            outcomes=[OutcomeSchema(**vars(o)) for o in result.outcomes],
            receipts=[ReceiptSchema(**vars(r)) for r in result.receipts],
        )


class StatusResponse(BaseModel):
    """Response for GET /v1/status"""

    oracle_address: str
    is_authorized: bool
    balance: str
    low_balance: bool
    ledger_url: str


class ScoreResponse(BaseModel):
    """Score breakdown, either stored or freshly computed"""

    address: str
    score: int
    factors: Dict[str, float]
    weights: Dict[str, float]
    metadata: Dict[str, int]
    calculated_at: datetime
    last_updated: Optional[datetime] = None

    @classmethod
    def from_stored(cls, stored: StoredScore) -> "ScoreResponse":
        return cls(
            address=stored.address,
            score=stored.score,
            factors=stored.factors,
            weights=stored.weights,
            metadata=stored.metadata,
            calculated_at=stored.calculated_at,
            last_updated=stored.last_updated,
        )

    @classmethod
    def from_breakdown(cls, address: str, breakdown: ScoreBreakdown) -> "ScoreResponse":
        data = breakdown.to_dict()
        return cls(
            address=address.lower(),
            score=breakdown.total,
            factors=data["factors"],
            weights=data["weights"],
            metadata=data["metadata"],
            calculated_at=breakdown.computed_at,
        )
