"""In-memory ledger gateway for local development and tests"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Set
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

MIN_SCORE = 300
MAX_SCORE = 850


class ScoreWrite(BaseModel):
    address: str
    score: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)


class BatchScoreWrite(BaseModel):
    addresses: List[str]
    scores: List[int]


class LedgerState:
    def __init__(self) -> None:
        self.scores: Dict[str, dict] = {}
        self.authorized: Set[str] = set()
        self.balances: Dict[str, Decimal] = {}
        self.block_number = 0
        self.writes: List[dict] = []

    def record(self, address: str, score: int) -> None:
        self.scores[address.lower()] = {
            "score": score,
            "last_updated": int(datetime.now(timezone.utc).timestamp()),
        }

    def next_receipt(self, updates: int) -> dict:
        self.block_number += 1
        return {
            "tx_hash": "0x" + uuid4().hex + uuid4().hex,
            "block_number": self.block_number,
            "gas_used": 50_000 + 30_000 * updates,
            "updates_count": updates,
        }


def create_app(state: LedgerState | None = None) -> FastAPI:
    app = FastAPI(title="Mock Ledger Gateway", version="1.0.0")
    app.state.ledger = state or LedgerState()
    ledger: LedgerState = app.state.ledger

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/scores/{address}")
    def get_score(address: str):
        entry = ledger.scores.get(address.lower())
        if entry is None:
            return {"score": 0, "last_updated": 0, "exists": False}
        return {**entry, "exists": True}

    @app.post("/scores")
    def write_score(body: ScoreWrite):
        ledger.record(body.address, body.score)
        ledger.writes.append({"addresses": [body.address.lower()], "scores": [body.score]})
        return ledger.next_receipt(1)

    @app.post("/scores/batch")
    def write_scores_batch(body: BatchScoreWrite):
        if len(body.addresses) != len(body.scores):
            raise HTTPException(status_code=400, detail="Array length mismatch")
        if any(not MIN_SCORE <= s <= MAX_SCORE for s in body.scores):
            raise HTTPException(status_code=400, detail="Score out of range")
        for address, score in zip(body.addresses, body.scores):
            ledger.record(address, score)
        ledger.writes.append({"addresses": [a.lower() for a in body.addresses], "scores": list(body.scores)})
        return ledger.next_receipt(len(body.addresses))

    @app.get("/oracles/{address}/authorized")
    def is_authorized(address: str):
        return {"authorized": address.lower() in ledger.authorized}

    @app.get("/accounts/{address}/balance")
    def get_balance(address: str):
        return {"balance": str(ledger.balances.get(address.lower(), Decimal("0")))}

    return app


app = create_app()
