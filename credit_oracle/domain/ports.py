"""Collaborator interfaces consumed by the sync orchestrator"""

from decimal import Decimal
from typing import List, Optional, Protocol, Sequence

from credit_oracle.domain.models import (
    LedgerReceipt,
    LedgerScore,
    Loan,
    MerchantRecord,
    ScoreBreakdown,
    StoredScore,
    Transaction,
)


class MerchantRepository(Protocol):
    async def list_active(self) -> List[MerchantRecord]: ...

    async def get(self, address: str) -> Optional[MerchantRecord]: ...


class HistoryRepository(Protocol):
    async def transactions_for(self, address: str) -> List[Transaction]: ...

    async def loans_for(self, address: str) -> List[Loan]: ...


class ScorePersistence(Protocol):
    async def save(self, address: str, breakdown: ScoreBreakdown) -> None:
        """Idempotent upsert keyed by merchant address. Raises PersistenceFailure."""
        ...

    async def load(self, address: str) -> Optional[StoredScore]: ...


class LedgerClient(Protocol):
    async def read_score(self, address: str) -> LedgerScore: ...

    async def write_score(self, address: str, score: int) -> LedgerReceipt: ...

    async def write_scores_batch(self, addresses: Sequence[str], scores: Sequence[int]) -> LedgerReceipt: ...

    async def is_authorized(self, caller: str) -> bool: ...

    async def balance(self, caller: str) -> Decimal: ...
