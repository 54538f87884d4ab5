"""Pytest fixtures for testing"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from credit_oracle.domain.exceptions import FetchFailure, LedgerReadFailure, LedgerWriteFailure, PersistenceFailure
from credit_oracle.domain.models import (
    Currency,
    LedgerReceipt,
    LedgerScore,
    Loan,
    LoanStatus,
    MerchantRecord,
    ScoreBreakdown,
    StoredScore,
    Transaction,
)
from credit_oracle.infrastructure.database.models import Base
from credit_oracle.services.sync import SyncOrchestrator

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)

ORACLE = "0x" + "f" * 40
ADDR_A = "0x" + "a" * 40
ADDR_B = "0x" + "b" * 40
ADDR_C = "0x" + "c" * 40


def make_merchant(address: str, days_registered: int = 400, is_active: bool = True) -> MerchantRecord:
    return MerchantRecord(address=address, registered_at=NOW - timedelta(days=days_registered), is_active=is_active)


def make_transactions(
    address: str,
    count: int,
    amount: float = 1000.0,
    spacing_days: float = 10,
    currency: Currency = Currency.CUSD,
    end: datetime = NOW,
) -> List[Transaction]:
    """`count` transactions ending at `end`, `spacing_days` apart"""
    return [
        Transaction(
            merchant_address=address,
            amount=amount,
            currency=currency,
            timestamp=end - timedelta(days=spacing_days * i),
        )
        for i in range(count)
    ]


def make_loan(
    address: str,
    status: LoanStatus = LoanStatus.REPAID,
    amount: float = 100.0,
    requested_days_ago: int = 200,
    due_days_ago: Optional[int] = 150,
    repaid_days_ago: Optional[int] = 151,
) -> Loan:
    return Loan(
        merchant_address=address,
        amount=amount,
        status=status,
        requested_at=NOW - timedelta(days=requested_days_ago),
        due_date=NOW - timedelta(days=due_days_ago) if due_days_ago is not None else None,
        repaid_at=NOW - timedelta(days=repaid_days_ago) if repaid_days_ago is not None else None,
    )


class FakeMerchantRepository:
    def __init__(self, merchants: Iterable[MerchantRecord] = ()):
        self.merchants: Dict[str, MerchantRecord] = {m.address: m for m in merchants}

    async def list_active(self) -> List[MerchantRecord]:
        return [m for m in self.merchants.values() if m.is_active]

    async def get(self, address: str) -> Optional[MerchantRecord]:
        return self.merchants.get(address.lower())


class FakeHistoryRepository:
    def __init__(self):
        self.transactions: Dict[str, List[Transaction]] = {}
        self.loans: Dict[str, List[Loan]] = {}
        self.failing: set = set()
        self.hooks: Dict[str, object] = {}

    async def transactions_for(self, address: str) -> List[Transaction]:
        hook = self.hooks.get(address)
        if hook is not None:
            await hook()
        if address in self.failing:
            raise FetchFailure(f"document store unavailable for {address}")
        return list(self.transactions.get(address, []))

    async def loans_for(self, address: str) -> List[Loan]:
        if address in self.failing:
            raise FetchFailure(f"document store unavailable for {address}")
        return list(self.loans.get(address, []))


class FakeScorePersistence:
    def __init__(self):
        self.saved: Dict[str, ScoreBreakdown] = {}
        self.fail = False

    async def save(self, address: str, breakdown: ScoreBreakdown) -> None:
        if self.fail:
            raise PersistenceFailure("side store unavailable")
        self.saved[address] = breakdown

    async def load(self, address: str) -> Optional[StoredScore]:
        breakdown = self.saved.get(address)
        if breakdown is None:
            return None
        return StoredScore(
            address=address,
            score=breakdown.total,
            factors=dict(breakdown.factors),
            weights=dict(breakdown.weights),
            metadata=breakdown.to_dict()["metadata"],
            calculated_at=breakdown.computed_at,
            last_updated=breakdown.computed_at,
        )


class FakeLedger:
    """Records every call so tests can count ledger writes"""

    def __init__(self, authorized: Iterable[str] = (ORACLE,), balance: str = "5.0"):
        self.scores: Dict[str, int] = {}
        self.authorized = set(authorized)
        self._balance = Decimal(balance)
        self.reads: List[str] = []
        self.writes: List[tuple] = []
        self.batch_writes: List[tuple] = []
        self.authorization_checks = 0
        self.failing_writes: set = set()
        self.failing_reads: set = set()
        self.fail_batch = False

    async def read_score(self, address: str) -> LedgerScore:
        self.reads.append(address)
        if address in self.failing_reads:
            raise LedgerReadFailure("ledger timeout")
        if address not in self.scores:
            return LedgerScore(score=0, last_updated=None, exists=False)
        return LedgerScore(score=self.scores[address], last_updated=NOW, exists=True)

    async def write_score(self, address: str, score: int) -> LedgerReceipt:
        self.writes.append((address, score))
        if address in self.failing_writes:
            raise LedgerWriteFailure("ledger rejected write")
        self.scores[address] = score
        return LedgerReceipt(tx_hash=f"0xtx{len(self.writes)}")

    async def write_scores_batch(self, addresses: Sequence[str], scores: Sequence[int]) -> LedgerReceipt:
        self.batch_writes.append((list(addresses), list(scores)))
        if self.fail_batch:
            raise LedgerWriteFailure("batch reverted")
        for address, score in zip(addresses, scores):
            self.scores[address] = score
        return LedgerReceipt(tx_hash=f"0xbatch{len(self.batch_writes)}", updates_count=len(addresses))

    async def is_authorized(self, caller: str) -> bool:
        self.authorization_checks += 1
        return caller in self.authorized

    async def balance(self, caller: str) -> Decimal:
        return self._balance

    @property
    def write_calls(self) -> int:
        return len(self.writes) + len(self.batch_writes)


@pytest.fixture
def merchants() -> FakeMerchantRepository:
    return FakeMerchantRepository([make_merchant(ADDR_A), make_merchant(ADDR_B), make_merchant(ADDR_C)])


@pytest.fixture
def history() -> FakeHistoryRepository:
    repo = FakeHistoryRepository()
    # Three merchants with distinct histories so their scores differ
    repo.transactions[ADDR_A] = make_transactions(ADDR_A, 3)
    repo.transactions[ADDR_B] = make_transactions(ADDR_B, 25, spacing_days=1)
    repo.transactions[ADDR_C] = make_transactions(ADDR_C, 6, spacing_days=20)
    repo.loans[ADDR_C] = [make_loan(ADDR_C, status=LoanStatus.DEFAULTED)]
    return repo


@pytest.fixture
def persistence() -> FakeScorePersistence:
    return FakeScorePersistence()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def orchestrator(merchants, history, persistence, ledger) -> SyncOrchestrator:
    return SyncOrchestrator(
        merchants=merchants,
        history=history,
        persistence=persistence,
        ledger=ledger,
        oracle_address=ORACLE,
        clock=lambda: NOW,
    )


@pytest.fixture
def session_factory(tmp_path):
    """SQLite database file per test, shared safely across worker threads"""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()

