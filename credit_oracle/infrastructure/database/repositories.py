"""Data access layer for merchant documents and computed scores"""

import asyncio
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from credit_oracle.domain.exceptions import FetchFailure, InvalidDocumentError, PersistenceFailure
from credit_oracle.domain.models import (
    Currency,
    Loan,
    LoanStatus,
    MerchantRecord,
    ScoreBreakdown,
    StoredScore,
    Transaction,
    TransactionStatus,
)
from credit_oracle.domain.scoring import is_valid_score
from credit_oracle.infrastructure.database.models import CreditScore, Merchant, MerchantLoan, MerchantTransaction
from credit_oracle.utils.date_utils import coerce_timestamp, ensure_utc, utc_now

SessionFactory = Callable[[], Session]


def _to_merchant(row: Merchant) -> MerchantRecord:
    return MerchantRecord(
        address=row.address,
        registered_at=coerce_timestamp(row.registered_at),
        is_active=row.is_active,
        business_name=row.business_name,
        business_category=row.business_category,
        location=row.location,
        kyc_status=row.kyc_status,
    )


def _to_transaction(row: MerchantTransaction) -> Transaction:
    try:
        return Transaction(
            merchant_address=row.merchant_address,
            amount=float(row.amount or 0),
            currency=Currency(row.currency),
            timestamp=coerce_timestamp(row.timestamp),
            status=TransactionStatus(row.status or TransactionStatus.CONFIRMED.value),
            type=row.type,
            tx_hash=row.tx_hash,
        )
    except ValueError as e:
        raise InvalidDocumentError(f"Transaction {row.id}: {e}") from e


def _to_loan(row: MerchantLoan) -> Loan:
    try:
        return Loan(
            loan_id=row.id,
            merchant_address=row.merchant_address,
            amount=float(row.amount or 0),
            status=LoanStatus(row.status),
            requested_at=coerce_timestamp(row.requested_at),
            approved_at=ensure_utc(row.approved_at) if row.approved_at else None,
            disbursed_at=ensure_utc(row.disbursed_at) if row.disbursed_at else None,
            due_date=ensure_utc(row.due_date) if row.due_date else None,
            repaid_at=ensure_utc(row.repaid_at) if row.repaid_at else None,
        )
    except ValueError as e:
        raise InvalidDocumentError(f"Loan {row.id}: {e}") from e


class SqlMerchantRepository:
    """Repository for merchant profiles"""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def _list_active(self) -> List[MerchantRecord]:
        with self.session_factory() as db:
            rows = (
                db.query(Merchant)
                .filter(Merchant.is_active.is_(True))
                .order_by(Merchant.address)
                .all()
            )
            return [_to_merchant(row) for row in rows]

    def _get(self, address: str) -> Optional[MerchantRecord]:
        with self.session_factory() as db:
            row = db.get(Merchant, address.lower())
            return _to_merchant(row) if row else None

    async def list_active(self) -> List[MerchantRecord]:
        try:
            return await asyncio.to_thread(self._list_active)
        except SQLAlchemyError as e:
            raise FetchFailure(f"Could not list merchants: {e}") from e

    async def get(self, address: str) -> Optional[MerchantRecord]:
        try:
            return await asyncio.to_thread(self._get, address)
        except SQLAlchemyError as e:
            raise FetchFailure(f"Could not load merchant {address}: {e}") from e


class SqlHistoryRepository:
    """Repository for merchant transactions and loans"""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def _transactions_for(self, address: str) -> List[Transaction]:
        with self.session_factory() as db:
            rows = (
                db.query(MerchantTransaction)
                .filter(MerchantTransaction.merchant_address == address.lower())
                .order_by(MerchantTransaction.timestamp.desc())
                .all()
            )
            return [_to_transaction(row) for row in rows]

    def _loans_for(self, address: str) -> List[Loan]:
        with self.session_factory() as db:
            rows = db.query(MerchantLoan).filter(MerchantLoan.merchant_address == address.lower()).all()
            return [_to_loan(row) for row in rows]

    async def transactions_for(self, address: str) -> List[Transaction]:
        try:
            return await asyncio.to_thread(self._transactions_for, address)
        except (SQLAlchemyError, InvalidDocumentError) as e:
            raise FetchFailure(f"Could not load transactions for {address}: {e}") from e

    async def loans_for(self, address: str) -> List[Loan]:
        try:
            return await asyncio.to_thread(self._loans_for, address)
        except (SQLAlchemyError, InvalidDocumentError) as e:
            raise FetchFailure(f"Could not load loans for {address}: {e}") from e


class SqlScorePersistence:
    """Upserts the latest breakdown per merchant so scores survive failed ledger writes"""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def _save(self, address: str, breakdown: ScoreBreakdown) -> None:
        with self.session_factory() as db:
            row = db.get(CreditScore, address)
            if row is None:
                row = CreditScore(address=address)
                db.add(row)

            row.score = breakdown.total
            row.factors = dict(breakdown.factors)
            row.weights = dict(breakdown.weights)
            row.score_metadata = breakdown.to_dict()["metadata"]
            row.calculated_at = breakdown.computed_at
            row.last_updated = utc_now()
            db.commit()

    def _load(self, address: str) -> Optional[StoredScore]:
        with self.session_factory() as db:
            row = db.get(CreditScore, address.lower())
            if row is None:
                return None
            return StoredScore(
                address=row.address,
                score=row.score,
                factors=dict(row.factors or {}),
                weights=dict(row.weights or {}),
                metadata=dict(row.score_metadata or {}),
                calculated_at=ensure_utc(row.calculated_at),
                last_updated=ensure_utc(row.last_updated),
            )

    async def save(self, address: str, breakdown: ScoreBreakdown) -> None:
        address = address.lower()
        if not is_valid_score(breakdown.total):
            raise PersistenceFailure(f"Score out of range (300-850): {breakdown.total}")
        try:
            await asyncio.to_thread(self._save, address, breakdown)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not save score for {address}: {e}") from e

    async def load(self, address: str) -> Optional[StoredScore]:
        try:
            return await asyncio.to_thread(self._load, address)
        except SQLAlchemyError as e:
            raise FetchFailure(f"Could not load score for {address}: {e}") from e
