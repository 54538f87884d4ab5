"""Import a JSON export of the merchant document collections into the database"""

import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from credit_oracle.domain.exceptions import InvalidDocumentError
from credit_oracle.domain.models import Currency, LoanStatus, TransactionStatus
from credit_oracle.infrastructure.database.models import Merchant, MerchantLoan, MerchantTransaction
from credit_oracle.utils.date_utils import coerce_timestamp

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"

# Namespace for row ids derived from document content
_ROW_NAMESPACE = uuid.UUID("6f1c1f3e-5d8a-4c36-9a43-2b7f0d0e9c51")


class _Document(BaseModel):
    """Export documents use camelCase keys; snake_case is accepted too"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class MerchantDocument(_Document):
    wallet_address: str = Field(..., pattern=ADDRESS_PATTERN)
    business_name: str
    business_category: str
    location: str
    is_active: bool
    kyc_status: Optional[str] = None
    registered_at: Any = None

    @field_validator("wallet_address")
    @classmethod
    def lower_address(cls, v: str) -> str:
        return v.lower()


class TransactionDocument(_Document):
    merchant_address: str = Field(..., pattern=ADDRESS_PATTERN)
    customer_address: str = Field(..., pattern=ADDRESS_PATTERN)
    amount: float = Field(..., ge=0)
    currency: Currency
    tx_hash: str
    timestamp: Any = None
    status: TransactionStatus = TransactionStatus.CONFIRMED
    type: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("merchant_address", "customer_address")
    @classmethod
    def lower_address(cls, v: str) -> str:
        return v.lower()


class LoanDocument(_Document):
    id: Optional[str] = None
    merchant_wallet: str = Field(..., pattern=ADDRESS_PATTERN)
    amount: float = Field(..., ge=0)
    status: LoanStatus
    purpose: Optional[str] = None
    requested_at: Any = None
    approved_at: Any = None
    disbursed_at: Any = None
    due_date: Any = None
    repaid_at: Any = None

    @field_validator("merchant_wallet")
    @classmethod
    def lower_address(cls, v: str) -> str:
        return v.lower()


@dataclass
class ImportSummary:
    merchants: int = 0
    transactions: int = 0
    loans: int = 0


def _validate(model: type, raw: Dict[str, Any], collection: str, index: int):
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise InvalidDocumentError(f"{collection}[{index}]: {e}") from e


def _optional_timestamp(value: Any):
    return coerce_timestamp(value) if value is not None else None


def _transaction_id(doc: TransactionDocument) -> str:
    """Stable row id: the same on-chain payment always lands on the same row"""
    return str(uuid.uuid5(_ROW_NAMESPACE, f"tx:{doc.tx_hash.lower()}"))


def _loan_id(doc: LoanDocument) -> str:
    """Export id when present, otherwise derived from merchant, request time and amount"""
    if doc.id:
        return doc.id
    requested = json.dumps(doc.requested_at, sort_keys=True, default=str)
    return str(uuid.uuid5(_ROW_NAMESPACE, f"loan:{doc.merchant_wallet}:{requested}:{doc.amount}"))


def import_documents(db: Session, documents: Dict[str, List[Dict[str, Any]]]) -> ImportSummary:
    """
    Validate every document, then upsert them in one transaction.

    Transactions are keyed on their tx hash and loans on their id, so importing
    the same export twice leaves the database unchanged. Nothing is written if
    any document is invalid.

    Raises:
        InvalidDocumentError: On the first malformed document, or when a row
            breaks a database constraint (e.g. an unknown merchant)
    """
    merchants = [_validate(MerchantDocument, raw, "merchants", i) for i, raw in enumerate(documents.get("merchants", []))]
    transactions = [
        _validate(TransactionDocument, raw, "transactions", i) for i, raw in enumerate(documents.get("transactions", []))
    ]
    loans = [_validate(LoanDocument, raw, "loans", i) for i, raw in enumerate(documents.get("loans", []))]

    transaction_rows = {
        _transaction_id(doc): MerchantTransaction(
            id=_transaction_id(doc),
            merchant_address=doc.merchant_address,
            customer_address=doc.customer_address,
            amount=doc.amount,
            currency=doc.currency.value,
            tx_hash=doc.tx_hash,
            timestamp=coerce_timestamp(doc.timestamp),
            status=doc.status.value,
            type=doc.type,
            notes=doc.notes,
        )
        for doc in transactions
    }
    loan_rows = {
        _loan_id(doc): MerchantLoan(
            id=_loan_id(doc),
            merchant_address=doc.merchant_wallet,
            amount=doc.amount,
            status=doc.status.value,
            purpose=doc.purpose,
            requested_at=coerce_timestamp(doc.requested_at),
            approved_at=_optional_timestamp(doc.approved_at),
            disbursed_at=_optional_timestamp(doc.disbursed_at),
            due_date=_optional_timestamp(doc.due_date),
            repaid_at=_optional_timestamp(doc.repaid_at),
        )
        for doc in loans
    }

    try:
        for doc in merchants:
            db.merge(
                Merchant(
                    address=doc.wallet_address,
                    business_name=doc.business_name,
                    business_category=doc.business_category,
                    location=doc.location,
                    kyc_status=doc.kyc_status,
                    registered_at=coerce_timestamp(doc.registered_at),
                    is_active=doc.is_active,
                )
            )
        db.flush()

        for row in transaction_rows.values():
            db.merge(row)
        for row in loan_rows.values():
            db.merge(row)

        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise InvalidDocumentError(f"Import rejected by the database: {e.orig}") from e

    summary = ImportSummary(merchants=len(merchants), transactions=len(transaction_rows), loans=len(loan_rows))
    logger.info(
        "Documents imported",
        extra={"merchants": summary.merchants, "transactions": summary.transactions, "loans": summary.loans},
    )
    return summary


def import_file(db: Session, path: Path) -> ImportSummary:
    try:
        documents = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InvalidDocumentError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(documents, dict):
        raise InvalidDocumentError(f"{path} must hold an object of collections")
    return import_documents(db, documents)
