"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional


class Currency(str, Enum):
    CELO = "CELO"
    CUSD = "cUSD"
    CEUR = "cEUR"


class TransactionStatus(str, Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    FAILED = "failed"


class LoanStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    DISBURSED = "disbursed"
    FUNDED = "funded"
    REPAYING = "repaying"
    REPAID = "repaid"
    DEFAULTED = "defaulted"


# Loans whose principal is still owed by the merchant
OUTSTANDING_LOAN_STATUSES = frozenset({LoanStatus.DISBURSED, LoanStatus.FUNDED, LoanStatus.REPAYING})


class SyncMode(str, Enum):
    BATCHED = "batched"
    INDIVIDUAL = "individual"


class OutcomeStatus(str, Enum):
    WRITTEN = "written"
    SKIPPED = "skipped"
    ERROR = "error"
    DRY_RUN = "dry_run"


@dataclass(frozen=True)
class MerchantRecord:
    """Registered merchant profile from the document store"""

    address: str
    registered_at: datetime
    is_active: bool = True
    business_name: Optional[str] = None
    business_category: Optional[str] = None
    location: Optional[str] = None
    kyc_status: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", self.address.lower())


@dataclass(frozen=True)
class Transaction:
    """Payment received by a merchant"""

    merchant_address: str
    amount: float
    currency: Currency
    timestamp: datetime
    status: TransactionStatus = TransactionStatus.CONFIRMED
    type: Optional[str] = None  # payment | loanDisbursement | loanRepayment
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class Loan:
    """Snapshot of a merchant loan and its lifecycle timestamps"""

    merchant_address: str
    amount: float
    status: LoanStatus
    requested_at: datetime
    approved_at: Optional[datetime] = None
    disbursed_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    repaid_at: Optional[datetime] = None
    loan_id: Optional[str] = None


@dataclass(frozen=True)
class ScoreMetadata:
    transaction_count: int
    loan_count: int
    account_age_days: int


@dataclass(frozen=True)
class ScoreBreakdown:
    """Output of the scoring engine: total, per-factor scores and the inputs that shaped them"""

    total: int
    factors: Mapping[str, float]
    weights: Mapping[str, float]
    metadata: ScoreMetadata
    computed_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "factors", MappingProxyType(dict(self.factors)))
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "factors": dict(self.factors),
            "weights": dict(self.weights),
            "metadata": {
                "transaction_count": self.metadata.transaction_count,
                "loan_count": self.metadata.loan_count,
                "account_age_days": self.metadata.account_age_days,
            },
            "computed_at": self.computed_at.isoformat(),
        }


@dataclass(frozen=True)
class StoredScore:
    """Score breakdown as persisted in the side store"""

    address: str
    score: int
    factors: Dict[str, float]
    weights: Dict[str, float]
    metadata: Dict[str, int]
    calculated_at: datetime
    last_updated: datetime


@dataclass(frozen=True)
class LedgerScore:
    """Score currently published on the ledger"""

    score: int
    last_updated: Optional[datetime]
    exists: bool


@dataclass(frozen=True)
class LedgerReceipt:
    """Acknowledgement of a ledger write"""

    tx_hash: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    updates_count: int = 1


@dataclass(frozen=True)
class OracleStatus:
    """Whether the oracle caller can write to the ledger"""

    oracle_address: str
    is_authorized: bool
    balance: Decimal


@dataclass
class MerchantOutcome:
    """Result of one merchant's pass through a cycle"""

    address: str
    status: OutcomeStatus
    score: Optional[int] = None
    previous_score: Optional[int] = None
    reason: Optional[str] = None
    tx_hash: Optional[str] = None
    persisted: bool = False


@dataclass
class CycleResult:
    """Summary of one reconciliation cycle"""

    cycle_id: str
    mode: SyncMode
    dry_run: bool
    started_at: datetime
    considered: int = 0
    outcomes: List[MerchantOutcome] = field(default_factory=list)
    receipts: List[LedgerReceipt] = field(default_factory=list)
    breakdowns: Dict[str, ScoreBreakdown] = field(default_factory=dict)
    finished_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    error: Optional[str] = None

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def written(self) -> int:
        return self._count(OutcomeStatus.WRITTEN)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def errored(self) -> int:
        return self._count(OutcomeStatus.ERROR)

    @property
    def changed(self) -> int:
        """Scores that differ from the ledger (written, or would be written on a dry run)"""
        return self.written + self._count(OutcomeStatus.DRY_RUN)

    @property
    def success(self) -> bool:
        return self.error is None

    def outcome_for(self, address: str) -> Optional[MerchantOutcome]:
        address = address.lower()
        return next((o for o in self.outcomes if o.address == address), None)
