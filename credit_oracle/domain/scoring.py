"""Merchant credit scoring engine - core business logic for the 300-850 score"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Sequence

from credit_oracle.domain.models import (
    OUTSTANDING_LOAN_STATUSES,
    Loan,
    LoanStatus,
    MerchantRecord,
    ScoreBreakdown,
    ScoreMetadata,
    Transaction,
)
from credit_oracle.utils.date_utils import days_between, months_between, subtract_months, utc_now

PAYMENT_HISTORY = "payment_history"
CREDIT_UTILIZATION = "credit_utilization"
LENGTH_OF_HISTORY = "length_of_history"
NEW_CREDIT = "new_credit"
CREDIT_MIX = "credit_mix"

DEFAULT_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        PAYMENT_HISTORY: 0.35,
        CREDIT_UTILIZATION: 0.30,
        LENGTH_OF_HISTORY: 0.15,
        NEW_CREDIT: 0.10,
        CREDIT_MIX: 0.10,
    }
)


@dataclass(frozen=True)
class ScoringConfig:
    """Immutable scoring parameters; weights must sum to 1.0"""

    weights: Mapping[str, float] = field(default_factory=lambda: DEFAULT_WEIGHTS)
    base_score: int = 650
    min_score: int = 300
    max_score: int = 850
    min_transactions: int = 3
    lookback_months: int = 3

    def __post_init__(self) -> None:
        if set(self.weights) != set(DEFAULT_WEIGHTS):
            raise ValueError(f"Weights must cover exactly {sorted(DEFAULT_WEIGHTS)}")
        if not math.isclose(sum(self.weights.values()), 1.0, abs_tol=1e-9):
            raise ValueError("Weights must sum to 1.0")
        if not self.min_score <= self.base_score <= self.max_score:
            raise ValueError("Base score must lie within the score bounds")
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))

    @classmethod
    def from_settings(cls, settings) -> "ScoringConfig":
        return cls(
            base_score=settings.base_score,
            min_transactions=settings.min_transactions_for_score,
        )


DEFAULT_SCORING = ScoringConfig()


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def transaction_consistency_score(transactions: Sequence[Transaction]) -> float:
    """
    Payment-history substitute for merchants with no loans.

    Frequency is transactions per 30-day month over the observed span; a zero-length
    span counts as one month.
    """
    if not transactions:
        return 650

    ordered = sorted(transactions, key=lambda t: t.timestamp)
    span_months = months_between(ordered[0].timestamp, ordered[-1].timestamp) or 1
    tx_per_month = len(ordered) / span_months

    score = 650
    if tx_per_month >= 10:
        score += 100  # Very active
    elif tx_per_month >= 5:
        score += 50
    elif tx_per_month >= 2:
        score += 25

    return min(850, score)


def payment_history_score(transactions: Sequence[Transaction], loans: Sequence[Loan], now: datetime) -> float:
    """
    Penalize late repayments and defaults across every loan the merchant holds.

    A repaid loan is late when repaid after its due date. Missing repaid/due dates
    are read as `now`.
    """
    if not loans:
        return transaction_consistency_score(transactions)

    late = 0
    defaults = 0
    for loan in loans:
        if loan.status == LoanStatus.REPAID:
            repaid_at = loan.repaid_at or now
            due_date = loan.due_date or now
            if repaid_at > due_date:
                late += 1
        elif loan.status == LoanStatus.DEFAULTED:
            defaults += 1

    late_rate = late / len(loans)
    default_rate = defaults / len(loans)

    score = 850 - late_rate * 100 - default_rate * 250
    return max(300, score)


def monthly_revenue(transactions: Sequence[Transaction], now: datetime, lookback_months: int = 3) -> float:
    """Average monthly revenue over the trailing look-back window"""
    if not transactions:
        return 0.0

    window_start = subtract_months(now, lookback_months)
    total = sum(t.amount for t in transactions if t.timestamp >= window_start)
    return total / lookback_months


def credit_utilization_score(
    transactions: Sequence[Transaction],
    loans: Sequence[Loan],
    now: datetime,
    lookback_months: int = 3,
) -> float:
    """
    Outstanding loan exposure against monthly revenue.

    No recent revenue means insufficient data, which scores neutral rather than low.
    """
    revenue = monthly_revenue(transactions, now, lookback_months)
    if revenue == 0:
        return 650

    exposure = sum(loan.amount for loan in loans if loan.status in OUTSTANDING_LOAN_STATUSES)
    ratio = exposure / revenue

    if ratio < 0.3:
        return 850
    elif ratio < 0.5:
        return 750
    elif ratio < 0.7:
        return 650
    elif ratio < 1.0:
        return 550
    else:
        return 450


def length_of_history_score(registered_at: datetime, now: datetime) -> float:
    age_days = days_between(registered_at, now)

    if age_days >= 365:
        return 850
    elif age_days >= 180:
        return 750
    elif age_days >= 90:
        return 700
    elif age_days >= 30:
        return 650
    else:
        return 600


def new_credit_score(loans: Sequence[Loan], now: datetime, lookback_months: int = 3) -> float:
    """Many recent loan requests read as credit-seeking risk"""
    window_start = subtract_months(now, lookback_months)
    recent = sum(1 for loan in loans if loan.requested_at >= window_start)

    if recent == 0:
        return 750
    elif recent == 1:
        return 700
    elif recent == 2:
        return 650
    else:
        return 550


def credit_mix_score(transactions: Sequence[Transaction]) -> float:
    """Reward currency diversity, spread of transaction sizes and volume"""
    if not transactions:
        return 650

    currencies = {t.currency for t in transactions}
    mean_amount = sum(t.amount for t in transactions) / len(transactions)
    has_small = any(t.amount < mean_amount * 0.5 for t in transactions)
    has_large = any(t.amount > mean_amount * 2 for t in transactions)

    score = 650
    if len(currencies) >= 2:
        score += 50
    if has_small and has_large:
        score += 50
    if len(transactions) >= 20:
        score += 50

    return min(850, score)


def compute(
    merchant: MerchantRecord,
    transactions: Sequence[Transaction],
    loans: Sequence[Loan],
    config: ScoringConfig = DEFAULT_SCORING,
    now: Optional[datetime] = None,
) -> ScoreBreakdown:
    """
    Main entry point: score a merchant from its history.

    Merchants below the minimum transaction count get the base score on every
    factor. Otherwise the total is the weighted factor sum, clamped to the score
    bounds and then rounded half up.
    """
    now = now or utc_now()
    metadata = ScoreMetadata(
        transaction_count=len(transactions),
        loan_count=len(loans),
        account_age_days=max(0, math.floor(days_between(merchant.registered_at, now))),
    )

    if len(transactions) < config.min_transactions:
        factors: Dict[str, float] = {name: config.base_score for name in config.weights}
        return ScoreBreakdown(
            total=config.base_score,
            factors=factors,
            weights=dict(config.weights),
            metadata=metadata,
            computed_at=now,
        )

    raw = {
        PAYMENT_HISTORY: payment_history_score(transactions, loans, now),
        CREDIT_UTILIZATION: credit_utilization_score(transactions, loans, now, config.lookback_months),
        LENGTH_OF_HISTORY: length_of_history_score(merchant.registered_at, now),
        NEW_CREDIT: new_credit_score(loans, now, config.lookback_months),
        CREDIT_MIX: credit_mix_score(transactions),
    }
    factors = {name: _clamp(value, config.min_score, config.max_score) for name, value in raw.items()}

    weighted = sum(factors[name] * weight for name, weight in config.weights.items())
    total = _round_half_up(_clamp(weighted, config.min_score, config.max_score))

    return ScoreBreakdown(
        total=total,
        factors=factors,
        weights=dict(config.weights),
        metadata=metadata,
        computed_at=now,
    )


def is_valid_score(score: int, config: ScoringConfig = DEFAULT_SCORING) -> bool:
    return config.min_score <= score <= config.max_score
