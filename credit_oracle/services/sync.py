"""Reconciliation cycle: score every active merchant and publish changed scores to the ledger"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence
from uuid import uuid4

from credit_oracle.domain import scoring
from credit_oracle.domain.exceptions import (
    AuthorizationMissing,
    CycleAlreadyRunning,
    DomainException,
    FetchFailure,
    LedgerWriteFailure,
)
from credit_oracle.domain.models import (
    CycleResult,
    MerchantOutcome,
    MerchantRecord,
    OracleStatus,
    OutcomeStatus,
    ScoreBreakdown,
    SyncMode,
)
from credit_oracle.domain.ports import HistoryRepository, LedgerClient, MerchantRepository, ScorePersistence
from credit_oracle.domain.scoring import DEFAULT_SCORING, ScoringConfig
from credit_oracle.infrastructure.observability.logging import log_cycle, log_merchant_outcome
from credit_oracle.infrastructure.observability.metrics import persistence_failure_counter, record_cycle
from credit_oracle.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class _MerchantSlot:
    """One merchant's working state within a cycle"""

    address: str
    breakdown: Optional[ScoreBreakdown] = None
    persisted: bool = False
    outcome: Optional[MerchantOutcome] = None

    @property
    def score(self) -> Optional[int]:
        return self.breakdown.total if self.breakdown else None

    def resolve(
        self,
        status: OutcomeStatus,
        reason: Optional[str] = None,
        previous_score: Optional[int] = None,
        tx_hash: Optional[str] = None,
    ) -> None:
        self.outcome = MerchantOutcome(
            address=self.address,
            status=status,
            score=self.score,
            previous_score=previous_score,
            reason=reason,
            tx_hash=tx_hash,
            persisted=self.persisted,
        )


class SyncOrchestrator:
    """
    Drives reconciliation cycles between the document store and the ledger.

    Only one cycle runs at a time per orchestrator; overlapping calls raise
    CycleAlreadyRunning. Merchants are scored concurrently, bounded by
    max_concurrency, and every per-merchant failure is recorded as an outcome
    instead of aborting the cycle. The one cycle-level failure is a rejected
    batched ledger write, raised as LedgerWriteFailure carrying the partial result.
    """

    def __init__(
        self,
        merchants: MerchantRepository,
        history: HistoryRepository,
        persistence: ScorePersistence,
        ledger: LedgerClient,
        oracle_address: Optional[str] = None,
        scoring_config: ScoringConfig = DEFAULT_SCORING,
        max_concurrency: int = 8,
        clock: Callable = utc_now,
    ):
        self.merchants = merchants
        self.history = history
        self.persistence = persistence
        self.ledger = ledger
        self.oracle_address = oracle_address.lower() if oracle_address else None
        self.scoring_config = scoring_config
        self.max_concurrency = max(1, max_concurrency)
        self.clock = clock
        self._running = False
        self._stop_requested = False

    @property
    def is_running(self) -> bool:
        return self._running

    def request_stop(self) -> None:
        """
        Let in-flight merchants finish but start no new ones.

        A stop requested between cycles applies to the next cycle, which then
        starts no merchants. The request is cleared when that cycle ends.
        """
        self._stop_requested = True

    async def run_cycle(self, mode: SyncMode = SyncMode.BATCHED, dry_run: bool = False) -> CycleResult:
        """
        Run one complete reconciliation cycle.

        Flow:
        1. Refuse to start writes unless the oracle caller is authorized (skipped on dry run)
        2. Fetch active merchants
        3. Fetch history, score and persist each merchant independently
        4. Skip merchants whose ledger score already matches
        5. Write changed scores in one batch or one call per merchant
        """
        if self._running:
            raise CycleAlreadyRunning("A reconciliation cycle is already in progress")

        self._running = True
        start_time = time.monotonic()
        result = CycleResult(cycle_id=uuid4().hex, mode=mode, dry_run=dry_run, started_at=self.clock())
        slots: List[_MerchantSlot] = []

        logger.info(
            "Starting credit score cycle",
            extra={"cycle_id": result.cycle_id, "mode": mode.value, "dry_run": dry_run},
        )

        try:
            if not dry_run:
                await self._ensure_authorized()

            try:
                merchants = await self.merchants.list_active()
            except FetchFailure:
                raise
            except Exception as e:
                raise FetchFailure(f"Could not list active merchants: {e}") from e

            if not merchants:
                logger.info("No active merchants to score", extra={"cycle_id": result.cycle_id})
                return result

            slots = await self._score_all(merchants, result)
            scored = [slot for slot in slots if slot.outcome is None]

            for slot in scored:
                result.breakdowns[slot.address] = slot.breakdown

            if dry_run:
                for slot in scored:
                    slot.resolve(OutcomeStatus.DRY_RUN)
                return result

            await self._reconcile(scored, mode, result)
            return result

        except LedgerWriteFailure as e:
            result.error = str(e)
            e.result = result
            raise
        except DomainException as e:
            result.error = str(e)
            raise
        finally:
            result.outcomes = [slot.outcome for slot in slots if slot.outcome is not None]
            result.finished_at = self.clock()
            result.duration_seconds = time.monotonic() - start_time
            self._running = False
            self._stop_requested = False

            for outcome in result.outcomes:
                log_merchant_outcome(result.cycle_id, outcome)
            log_cycle(result)
            record_cycle(result)

    async def status(self) -> OracleStatus:
        """Authorization and balance of the oracle caller; thresholds are the caller's concern"""
        caller = self._require_caller()
        is_authorized, balance = await asyncio.gather(
            self.ledger.is_authorized(caller),
            self.ledger.balance(caller),
        )
        return OracleStatus(oracle_address=caller, is_authorized=is_authorized, balance=balance)

    async def preview(self, address: str) -> Optional[ScoreBreakdown]:
        """Score one merchant without persisting or touching the ledger"""
        merchant = await self.merchants.get(address.lower())
        if merchant is None:
            return None
        transactions, loans = await asyncio.gather(
            self.history.transactions_for(merchant.address),
            self.history.loans_for(merchant.address),
        )
        return scoring.compute(merchant, transactions, loans, self.scoring_config, now=self.clock())

    def _require_caller(self) -> str:
        if not self.oracle_address:
            raise AuthorizationMissing("No oracle address configured")
        return self.oracle_address

    async def _ensure_authorized(self) -> None:
        caller = self._require_caller()
        if not await self.ledger.is_authorized(caller):
            raise AuthorizationMissing(f"Oracle {caller} is not authorized to write scores")

    async def _score_all(self, merchants: Sequence[MerchantRecord], result: CycleResult) -> List[_MerchantSlot]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(merchant: MerchantRecord) -> Optional[_MerchantSlot]:
            async with semaphore:
                if self._stop_requested:
                    return None
                result.considered += 1
                return await self._score_merchant(merchant)

        slots = await asyncio.gather(*(run_one(m) for m in merchants))
        skipped = sum(1 for slot in slots if slot is None)
        if skipped:
            logger.warning(
                "Stop requested, %d merchants not started",
                skipped,
                extra={"cycle_id": result.cycle_id},
            )
        return [slot for slot in slots if slot is not None]

    async def _score_merchant(self, merchant: MerchantRecord) -> _MerchantSlot:
        slot = _MerchantSlot(address=merchant.address)

        try:
            transactions, loans = await asyncio.gather(
                self.history.transactions_for(merchant.address),
                self.history.loans_for(merchant.address),
            )
        except Exception as e:
            slot.resolve(OutcomeStatus.ERROR, reason=f"History fetch failed: {e}")
            return slot

        try:
            slot.breakdown = scoring.compute(merchant, transactions, loans, self.scoring_config, now=self.clock())
        except Exception as e:
            slot.resolve(OutcomeStatus.ERROR, reason=f"Score computation failed: {e}")
            return slot

        if not scoring.is_valid_score(slot.breakdown.total, self.scoring_config):
            slot.resolve(OutcomeStatus.ERROR, reason=f"Score out of range: {slot.breakdown.total}")
            return slot

        # Best-effort: the ledger decision does not depend on the side store
        try:
            await self.persistence.save(merchant.address, slot.breakdown)
            slot.persisted = True
        except Exception as e:
            persistence_failure_counter.inc()
            logger.warning(
                f"Saving score failed: {e}",
                extra={"merchant_address": merchant.address, "step": "persist"},
            )

        return slot

    async def _reconcile(
        self,
        scored: Sequence[_MerchantSlot],
        mode: SyncMode,
        result: CycleResult,
    ) -> None:
        pending: List[tuple] = []

        for slot in scored:
            try:
                current = await self.ledger.read_score(slot.address)
            except Exception as e:
                slot.resolve(OutcomeStatus.ERROR, reason=f"Ledger read failed: {e}")
                continue

            previous = current.score if current.exists else None
            if previous == slot.score:
                slot.resolve(OutcomeStatus.SKIPPED, reason="Score unchanged", previous_score=previous)
            else:
                pending.append((slot, previous))

        if not pending:
            return

        if mode == SyncMode.BATCHED and len(pending) > 1:
            await self._write_batch(pending, result)
        else:
            await self._write_individually(pending, result)

    async def _write_batch(self, pending: Sequence[tuple], result: CycleResult) -> None:
        addresses = [slot.address for slot, _ in pending]
        scores = [slot.score for slot, _ in pending]

        try:
            receipt = await self.ledger.write_scores_batch(addresses, scores)
        except Exception as e:
            for slot, previous in pending:
                slot.resolve(OutcomeStatus.ERROR, reason=f"Batch write failed: {e}", previous_score=previous)
            raise LedgerWriteFailure(f"Batch write of {len(pending)} scores failed: {e}") from e

        result.receipts.append(receipt)
        for slot, previous in pending:
            slot.resolve(OutcomeStatus.WRITTEN, previous_score=previous, tx_hash=receipt.tx_hash)

    async def _write_individually(self, pending: Sequence[tuple], result: CycleResult) -> None:
        for slot, previous in pending:
            try:
                receipt = await self.ledger.write_score(slot.address, slot.score)
            except Exception as e:
                slot.resolve(OutcomeStatus.ERROR, reason=f"Ledger write failed: {e}", previous_score=previous)
                continue

            result.receipts.append(receipt)
            slot.resolve(OutcomeStatus.WRITTEN, previous_score=previous, tx_hash=receipt.tx_hash)
