"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger.json import JsonFormatter

from credit_oracle.domain.models import CycleResult, MerchantOutcome, OutcomeStatus

SERVICE_NAME = "credit-oracle"


class CustomJsonFormatter(JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_merchant_outcome(cycle_id: str, outcome: MerchantOutcome) -> None:
    """Log one merchant's result; errors at warning level so they stand out"""
    level = logging.WARNING if outcome.status == OutcomeStatus.ERROR else logging.INFO
    logging.getLogger("credit_oracle.sync").log(
        level,
        "Merchant %s",
        outcome.status.value,
        extra={
            "cycle_id": cycle_id,
            "step": "merchant_outcome",
            "merchant_address": outcome.address,
            "outcome": outcome.status.value,
            "score": outcome.score,
            "previous_score": outcome.previous_score,
            "reason": outcome.reason,
            "tx_hash": outcome.tx_hash,
        },
    )


def log_cycle(result: CycleResult) -> None:
    """Log structured cycle summary for analysis"""
    logging.getLogger("credit_oracle.sync").info(
        "Cycle completed",
        extra={
            "cycle_id": result.cycle_id,
            "step": "cycle_complete",
            "mode": result.mode.value,
            "dry_run": result.dry_run,
            "considered": result.considered,
            "written": result.written,
            "skipped": result.skipped,
            "errored": result.errored,
            "cycle_error": result.error,
            "duration_ms": round(result.duration_seconds * 1000, 2),
        },
    )
