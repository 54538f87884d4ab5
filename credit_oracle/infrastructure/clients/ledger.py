"""Ledger gateway client with exponential backoff retry on writes"""

import asyncio
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Sequence

import httpx

from credit_oracle.config import settings
from credit_oracle.domain.exceptions import LedgerReadFailure, LedgerWriteFailure
from credit_oracle.domain.models import LedgerReceipt, LedgerScore
from credit_oracle.infrastructure.observability.metrics import ledger_failure_counter, ledger_latency_histogram
from credit_oracle.utils.date_utils import coerce_timestamp

logger = logging.getLogger(__name__)


class HttpLedgerClient:
    """Client for the score ledger gateway (reads, single and batched writes, oracle checks)"""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.ledger_api_base).rstrip("/")
        self.api_key = api_key or settings.ledger_api_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = max_retries or settings.ledger_max_retries
        self.backoff_base = settings.ledger_backoff_base if backoff_base is None else backoff_base
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self.transport,
        )

    async def _get(self, operation: str, path: str) -> Dict[str, Any]:
        """
        Single-attempt read.

        Raises:
            LedgerReadFailure: On timeout, HTTP errors, or invalid response
        """
        async with self._client() as client:
            try:
                with ledger_latency_histogram.labels(operation=operation).time():
                    response = await client.get(path)
                    response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as e:
                ledger_failure_counter.labels(operation=operation).inc()
                raise LedgerReadFailure(f"Ledger timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                ledger_failure_counter.labels(operation=operation).inc()
                raise LedgerReadFailure(f"Ledger error: {e.response.status_code}") from e
            except (httpx.RequestError, ValueError) as e:
                ledger_failure_counter.labels(operation=operation).inc()
                raise LedgerReadFailure(f"Ledger unavailable: {e}") from e

    async def _post(self, operation: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Write with retry.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on 5xx errors and network failures; 4xx is final

        Raises:
            LedgerWriteFailure: When the ledger rejects the write or retries run out
        """
        attempt = 0
        async with self._client() as client:
            while True:
                try:
                    with ledger_latency_histogram.labels(operation=operation).time():
                        response = await client.post(path, json=payload)
                        response.raise_for_status()
                    return response.json()

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    ledger_failure_counter.labels(operation=operation).inc()

                    rejected = isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500
                    if rejected or attempt >= self.max_retries:
                        raise LedgerWriteFailure(f"Ledger {operation} failed after {attempt} attempt(s): {e}") from e

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    logger.warning(
                        f"Ledger {operation} attempt {attempt} failed, retrying in {backoff}s",
                        extra={"operation": operation, "attempt": attempt},
                    )
                    await asyncio.sleep(backoff)

                except ValueError as e:
                    raise LedgerWriteFailure(f"Invalid ledger response to {operation}: {e}") from e

    async def read_score(self, address: str) -> LedgerScore:
        data = await self._get("read", f"/scores/{address.lower()}")
        try:
            exists = bool(data["exists"])
            last_updated: Optional[datetime] = (
                coerce_timestamp(data["last_updated"]) if exists and data.get("last_updated") else None
            )
            return LedgerScore(score=int(data["score"]), last_updated=last_updated, exists=exists)
        except (KeyError, ValueError, TypeError) as e:
            raise LedgerReadFailure(f"Invalid score data from ledger: {e}") from e

    async def write_score(self, address: str, score: int) -> LedgerReceipt:
        data = await self._post("write", "/scores", {"address": address.lower(), "score": score})
        return self._receipt(data)

    async def write_scores_batch(self, addresses: Sequence[str], scores: Sequence[int]) -> LedgerReceipt:
        if len(addresses) != len(scores):
            raise ValueError(f"Got {len(addresses)} addresses but {len(scores)} scores")
        if not addresses:
            raise ValueError("Batch write needs at least one score")

        data = await self._post(
            "batch_write",
            "/scores/batch",
            {"addresses": [a.lower() for a in addresses], "scores": list(scores)},
        )
        return self._receipt(data, default_count=len(addresses))

    async def is_authorized(self, caller: str) -> bool:
        data = await self._get("authorized", f"/oracles/{caller.lower()}/authorized")
        return bool(data.get("authorized", False))

    async def balance(self, caller: str) -> Decimal:
        data = await self._get("balance", f"/accounts/{caller.lower()}/balance")
        try:
            return Decimal(str(data["balance"]))
        except (KeyError, InvalidOperation) as e:
            raise LedgerReadFailure(f"Invalid balance data from ledger: {e}") from e

    @staticmethod
    def _receipt(data: Dict[str, Any], default_count: int = 1) -> LedgerReceipt:
        try:
            return LedgerReceipt(
                tx_hash=str(data["tx_hash"]),
                block_number=data.get("block_number"),
                gas_used=data.get("gas_used"),
                updates_count=int(data.get("updates_count", default_count)),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise LedgerWriteFailure(f"Invalid receipt from ledger: {e}") from e
