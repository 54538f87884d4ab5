"""Integration tests for API endpoints"""

from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from credit_oracle.api.main import create_app
from credit_oracle.config import Settings
from credit_oracle.infrastructure.clients.ledger import HttpLedgerClient
from credit_oracle.infrastructure.database.models import Merchant, MerchantLoan, MerchantTransaction
from credit_oracle.services.factory import build_orchestrator
from ledger_stub.main import LedgerState, create_app as create_ledger_app
from conftest import ADDR_A, ADDR_B, ADDR_C, NOW, ORACLE

pytestmark = pytest.mark.integration


@pytest.fixture
def ledger_state() -> LedgerState:
    state = LedgerState()
    state.authorized.add(ORACLE)
    state.balances[ORACLE] = Decimal("3")
    return state


@pytest.fixture
def orchestrator(session_factory, ledger_state):
    with session_factory() as db:
        db.add_all(
            [
                Merchant(address=ADDR_A, registered_at=NOW - timedelta(days=400), is_active=True),
                Merchant(address=ADDR_B, registered_at=NOW - timedelta(days=100), is_active=True),
                Merchant(address=ADDR_C, registered_at=NOW - timedelta(days=10), is_active=False),
            ]
        )
        db.flush()
        for i in range(3):
            db.add(MerchantTransaction(merchant_address=ADDR_A, amount=1000, currency="cUSD", timestamp=NOW - timedelta(days=10 * i)))
        for i in range(12):
            db.add(MerchantTransaction(merchant_address=ADDR_B, amount=50 + i, currency="CELO", timestamp=NOW - timedelta(days=2 * i)))
        db.add(
            MerchantLoan(
                merchant_address=ADDR_B,
                amount=300,
                status="repaying",
                requested_at=NOW - timedelta(days=20),
            )
        )
        db.commit()

    ledger = HttpLedgerClient(
        base_url="http://ledger",
        transport=httpx.ASGITransport(app=create_ledger_app(ledger_state)),
        max_retries=1,
        backoff_base=0,
    )
    orchestrator = build_orchestrator(
        session_factory=session_factory,
        ledger=ledger,
        settings=Settings(oracle_address=ORACLE),
    )
    orchestrator.clock = lambda: NOW
    return orchestrator


@pytest.fixture
def client(orchestrator) -> TestClient:
    with TestClient(create_app(orchestrator=orchestrator)) as test_client:
        yield test_client


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["cycle_running"] is False


def test_request_id_is_propagated(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    client.post("/v1/cycles", json={"dry_run": True})
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "credit_oracle_cycle_total" in response.text


def test_status_endpoint(client: TestClient):
    response = client.get("/v1/status")

    assert response.status_code == 200
    data = response.json()
    assert data["oracle_address"] == ORACLE
    assert data["is_authorized"] is True
    assert data["balance"] == "3"
    assert data["low_balance"] is False


def test_cycle_writes_scores_to_ledger(client: TestClient, ledger_state: LedgerState):
    response = client.post("/v1/cycles", json={"mode": "batched"})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["considered"] == 2
    assert data["written"] == 2
    assert len(data["receipts"]) == 1
    assert set(ledger_state.scores) == {ADDR_A, ADDR_B}
    assert ledger_state.scores[ADDR_A]["score"] == 759


def test_repeated_cycle_skips_unchanged_scores(client: TestClient, ledger_state: LedgerState):
    client.post("/v1/cycles", json={"mode": "individual"})
    writes_after_first = len(ledger_state.writes)

    response = client.post("/v1/cycles", json={"mode": "individual"})

    assert response.json()["skipped"] == 2
    assert len(ledger_state.writes) == writes_after_first


def test_dry_run_cycle(client: TestClient, ledger_state: LedgerState):
    response = client.post("/v1/cycles", json={"dry_run": True})

    assert response.status_code == 200
    assert response.json()["changed"] == 2
    assert {o["status"] for o in response.json()["outcomes"]} == {"dry_run"}
    assert ledger_state.scores == {}


def test_unauthorized_cycle_is_forbidden(client: TestClient, ledger_state: LedgerState):
    ledger_state.authorized.clear()

    response = client.post("/v1/cycles", json={})

    assert response.status_code == 403


def test_failed_batch_returns_partial_result(client: TestClient, ledger_state: LedgerState, orchestrator):
    orchestrator.ledger = HttpLedgerClient(
        base_url="http://ledger",
        transport=httpx.MockTransport(lambda request: _reject_writes(request, ledger_state)),
        max_retries=1,
        backoff_base=0,
    )

    response = client.post("/v1/cycles", json={"mode": "batched"})

    assert response.status_code == 502
    data = response.json()
    assert data["success"] is False
    assert data["errored"] == 2
    # Scores are still available from the side store
    assert client.get(f"/v1/scores/{ADDR_A}").status_code == 200


def _reject_writes(request: httpx.Request, state: LedgerState) -> httpx.Response:
    if request.method == "POST":
        return httpx.Response(500, json={"detail": "reverted"})
    if request.url.path.endswith("/authorized"):
        return httpx.Response(200, json={"authorized": True})
    return httpx.Response(200, json={"score": 0, "last_updated": 0, "exists": False})


def test_invalid_cycle_mode(client: TestClient):
    response = client.post("/v1/cycles", json={"mode": "sometimes"})
    assert response.status_code == 422


def test_stored_score_after_cycle(client: TestClient):
    assert client.get(f"/v1/scores/{ADDR_A}").status_code == 404

    client.post("/v1/cycles", json={"dry_run": True})
    response = client.get(f"/v1/scores/{ADDR_A}")

    assert response.status_code == 200
    data = response.json()
    assert data["score"] == 759
    assert data["metadata"]["transaction_count"] == 3
    assert set(data["factors"]) == set(data["weights"])


def test_preview_score(client: TestClient, ledger_state: LedgerState):
    response = client.get(f"/v1/merchants/{ADDR_B}/score")

    assert response.status_code == 200
    assert 300 <= response.json()["score"] <= 850
    assert ledger_state.scores == {}
    assert client.get(f"/v1/scores/{ADDR_B}").status_code == 404


def test_preview_unknown_merchant(client: TestClient):
    response = client.get("/v1/merchants/0x" + "9" * 40 + "/score")
    assert response.status_code == 404
