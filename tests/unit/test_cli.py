"""Tests for the credit-oracle command line"""

import json

import pytest
from typer.testing import CliRunner

from credit_oracle import cli
from credit_oracle.config import settings
from conftest import ADDR_A, ORACLE

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, orchestrator):
    monkeypatch.setattr(cli, "setup_logging", lambda level: None)
    monkeypatch.setattr(cli, "_build_orchestrator", lambda: orchestrator)
    monkeypatch.setattr(settings, "oracle_address", ORACLE)


def test_update_scores_batched():
    result = runner.invoke(cli.app, ["update-scores"])

    assert result.exit_code == 0, result.output
    assert "(batched)" in result.output
    assert "Written:    3" in result.output
    assert "[OK] Update completed." in result.output


def test_update_scores_individual(ledger):
    result = runner.invoke(cli.app, ["update-scores", "--individual"])

    assert result.exit_code == 0, result.output
    assert "(individual)" in result.output
    assert len(ledger.writes) == 3


def test_update_scores_dry_run_skips_config_check(monkeypatch, ledger):
    monkeypatch.setattr(settings, "oracle_address", None)

    result = runner.invoke(cli.app, ["update-scores", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "dry run" in result.output
    assert f"{ADDR_A}: dry_run" in result.output
    assert ledger.write_calls == 0


def test_update_scores_requires_oracle_address(monkeypatch):
    monkeypatch.setattr(settings, "oracle_address", None)

    result = runner.invoke(cli.app, ["update-scores"])

    assert result.exit_code == 1
    assert "ORACLE_ADDRESS is required" in result.output


def test_update_scores_batch_failure_exits_nonzero(ledger):
    ledger.fail_batch = True

    result = runner.invoke(cli.app, ["update-scores"])

    assert result.exit_code == 1
    assert "Errored:    3" in result.output
    assert "[ERROR]" in result.output


def test_update_scores_unauthorized(ledger):
    ledger.authorized.clear()

    result = runner.invoke(cli.app, ["update-scores"])

    assert result.exit_code == 1
    assert "not authorized" in result.output


def test_status():
    result = runner.invoke(cli.app, ["status"])

    assert result.exit_code == 0, result.output
    assert f"Address:    {ORACLE}" in result.output
    assert "Authorized: yes" in result.output
    assert "Low balance" not in result.output


def test_status_warns_on_low_balance(ledger):
    ledger._balance = ledger._balance * 0

    result = runner.invoke(cli.app, ["status"])

    assert result.exit_code == 0
    assert "Low balance" in result.output


def test_run_service_refuses_unauthorized_oracle(ledger):
    ledger.authorized.clear()

    result = runner.invoke(cli.app, ["run-service"])

    assert result.exit_code == 1
    assert "Authorize the oracle address" in result.output


def test_run_service_exits_when_auto_update_disabled(monkeypatch, ledger):
    monkeypatch.setattr(settings, "auto_update_enabled", False)

    result = runner.invoke(cli.app, ["run-service"])

    assert result.exit_code == 0, result.output
    assert "Auto-update is disabled" in result.output
    assert ledger.write_calls == 0


def test_import_documents(monkeypatch, session_factory, tmp_path):
    from credit_oracle.infrastructure.database import session

    monkeypatch.setattr(session, "SessionLocal", session_factory)
    path = tmp_path / "export.json"
    path.write_text(
        json.dumps(
            {
                "merchants": [
                    {
                        "walletAddress": ADDR_A,
                        "businessName": "Duka",
                        "businessCategory": "retail",
                        "location": "Accra",
                        "isActive": True,
                    }
                ]
            }
        ),
        encoding="utf-8",
    )

    result = runner.invoke(cli.app, ["import-documents", str(path)])

    assert result.exit_code == 0, result.output
    assert "Merchants:    1" in result.output


def test_import_documents_reports_invalid_file(monkeypatch, session_factory, tmp_path):
    from credit_oracle.infrastructure.database import session

    monkeypatch.setattr(session, "SessionLocal", session_factory)
    path = tmp_path / "export.json"
    path.write_text("[]", encoding="utf-8")

    result = runner.invoke(cli.app, ["import-documents", str(path)])

    assert result.exit_code == 1
    assert "[ERROR]" in result.output
