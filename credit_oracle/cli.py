"""
Credit score oracle CLI entry point.

Install and run::

    pip install -e .
    credit-oracle --help
    credit-oracle init-db
    credit-oracle import-documents export.json
    credit-oracle status
    credit-oracle update-scores --dry-run
    credit-oracle update-scores --individual
    credit-oracle run-service
"""

import asyncio
import signal
from decimal import Decimal
from pathlib import Path

import typer

from credit_oracle.config import settings
from credit_oracle.domain.exceptions import (
    AuthorizationMissing,
    ConfigurationError,
    CycleAlreadyRunning,
    DomainException,
    LedgerWriteFailure,
)
from credit_oracle.domain.models import CycleResult, OutcomeStatus, SyncMode
from credit_oracle.infrastructure.observability.logging import setup_logging

app = typer.Typer(
    name="credit-oracle",
    help="Merchant credit score oracle: score merchants and publish scores to the ledger.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _build_orchestrator():
    from credit_oracle.services.factory import build_orchestrator

    return build_orchestrator()


def _validate_config_or_exit() -> None:
    try:
        settings.validate_for_writes()
    except ConfigurationError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


def _echo_result(result: CycleResult) -> None:
    typer.echo(f"Cycle {result.cycle_id} ({result.mode.value}{', dry run' if result.dry_run else ''})")
    typer.echo(f"  Considered: {result.considered}")
    typer.echo(f"  Written:    {result.written}")
    typer.echo(f"  Skipped:    {result.skipped}")
    typer.echo(f"  Errored:    {result.errored}")
    typer.echo(f"  Duration:   {result.duration_seconds:.2f}s")

    for outcome in result.outcomes:
        line = f"    {outcome.address}: {outcome.status.value}"
        if outcome.score is not None:
            line += f" score={outcome.score}"
        if outcome.status == OutcomeStatus.ERROR and outcome.reason:
            line += f" ({outcome.reason})"
        typer.echo(line)


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db() -> None:
    """Create the document store tables if they do not exist."""
    from credit_oracle.infrastructure.database.models import Base
    from credit_oracle.infrastructure.database.session import engine

    setup_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)
    typer.echo("[OK] Database ready.")


@app.command("import-documents")
def import_documents(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON export with merchants, transactions, loans."),
) -> None:
    """Validate and load a document export into the database."""
    from credit_oracle.infrastructure.database.importer import import_file
    from credit_oracle.infrastructure.database.session import SessionLocal

    setup_logging(settings.log_level)
    with SessionLocal() as db:
        try:
            summary = import_file(db, path)
        except DomainException as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)

    typer.echo(f"  Merchants:    {summary.merchants}")
    typer.echo(f"  Transactions: {summary.transactions}")
    typer.echo(f"  Loans:        {summary.loans}")
    typer.echo("[OK] Import complete.")


@app.command("status")
def status() -> None:
    """Show whether the oracle address is authorized and funded."""
    setup_logging(settings.log_level)
    _validate_config_or_exit()
    orchestrator = _build_orchestrator()

    try:
        oracle_status = asyncio.run(orchestrator.status())
    except DomainException as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  Address:    {oracle_status.oracle_address}")
    typer.echo(f"  Balance:    {oracle_status.balance}")
    typer.echo(f"  Authorized: {'yes' if oracle_status.is_authorized else 'NO'}")
    typer.echo(f"  Ledger:     {settings.ledger_api_base}")

    if oracle_status.balance < Decimal(str(settings.low_balance_threshold)):
        typer.echo(f"[WARN] Low balance, fund {oracle_status.oracle_address} to cover write fees.", err=True)


@app.command("update-scores")
def update_scores(
    dry_run: bool = typer.Option(False, "--dry-run", help="Compute and save scores without writing to the ledger."),
    individual: bool = typer.Option(False, "--individual", help="One ledger write per merchant instead of a batch."),
) -> None:
    """Run one reconciliation cycle now.

    Exits with code 1 if the cycle could not run or the batched write failed.
    """
    setup_logging(settings.log_level)
    if not dry_run:
        _validate_config_or_exit()

    orchestrator = _build_orchestrator()
    mode = SyncMode.INDIVIDUAL if individual else SyncMode.BATCHED

    try:
        result = asyncio.run(orchestrator.run_cycle(mode=mode, dry_run=dry_run))
    except LedgerWriteFailure as exc:
        if exc.result is not None:
            _echo_result(exc.result)
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except DomainException as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    _echo_result(result)
    typer.echo("[OK] Update completed.")


@app.command("run-service")
def run_service() -> None:
    """Check the oracle, run an initial cycle and keep updating on the cron schedule.

    Scheduling only happens with AUTO_UPDATE_ENABLED=true; otherwise the command
    exits after the checks.
    """
    setup_logging(settings.log_level)
    _validate_config_or_exit()
    orchestrator = _build_orchestrator()

    try:
        asyncio.run(_serve(orchestrator))
    except AuthorizationMissing as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        typer.echo("        Authorize the oracle address on the ledger before starting the service.", err=True)
        raise typer.Exit(code=1)
    except DomainException as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


async def _scheduled_cycle(orchestrator) -> None:
    try:
        await orchestrator.run_cycle(mode=SyncMode.BATCHED)
    except CycleAlreadyRunning:
        typer.echo("[WARN] Previous cycle still running, skipping this run.", err=True)
    except DomainException as exc:
        typer.echo(f"[ERROR] Scheduled update failed: {exc}", err=True)


async def _serve(orchestrator) -> None:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from apscheduler.triggers.cron import CronTrigger

    oracle_status = await orchestrator.status()
    if not oracle_status.is_authorized:
        raise AuthorizationMissing(f"Oracle {oracle_status.oracle_address} is not authorized to write scores")
    if oracle_status.balance < Decimal(str(settings.low_balance_threshold)):
        typer.echo(f"[WARN] Low balance ({oracle_status.balance}) on {oracle_status.oracle_address}.", err=True)

    if not settings.auto_update_enabled:
        typer.echo("Auto-update is disabled (set AUTO_UPDATE_ENABLED=true to enable).")
        return

    typer.echo("Running initial credit score update...")
    await _scheduled_cycle(orchestrator)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        _scheduled_cycle,
        CronTrigger.from_crontab(settings.update_cron_schedule, timezone="UTC"),
        args=(orchestrator,),
        id="update_scores",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60 * 5,
    )
    scheduler.start()
    typer.echo(f"Scheduled automatic updates: {settings.update_cron_schedule} (Ctrl+C to stop)")

    await stop.wait()

    typer.echo("Shutting down oracle service...")
    scheduler.shutdown(wait=False)
    orchestrator.request_stop()
    while orchestrator.is_running:
        await asyncio.sleep(0.5)


if __name__ == "__main__":
    app()
