"""Wire the orchestrator to the SQL document store and the HTTP ledger"""

from sqlalchemy.orm import sessionmaker

from credit_oracle.config import Settings, settings as default_settings
from credit_oracle.domain.scoring import ScoringConfig
from credit_oracle.infrastructure.clients.ledger import HttpLedgerClient
from credit_oracle.infrastructure.database.repositories import (
    SqlHistoryRepository,
    SqlMerchantRepository,
    SqlScorePersistence,
)
from credit_oracle.services.sync import SyncOrchestrator


def build_orchestrator(
    session_factory: sessionmaker | None = None,
    ledger: HttpLedgerClient | None = None,
    settings: Settings | None = None,
) -> SyncOrchestrator:
    settings = settings or default_settings
    if session_factory is None:
        from credit_oracle.infrastructure.database.session import SessionLocal

        session_factory = SessionLocal

    return SyncOrchestrator(
        merchants=SqlMerchantRepository(session_factory),
        history=SqlHistoryRepository(session_factory),
        persistence=SqlScorePersistence(session_factory),
        ledger=ledger or HttpLedgerClient(base_url=settings.ledger_api_base, api_key=settings.ledger_api_key),
        oracle_address=settings.oracle_address,
        scoring_config=ScoringConfig.from_settings(settings),
        max_concurrency=settings.sync_max_concurrency,
    )
