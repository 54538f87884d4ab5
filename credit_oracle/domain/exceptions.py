"""Domain-specific exceptions"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from credit_oracle.domain.models import CycleResult


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ConfigurationError(DomainException):
    """Required configuration is missing or invalid"""

    pass


class InvalidDocumentError(DomainException):
    """Document from the store is malformed or invalid"""

    pass


class FetchFailure(DomainException):
    """Reading merchant records or history from the document store failed"""

    pass


class PersistenceFailure(DomainException):
    """Saving a computed score to the side store failed"""

    pass


class LedgerReadFailure(DomainException):
    """Ledger returned an error or is unavailable on a read"""

    pass


class LedgerWriteFailure(DomainException):
    """Ledger rejected a score write or stayed unavailable after retries"""

    def __init__(self, message: str, result: Optional["CycleResult"] = None):
        super().__init__(message)
        self.result = result


class AuthorizationMissing(DomainException):
    """Oracle caller is not authorized to write scores on the ledger"""

    pass


class CycleAlreadyRunning(DomainException):
    """A reconciliation cycle is already in progress"""

    pass
