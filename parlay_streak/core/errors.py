"""
Error taxonomy for the settlement engine.

Every error carries a stable machine-readable ``code`` (what clients switch
on), an HTTP status for the API layer and optional ``details`` that let the
UI reconcile a stale view (current outcome, minutes until start, missing
metrics, ...).

Categories:
- ValidationError: malformed input, rejected before anything is stored
- NotFoundError / ForbiddenError: unknown or foreign resources
- TimingError: the game has not started yet; retry later
- StateError: the client's view is stale (already resolved, locked, ...)
- DataIncompleteError: stats not yet available; bet stays pending
- ProviderError: the stats provider failed; transient, retryable
- UnsupportedBetConfigError: data-model mismatch, fatal
"""
from typing import Any, Optional


class StreakEngineError(Exception):
    """Base class for all domain errors."""

    code = "INTERNAL_ERROR"
    status_code = 500
    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class ValidationError(StreakEngineError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(StreakEngineError):
    code = "NOT_FOUND"
    status_code = 404


class ForbiddenError(StreakEngineError):
    code = "FORBIDDEN"
    status_code = 403


class TimingError(StreakEngineError):
    code = "GAME_NOT_STARTED"
    status_code = 400
    retryable = True


class StateError(StreakEngineError):
    code = "INVALID_STATE"
    status_code = 409


class DataIncompleteError(StreakEngineError):
    code = "RESOLUTION_FAILED"
    status_code = 409
    retryable = True


class ProviderError(StreakEngineError):
    code = "GAME_DATA_FETCH_FAILED"
    status_code = 503
    retryable = True


class UnsupportedBetConfigError(StreakEngineError):
    code = "UNSUPPORTED_BET_CONFIG"
    status_code = 500


# ----------------------------------------------------------------------------
# Concrete errors raised by the services
# ----------------------------------------------------------------------------

class BetNotFoundError(NotFoundError):
    def __init__(self, bet_id: str):
        super().__init__(f"Bet {bet_id} not found", details={"bet_id": bet_id})


class GameNotStartedError(TimingError):
    pass


class AlreadyResolvedError(StateError):
    code = "ALREADY_RESOLVED"


class GameInvalidStatusError(StateError):
    code = "GAME_INVALID_STATUS"


class ParlayLockedError(StateError):
    code = "PARLAY_LOCKED"


class GameDataFetchError(ProviderError):
    pass


class ResolutionFailedError(DataIncompleteError):
    pass


class GameStartedError(StateError):
    code = "GAME_STARTED"


class BetUnavailableError(StateError):
    code = "BET_UNAVAILABLE"


class InsuranceLockedError(StateError):
    code = "INSURANCE_LOCKED"


class DuplicateBetError(ValidationError):
    code = "DUPLICATE_BET"
