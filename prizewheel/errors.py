"""Engine error taxonomy.

Each error carries a stable ``code`` (used by the HTTP layer and the bot to
pick a response) and the HTTP ``status_code`` it maps to.
"""

from __future__ import annotations


class PrizeWheelError(Exception):
    """Base exception for all engine errors."""

    code = "ERROR"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


# --- input errors: caller mistakes or legitimate no-op outcomes ---

class InputError(PrizeWheelError):
    pass


class ParticipantNotFoundError(InputError):
    code = "PARTICIPANT_NOT_FOUND"
    status_code = 404
    default_message = "Participant not found"


class NoPendingPrizeError(InputError):
    code = "NO_PENDING_PRIZE"
    status_code = 409
    default_message = "No spin result to claim"


class NotAWinError(InputError):
    code = "NOT_A_WIN"
    status_code = 409
    default_message = "Last spin did not win a prize"


class RegistrationError(InputError):
    code = "INVALID_REGISTRATION"
    status_code = 422
    default_message = "Name and phone (or external id) are required"


class ClaimNotFoundError(InputError):
    code = "CLAIM_NOT_FOUND"
    status_code = 404
    default_message = "Code not found"


# --- contention errors: expected under load ---

class ContentionError(PrizeWheelError):
    pass


class StockRaceError(ContentionError):
    """Guarded stock decrement affected no rows; retried by the coordinator."""

    code = "STOCK_RACE"
    status_code = 409
    default_message = "Prize stock changed during allocation"


class AllocationRaceError(ContentionError):
    code = "ALLOCATION_RACE"
    status_code = 409
    default_message = "Prize allocation contended, please spin again"


# --- business outcomes ---

class BusinessRuleError(PrizeWheelError):
    pass


class QuotaExhaustedError(BusinessRuleError):
    code = "QUOTA_EXHAUSTED"
    status_code = 429
    default_message = "No spins left today"


class BonusAlreadyGrantedError(BusinessRuleError):
    code = "BONUS_ALREADY_GRANTED"
    status_code = 409
    default_message = "Bonus spin already taken today"


class AlreadyRedeemedError(BusinessRuleError):
    code = "ALREADY_REDEEMED"
    status_code = 409
    default_message = "Code already redeemed"


class RateLimitedError(BusinessRuleError):
    code = "RATE_LIMITED"
    status_code = 429
    default_message = "Too many requests, slow down"


# --- configuration errors: the campaign cannot function ---

class ConfigurationError(PrizeWheelError):
    status_code = 503


class NoEligiblePrizesError(ConfigurationError):
    code = "NO_ELIGIBLE_PRIZES"
    default_message = "No prize slot is eligible for selection"


class AdminAuthError(PrizeWheelError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Unauthorized"
