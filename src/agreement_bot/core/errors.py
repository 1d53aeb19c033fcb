"""
Error taxonomy for the conversation engine.

All errors are scoped to the single event being handled; none of them is
fatal to the process.
"""


class AgreementBotError(Exception):
    """Base class for engine errors."""


class ValidationError(AgreementBotError):
    """User input did not pass the current step's validator."""

    def __init__(self, reason: str, *args: object) -> None:
        super().__init__(reason)
        self.reason = reason      # i18n key
        self.args_ = args         # positional values for the i18n template


class UnknownState(AgreementBotError):
    """No active conversation (missing, expired or unrecognized state id)."""


class PersistenceError(AgreementBotError):
    """The state store or the agreement repository failed."""


class CapacityExceeded(AgreementBotError):
    """The custom reminder list is full."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"reminder limit of {limit} reached")
        self.limit = limit


class DeliveryError(AgreementBotError):
    """A scheduled message could not be handed to the messaging platform."""

    def __init__(self, message: str, permanent: bool = False) -> None:
        super().__init__(message)
        self.permanent = permanent   # chat gone or bot blocked; retrying will not help
