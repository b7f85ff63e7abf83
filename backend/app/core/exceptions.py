"""
Domain errors for unlock code issuance and redemption

Services raise these; the API layer turns them into HTTP responses.
"""


class UnlockCodeError(Exception):
    """Base class for all unlock code errors"""

    message = "Unlock code error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(UnlockCodeError):
    """Missing or malformed input. Nothing was persisted."""

    message = "Missing required fields"


class NotFoundError(UnlockCodeError):
    """A referenced record does not exist. Nothing was persisted."""

    message = "Not found"


class CodeGenerationExhaustedError(UnlockCodeError):
    """
    Every generation attempt collided with an existing code hash.

    The owning transaction may already be stored; retrying the whole
    issuance draws fresh randomness.
    """

    message = "Failed to generate unique code"


class PersistenceError(UnlockCodeError):
    """Storage layer failure"""

    message = "Storage error"


class CodeAlreadyUsedError(UnlockCodeError):
    message = "This code has already been redeemed"


class CodeExpiredError(UnlockCodeError):
    message = "This code has expired"


class AlreadyEnrolledError(UnlockCodeError):
    message = "You are already enrolled in this course"
