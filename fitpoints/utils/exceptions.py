"""
Custom exceptions for FitPoints business logic.

Raised by the ledger and the redemption store; the redemption service turns
them into typed outcome dicts and the API renders them with their code.
"""


class FitPointsError(Exception):
    """Base exception for all FitPoints business logic errors."""

    def __init__(self, message: str, code: str = "FITPOINTS_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidAmountError(FitPointsError):
    """Points amount is not a positive integer."""

    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Points amount must be a positive integer, got {amount!r}", "INVALID_AMOUNT")


class InsufficientPointsError(FitPointsError):
    """Not enough points for the operation."""

    def __init__(self, current: int, required: int):
        self.current = current
        self.required = required
        message = f"Insufficient points. Current: {current}, Required: {required}"
        super().__init__(message, "INSUFFICIENT_BALANCE")


class AccountNotFoundError(FitPointsError):
    """No points account exists for the member."""

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Points account for member {member_id} not found", "NOT_FOUND")


class RequestNotFoundError(FitPointsError):
    """No redemption request matches the code or id."""

    def __init__(self, identifier=None):
        message = "Redemption request not found"
        if identifier:
            message = f"Redemption request {identifier} not found"
        super().__init__(message, "NOT_FOUND")


class RequestExpiredError(FitPointsError):
    """The redemption request's confirmation window has elapsed."""

    def __init__(self, identifier=None):
        super().__init__(f"Redemption request {identifier} has expired", "EXPIRED")


class AlreadyConfirmedError(FitPointsError):
    """The redemption request was already confirmed."""

    def __init__(self, identifier=None):
        super().__init__(f"Redemption request {identifier} was already confirmed", "ALREADY_CONFIRMED")


class RequestCancelledError(FitPointsError):
    """The redemption request was cancelled."""

    def __init__(self, identifier=None):
        super().__init__(f"Redemption request {identifier} was cancelled", "CANCELLED")


class CodeSpaceExhaustedError(FitPointsError):
    """No free verification code could be drawn."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        message = f"Could not generate a free verification code after {attempts} attempts"
        super().__init__(message, "CODE_SPACE_EXHAUSTED")


class AuthorizationError(FitPointsError):
    """Actor not authorized for this operation."""

    def __init__(self, message: str = "Not authorized for this operation"):
        super().__init__(message, "FORBIDDEN")


class StorageError(FitPointsError):
    """The database failed to commit; nothing was applied."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, "STORAGE_ERROR")


class DuplicateAwardError(FitPointsError):
    """A one-time award was already granted to the member."""

    def __init__(self, member_id: str, source: str):
        self.member_id = member_id
        self.source = source
        super().__init__(f"{source} points were already awarded to member {member_id}", "ALREADY_AWARDED")
