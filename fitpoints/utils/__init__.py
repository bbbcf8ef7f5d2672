"""
Utility modules for FitPoints.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    outcome_error,
    bad_request,
    unauthorized,
    forbidden,
    not_found,
    internal_error
)
from .exceptions import (
    FitPointsError,
    InvalidAmountError,
    InsufficientPointsError,
    AccountNotFoundError,
    RequestNotFoundError,
    RequestExpiredError,
    AlreadyConfirmedError,
    RequestCancelledError,
    CodeSpaceExhaustedError,
    AuthorizationError,
    StorageError,
    DuplicateAwardError,
)
from .locks import KeyedLock
