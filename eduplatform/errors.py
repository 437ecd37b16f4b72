"""
Business-rule errors raised by the service layer.

Every error carries a stable ``code`` so clients can tell an invalid
operation apart from an infrastructure failure worth retrying. The HTTP
status used by the API handlers lives on the class as well.
"""


class DomainError(Exception):
    """Base class for all business-rule violations."""

    code = "domain_error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class NotFound(DomainError):
    """Referenced exam, attempt, question, user or record does not exist."""

    code = "not_found"
    status_code = 404


class Forbidden(DomainError):
    """Caller does not own the resource."""

    code = "forbidden"
    status_code = 403


class InvalidState(DomainError):
    """Operation not allowed in the resource's current state."""

    code = "invalid_state"
    status_code = 409


class AlreadyCompleted(InvalidState):
    """Exam attempt has already been finalized."""

    code = "already_completed"


class InvalidAmount(DomainError):
    """Point amount is not a positive integer."""

    code = "invalid_amount"
    status_code = 400


class InvalidTransfer(DomainError):
    """Transfer between a user and themselves."""

    code = "invalid_transfer"
    status_code = 400


class InsufficientBalance(DomainError):
    """Debit larger than the user's current balance."""

    code = "insufficient_balance"
    status_code = 409
