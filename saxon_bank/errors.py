"""
Banking error hierarchy.

Every failure a ledger operation or approval decision can produce is a
BankingError subclass. They are recoverable at the request boundary: the API
turns them into user-facing messages, never into a crashed process.
"""


class BankingError(Exception):
    """Base class for all recoverable banking errors"""

    code = "banking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidAmount(BankingError):
    """Amount is non-positive, non-numeric or not finite"""
    code = "invalid_amount"


class InsufficientFunds(BankingError):
    """Debit larger than the available balance"""
    code = "insufficient_funds"

    def __init__(self, message: str, balance=None, requested=None):
        super().__init__(message)
        self.balance = balance
        self.requested = requested


class RecipientNotFound(BankingError):
    """Transfer recipient account number does not resolve"""
    code = "recipient_not_found"


class NotFound(BankingError):
    """Unknown account, transaction, request or biller id"""
    code = "not_found"


class AlreadyProcessed(BankingError):
    """Record already reached a terminal state"""
    code = "already_processed"


class DuplicateRequest(BankingError):
    """An equivalent record already exists (pending request, email, biller)"""
    code = "duplicate_request"


class InvalidTransfer(BankingError):
    """Transfer that can never be valid, such as to the sender's own account"""
    code = "invalid_transfer"


class InvalidAction(BankingError):
    """Unknown action verb, e.g. a balance adjustment other than add/deduct"""
    code = "invalid_action"


class PermissionDenied(BankingError):
    """Caller lacks the role the operation requires"""
    code = "permission_denied"


class ValidationError(BankingError):
    """Request data is missing or malformed"""
    code = "validation_error"


class RegistrationError(ValidationError):
    """Registration data fails eligibility rules"""
    code = "registration_error"


class AuthenticationError(BankingError):
    """Credentials or bearer token rejected"""
    code = "authentication_error"
