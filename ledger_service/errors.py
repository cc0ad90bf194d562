"""Ledger exceptions. Fraud outcomes are results, not errors."""
from common.error_handling import BusinessLogicError, ServiceError, ErrorCodes

class Unauthorized(BusinessLogicError):
    code = ErrorCodes.UNAUTHORIZED
    status_code = 401

    def __init__(self, message: str = "Transaction not authorized"):
        super().__init__(message)

class InsufficientFunds(BusinessLogicError):
    code = ErrorCodes.INSUFFICIENT_FUNDS

    def __init__(self, message: str = "Insufficient balance"):
        super().__init__(message)

class AccountNotFound(BusinessLogicError):
    code = ErrorCodes.ACCOUNT_NOT_FOUND
    status_code = 404

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__("Account not found", context={"account_id": account_id})

class ReceiverNotFound(BusinessLogicError):
    code = ErrorCodes.RECEIVER_NOT_FOUND
    status_code = 404

    def __init__(self, message: str = "Receiver UPI not found"):
        super().__init__(message)

class AccountFrozen(BusinessLogicError):
    code = ErrorCodes.ACCOUNT_FROZEN
    status_code = 403

    def __init__(self, account_id: str):
        super().__init__("Account is frozen", context={"account_id": account_id})

class PersistenceConflict(ServiceError):
    """Concurrent balance updates kept winning the compare-and-set."""
    code = ErrorCodes.PERSISTENCE_CONFLICT

class DependencyUnavailable(ServiceError):
    code = ErrorCodes.SERVICE_UNAVAILABLE
    status_code = 503

    def __init__(self, dependency: str, original_error: Exception = None):
        self.dependency = dependency
        super().__init__("Service unavailable", original_error=original_error)
