"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    code = "domain_error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(DomainException):
    """Client-correctable input problem (bounds, token, bank details)"""

    code = "validation_error"


class InsufficientFundsError(DomainException):
    """Live wallet balance cannot cover the swap and/or gas"""

    code = "insufficient_funds"

    def __init__(self, message: str, shortfall: str):
        super().__init__(message, code=f"insufficient_{shortfall}")
        self.shortfall = shortfall  # "token" | "gas" | "combined"


class UpstreamUnavailableError(DomainException):
    """RPC, price feed or payment gateway failed or timed out"""

    code = "upstream_unavailable"

    def __init__(self, message: str, service: str = "upstream"):
        super().__init__(message)
        self.service = service


class StateConflictError(DomainException):
    """Transition requested from a terminal or wrong state"""

    code = "state_conflict"


class ConcurrentModificationError(StateConflictError):
    """Record changed between read and write (optimistic version mismatch)"""

    code = "concurrent_modification"


class AuthorizationError(DomainException):
    """Caller lacks the capability required for an admin action"""

    code = "forbidden"


class NotFoundError(DomainException):
    code = "not_found"


class TransactionNotFoundError(NotFoundError):
    pass


class PayoutRejectedError(DomainException):
    """Payment gateway refused the transfer (e.g. balance too low)"""

    code = "payout_rejected"


class TokenCreditError(DomainException):
    """Crediting service refused or failed to send tokens"""

    code = "token_credit_failed"
