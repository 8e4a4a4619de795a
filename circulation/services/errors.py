"""Domain errors raised by the circulation services.

Each error carries the HTTP status it maps to; ``main.py`` renders them as
``{"message": ..., "errors": [...]}``.
"""
from typing import List, Optional


class CirculationError(Exception):
    """Base error for circulation rules."""
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class NotFoundError(CirculationError):
    status_code = 404


class ConflictError(CirculationError):
    """The entity is in a state that conflicts with the request."""
    status_code = 409


class PolicyViolation(CirculationError):
    """A circulation rule forbids the request."""
    status_code = 422


class ValidationError(CirculationError):
    status_code = 422


class CopyUnavailable(ConflictError):
    pass


class DuplicateReservation(ConflictError):
    pass


class LoanAlreadyReturned(ConflictError):
    pass


class ReservationNotActive(ConflictError):
    pass


class RenewalLimitExceeded(PolicyViolation):
    pass


class LoanOverdue(PolicyViolation):
    pass


class MemberIneligible(PolicyViolation):
    pass


class FineNotPending(PolicyViolation):
    pass


class ReservationNotReady(PolicyViolation):
    pass


class ReservationExpired(PolicyViolation):
    pass


class OverpaymentRejected(PolicyViolation):
    pass
