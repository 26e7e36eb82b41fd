"""
Domain error taxonomy.

Every error a caller can act on derives from AppError and carries:
- code: stable machine-readable identifier
- status_code: HTTP-equivalent status used by the exception handlers
- retryable: whether the same request may succeed later (seat conflicts are
  retryable with different seats; validation errors are not)
- details: structured payload (e.g. the conflicting seats)
"""
from typing import Any, Dict, Iterable, Optional


class AppError(Exception):
    code = "app_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ---------------- 400: invalid input ----------------

class ValidationError(AppError):
    code = "validation_error"
    status_code = 400


class SeatCountMismatch(ValidationError):
    code = "seat_count_mismatch"


class InvalidSeatNumber(ValidationError):
    code = "invalid_seat_number"


class InvalidStopPair(ValidationError):
    code = "invalid_stop_pair"


class InvalidRouteDefinition(ValidationError):
    code = "invalid_route_definition"


# ---------------- 404 ----------------

class NotFoundError(AppError):
    code = "not_found"
    status_code = 404


class RouteNotFound(NotFoundError):
    code = "route_not_found"


class BookingNotFound(NotFoundError):
    code = "booking_not_found"


# ---------------- 409 ----------------

class ConflictError(AppError):
    code = "conflict"
    status_code = 409
    retryable = True


class SeatConflict(ConflictError):
    code = "seat_conflict"

    def __init__(self, seats: Iterable[str]):
        self.seats = sorted(set(seats), key=_seat_sort_key)
        super().__init__(
            f"Seat(s) already booked for this date: {', '.join(self.seats)}",
            details={"seats": self.seats},
        )


# ---------------- 403 ----------------

class ForbiddenError(AppError):
    code = "forbidden"
    status_code = 403


# ---------------- 400: business rules ----------------

class BusinessRuleError(AppError):
    code = "business_rule_violation"
    status_code = 400


class RouteInactive(BusinessRuleError):
    code = "route_inactive"


class AlreadyCancelled(BusinessRuleError):
    code = "already_cancelled"


class TooLateToCancel(BusinessRuleError):
    code = "too_late_to_cancel"


class InvalidTransition(BusinessRuleError):
    code = "invalid_transition"


# ---------------- channel failures ----------------

class DependencyError(AppError):
    """A channel provider could not be reached. Captured per channel, never escalated."""
    code = "dependency_error"
    status_code = 502
    retryable = True


def _seat_sort_key(seat: str):
    return (0, int(seat), seat) if seat.isascii() and seat.isdigit() else (1, 0, seat)
