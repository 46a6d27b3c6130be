"""Domain errors raised by the booking core.

Each carries the HTTP status and a stable machine code so the web layer can
render it without knowing the business rule behind it.
"""


class BookingError(Exception):
    status_code = 400
    code = "booking_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(BookingError):
    """Malformed input. The caller has to fix it; never retried."""

    status_code = 400
    code = "validation_error"


class SlotNotOfferedError(ValidationError):
    """The barber does not work that slot at all. Permanent."""

    status_code = 422
    code = "slot_not_offered"


class NotFoundError(BookingError):
    status_code = 404
    code = "not_found"


class ConflictError(BookingError):
    """Slot already taken. Retry with a different slot."""

    status_code = 409
    code = "slot_taken"


class InvalidTransitionError(BookingError):
    status_code = 409
    code = "invalid_transition"


class LimitReachedError(BookingError):
    status_code = 409
    code = "reschedule_limit_reached"


class LockoutWindowError(BookingError):
    status_code = 409
    code = "reschedule_lockout"
