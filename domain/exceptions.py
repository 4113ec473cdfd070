"""Domain Errors

Every error carries a stable ``code`` and an HTTP-style ``status_code`` so the
API layer can map it without inspecting messages.
"""


class ReservationError(ValueError):
    """Base class for reservation engine errors"""

    code = "RESERVATION_ERROR"
    status_code = 400

    def __init__(self, message: str, code: str = None, status_code: int = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFoundError(ReservationError):
    code = "NOT_FOUND"
    status_code = 404

    @classmethod
    def chalet(cls) -> "NotFoundError":
        return cls("Chalet not found", code="CHALET_NOT_FOUND")

    @classmethod
    def reservation(cls) -> "NotFoundError":
        return cls("Booking not found", code="BOOKING_NOT_FOUND")


class InactiveUnitError(ReservationError):
    code = "CHALET_UNAVAILABLE"

    def __init__(self, message: str = "Chalet is not available"):
        super().__init__(message)


class InvalidRangeError(ReservationError):
    code = "INVALID_DATE_RANGE"

    def __init__(self, message: str = "Invalid date range"):
        super().__init__(message)


class CapacityExceededError(ReservationError):
    code = "CAPACITY_EXCEEDED"

    def __init__(self, capacity: int):
        super().__init__(f"Chalet capacity is {capacity} guests")
        self.capacity = capacity


class NotAvailableError(ReservationError):
    code = "NOT_AVAILABLE"

    def __init__(self, message: str = "Chalet is already booked for the selected dates"):
        super().__init__(message)


class AlreadyBookedError(NotAvailableError):
    """Raised by the store when a conflicting insert loses the race"""

    code = "ALREADY_BOOKED"
    status_code = 409


class InvalidStatusError(ReservationError):
    code = "INVALID_STATUS"


class AlreadyCancelledError(ReservationError):
    code = "ALREADY_CANCELLED"

    def __init__(self, message: str = "Booking is already cancelled"):
        super().__init__(message)


class CannotCancelError(ReservationError):
    code = "CANNOT_CANCEL"

    def __init__(self, message: str = "Cannot cancel a completed booking"):
        super().__init__(message)


class ConcurrentUpdateError(ReservationError):
    code = "CONCURRENT_UPDATE"
    status_code = 409

    def __init__(self, message: str = "Booking was modified by another request"):
        super().__init__(message)
