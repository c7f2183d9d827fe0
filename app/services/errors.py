class BookingError(Exception):
    """Base for cancellation/refund failures; routes map ``status_code`` onto the HTTP response."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BookingNotFound(BookingError):
    status_code = 404

    def __init__(self, booking_id: str):
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class NotAuthorized(BookingError):
    status_code = 403


class InvalidTransition(BookingError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change booking status from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class InvalidState(BookingError):
    pass


class AlreadyProcessed(BookingError):
    status_code = 409


class ConcurrentModification(BookingError):
    status_code = 409

    def __init__(self, booking_id: str):
        super().__init__(f"Booking {booking_id} was modified by another request; reload and retry")
        self.booking_id = booking_id


class GatewayFailure(BookingError):
    status_code = 502
