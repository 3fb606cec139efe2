"""Error kinds raised by the booking core.

Route handlers let these propagate; ``agenda.main`` turns them into JSON
responses carrying a stable ``code`` so the caller can tell a taken slot
apart from a provider that stopped accepting bookings.
"""

from fastapi import status


class BookingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'booking_error'

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'validation_error'


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'not_found'


class AuthorizationError(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = 'forbidden'


class ConflictError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = 'slot_taken'


class CapacityError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = 'not_accepting_bookings'


class InvalidTransition(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = 'invalid_transition'


class TransientStoreError(BookingError):
    """The store failed in a way the caller may retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = 'store_unavailable'
