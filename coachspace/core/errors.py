"""Error hierarchy for booking and catalog operations.

Everything raised by the booking manager derives from :class:`BookingError`
so that request handlers can translate failures with a single ``except``.
:class:`PersistenceError` and :class:`ConcurrencyConflict` are retryable;
the rest describe a request that will fail the same way if repeated.
"""


class BookingError(Exception):
    """Base exception for booking and catalog failures."""

    retryable = False


class ClassNotFound(BookingError):
    def __init__(self, class_id: str) -> None:
        super().__init__("Class not found")
        self.class_id = class_id


class BookingNotFound(BookingError):
    def __init__(self, booking_id: str) -> None:
        super().__init__("Booking not found")
        self.booking_id = booking_id


class AlreadyBooked(BookingError):
    """The user already holds a confirmed or waitlisted seat in the class."""

    def __init__(self, class_id: str | None = None, user_id: str | None = None) -> None:
        super().__init__("Already booked")
        self.class_id = class_id
        self.user_id = user_id


class ClassFull(BookingError):
    """Raised only when waitlisting is disabled."""

    def __init__(self, class_id: str) -> None:
        super().__init__("Class is full")
        self.class_id = class_id


class InvalidTransition(BookingError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move booking from {current} to {target}")
        self.current = current
        self.target = target


class PersistenceError(BookingError):
    """The backing store is unavailable or rejected the write."""

    retryable = True


class PersistenceTimeout(PersistenceError):
    """The class guard or a store statement did not complete in time."""


class ConcurrencyConflict(BookingError):
    """The store aborted the transaction because of a competing writer."""

    retryable = True


__all__ = [
    "BookingError",
    "ClassNotFound",
    "BookingNotFound",
    "AlreadyBooked",
    "ClassFull",
    "InvalidTransition",
    "PersistenceError",
    "PersistenceTimeout",
    "ConcurrencyConflict",
]
