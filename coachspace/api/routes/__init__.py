from . import (
    classes,
    bookings,
    users,
    misc,
)

__all__ = [
    "classes",
    "bookings",
    "users",
    "misc",
]
