from . import (
    events,
    class_service,
    booking_service,
    notification_service,
)
__all__ = [
    "events",
    "class_service",
    "booking_service",
    "notification_service",
]
