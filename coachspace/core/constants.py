"""Common application-wide constants."""

# Actor recorded for system-driven transitions (promotion, counter repair)
SYSTEM_ACTOR = "system"

# Roles carried in the ``role`` claim of identity-provider tokens
ROLE_STUDENT = "student"
ROLE_INSTRUCTOR = "instructor"

# Audit log actions
ACTION_BOOKING_CREATED = "booking_created"
ACTION_BOOKING_CANCELLED = "booking_cancelled"
ACTION_BOOKING_PROMOTED = "booking_promoted"
ACTION_COUNTER_REPAIRED = "participant_counter_repaired"


__all__ = [
    "SYSTEM_ACTOR",
    "ROLE_STUDENT",
    "ROLE_INSTRUCTOR",
    "ACTION_BOOKING_CREATED",
    "ACTION_BOOKING_CANCELLED",
    "ACTION_BOOKING_PROMOTED",
    "ACTION_COUNTER_REPAIRED",
]
