from .fitness_class import FitnessClass, ClassCategory, ClassLevel
from .booking import Booking, BookingStatus, ACTIVE_STATUSES, ALLOWED_TRANSITIONS
from .audit_log import AuditLog, ActorType
