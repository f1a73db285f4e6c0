from .fitness_class import FitnessClass, FitnessClassCreate, FitnessClassUpdate
from .booking import Booking, BookingCreate, BookingCancel
