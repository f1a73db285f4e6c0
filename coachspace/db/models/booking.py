from datetime import datetime
from enum import Enum as PyEnum
from uuid import uuid4
from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class BookingStatus(str, PyEnum):
    confirmed = "confirmed"
    waitlisted = "waitlisted"
    cancelled = "cancelled"


ACTIVE_STATUSES = (BookingStatus.confirmed, BookingStatus.waitlisted)

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.confirmed: frozenset({BookingStatus.cancelled}),
    BookingStatus.waitlisted: frozenset({BookingStatus.confirmed, BookingStatus.cancelled}),
    BookingStatus.cancelled: frozenset(),
}

_ACTIVE_CLAUSE = text("status IN ('confirmed', 'waitlisted')")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index(
            "uq_booking_active_user_class",
            "class_id",
            "user_id",
            unique=True,
            sqlite_where=_ACTIVE_CLAUSE,
            postgresql_where=_ACTIVE_CLAUSE,
        ),
        Index("ix_booking_class_status_created", "class_id", "status", "created_at"),
        Index("ix_booking_user_status", "user_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    class_id: Mapped[str] = mapped_column(
        ForeignKey("classes.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(Enum(BookingStatus), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_by: Mapped[str | None] = mapped_column(String(128))
    cancellation_reason: Mapped[str | None] = mapped_column(String(255))
    reminded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    fitness_class = relationship("FitnessClass", back_populates="bookings")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def can_transition_to(self, status: BookingStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]
