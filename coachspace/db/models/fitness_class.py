from datetime import datetime
from enum import Enum as PyEnum
from uuid import uuid4
from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class ClassCategory(str, PyEnum):
    snowboard = "Snowboard"
    ski = "Ski"
    yoga = "Yoga"
    pilates = "Pilates"
    hiit = "HIIT"
    strength = "Strength"
    cycling = "Cycling"
    dance = "Dance"


class ClassLevel(str, PyEnum):
    beginner = "Beginner"
    intermediate = "Intermediate"
    advanced = "Advanced"
    expert = "Expert"
    all_levels = "All Levels"


class FitnessClass(Base):
    __tablename__ = "classes"
    __table_args__ = (
        CheckConstraint("max_participants > 0", name="ck_class_capacity_positive"),
        CheckConstraint("current_participants >= 0", name="ck_class_participants_non_negative"),
        CheckConstraint(
            "current_participants <= max_participants",
            name="ck_class_participants_within_capacity",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    instructor_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    venue_id: Mapped[str | None] = mapped_column(String(128), index=True)
    category: Mapped[ClassCategory] = mapped_column(Enum(ClassCategory), nullable=False)
    level: Mapped[ClassLevel] = mapped_column(Enum(ClassLevel), default=ClassLevel.all_levels)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    duration_min: Mapped[int] = mapped_column(Integer, default=60)
    price: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    current_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    image_url: Mapped[str | None] = mapped_column(String(512))
    tags: Mapped[list | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    bookings = relationship(
        "Booking",
        back_populates="fitness_class",
        cascade="all, delete-orphan",
    )
