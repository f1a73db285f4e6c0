from datetime import datetime, timezone
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from ..core.errors import ClassNotFound
from ..db import models, schemas
from ..db.models import BookingStatus, ClassCategory, ClassLevel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def create_class(
    db: Session, payload: schemas.FitnessClassCreate, *, instructor_id: str
) -> models.FitnessClass:
    fitness_class = models.FitnessClass(
        **payload.model_dump(),
        instructor_id=instructor_id,
        current_participants=0,
    )
    db.add(fitness_class)
    db.commit()
    db.refresh(fitness_class)
    return fitness_class


def get_class(db: Session, class_id: str) -> models.FitnessClass:
    fitness_class = db.get(models.FitnessClass, class_id)
    if fitness_class is None:
        raise ClassNotFound(class_id)
    return fitness_class


def update_class(
    db: Session, fitness_class: models.FitnessClass, payload: schemas.FitnessClassUpdate
) -> models.FitnessClass:
    # capacity and the participant counter are not part of the update schema
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(fitness_class, key, value)
    db.commit()
    db.refresh(fitness_class)
    return fitness_class


def delete_class(db: Session, fitness_class: models.FitnessClass) -> None:
    """Delete the class along with all of its bookings.

    The caller owns the transaction.
    """
    db.delete(fitness_class)
    db.flush()


def list_classes(
    db: Session,
    *,
    category: ClassCategory | None = None,
    level: ClassLevel | None = None,
    venue_id: str | None = None,
    instructor_id: str | None = None,
    starts_from: datetime | None = None,
    starts_to: datetime | None = None,
) -> list[models.FitnessClass]:
    stmt = select(models.FitnessClass)
    if category:
        stmt = stmt.where(models.FitnessClass.category == category)
    if level:
        stmt = stmt.where(models.FitnessClass.level == level)
    if venue_id:
        stmt = stmt.where(models.FitnessClass.venue_id == venue_id)
    if instructor_id:
        stmt = stmt.where(models.FitnessClass.instructor_id == instructor_id)
    if starts_from:
        stmt = stmt.where(models.FitnessClass.starts_at >= starts_from)
    if starts_to:
        stmt = stmt.where(models.FitnessClass.starts_at <= starts_to)
    stmt = stmt.order_by(models.FitnessClass.starts_at)
    return list(db.execute(stmt).scalars().all())


def search_classes(db: Session, query: str, limit: int = 20) -> list[models.FitnessClass]:
    prefix = query.strip().lower()
    if not prefix:
        return []
    stmt = (
        select(models.FitnessClass)
        .where(func.lower(models.FitnessClass.name).startswith(prefix, autoescape=True))
        .order_by(models.FitnessClass.name, models.FitnessClass.starts_at)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def _classes_for_user(user_id: str) -> Select:
    return (
        select(models.FitnessClass)
        .join(models.Booking, models.Booking.class_id == models.FitnessClass.id)
        .where(models.Booking.user_id == user_id)
        .where(models.Booking.status == BookingStatus.confirmed)
    )


def upcoming_classes_for_user(
    db: Session, user_id: str, now: datetime | None = None
) -> list[models.FitnessClass]:
    now = now or _utc_now()
    stmt = (
        _classes_for_user(user_id)
        .where(models.FitnessClass.starts_at > now)
        .order_by(models.FitnessClass.starts_at)
    )
    return list(db.execute(stmt).scalars().all())


def past_classes_for_user(
    db: Session, user_id: str, now: datetime | None = None
) -> list[models.FitnessClass]:
    now = now or _utc_now()
    stmt = (
        _classes_for_user(user_id)
        .where(models.FitnessClass.starts_at <= now)
        .order_by(models.FitnessClass.starts_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


def _bookings_with_status(
    db: Session, class_id: str, status: BookingStatus
) -> list[models.Booking]:
    stmt = (
        select(models.Booking)
        .where(models.Booking.class_id == class_id)
        .where(models.Booking.status == status)
        .order_by(models.Booking.created_at, models.Booking.id)
    )
    return list(db.execute(stmt).scalars().all())


def class_participants(db: Session, class_id: str) -> list[str]:
    get_class(db, class_id)
    return [
        booking.user_id
        for booking in _bookings_with_status(db, class_id, BookingStatus.confirmed)
    ]


def class_waitlist(db: Session, class_id: str) -> list[models.Booking]:
    get_class(db, class_id)
    return _bookings_with_status(db, class_id, BookingStatus.waitlisted)


def annotate_availability(
    db: Session, classes: list[models.FitnessClass]
) -> list[models.FitnessClass]:
    class_ids = [fitness_class.id for fitness_class in classes]
    counts: dict[tuple[str, BookingStatus], int] = {}
    if class_ids:
        rows = db.execute(
            select(
                models.Booking.class_id,
                models.Booking.status,
                func.count(models.Booking.id),
            )
            .where(models.Booking.class_id.in_(class_ids))
            .where(models.Booking.status.in_(models.ACTIVE_STATUSES))
            .group_by(models.Booking.class_id, models.Booking.status)
        ).all()
        counts = {(class_id, status): int(total) for class_id, status, total in rows}
    for fitness_class in classes:
        booked = counts.get((fitness_class.id, BookingStatus.confirmed), 0)
        waitlisted = counts.get((fitness_class.id, BookingStatus.waitlisted), 0)
        setattr(fitness_class, "booked_seats", booked)
        setattr(fitness_class, "waitlisted_count", waitlisted)
        setattr(fitness_class, "available_seats", max(fitness_class.max_participants - booked, 0))
    return classes
