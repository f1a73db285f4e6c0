from datetime import datetime, timedelta, timezone
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import get_settings
from ..db import models
from ..db.session import SessionLocal
from ..services.booking_service import BookingManager, get_booking_manager
from ..services.events import ClassReminder, EventSink

logger = logging.getLogger(__name__)


def collect_class_reminders(
    db: Session, *, lead: timedelta, now: datetime | None = None
) -> list[ClassReminder]:
    """Claim confirmed bookings whose class starts within ``lead`` and build their reminders.

    Claimed bookings get ``reminded_at`` set, so a booking is reminded once no
    matter how often or how late the job runs. The caller commits.
    """
    now = now or datetime.now(timezone.utc)
    rows = db.execute(
        select(models.Booking, models.FitnessClass)
        .join(models.FitnessClass, models.Booking.class_id == models.FitnessClass.id)
        .where(models.Booking.status == models.BookingStatus.confirmed)
        .where(models.Booking.reminded_at.is_(None))
        .where(models.FitnessClass.starts_at > now)
        .where(models.FitnessClass.starts_at <= now + lead)
        .order_by(models.FitnessClass.starts_at, models.Booking.created_at)
        .with_for_update(of=models.Booking, skip_locked=True)
    ).all()
    reminders = []
    for booking, fitness_class in rows:
        booking.reminded_at = now
        reminders.append(
            ClassReminder(
                booking_id=booking.id,
                class_id=fitness_class.id,
                user_id=booking.user_id,
                status=booking.status.value,
                class_name=fitness_class.name,
                instructor_id=fitness_class.instructor_id,
                starts_at=fitness_class.starts_at,
            )
        )
    db.flush()
    return reminders


def send_class_reminders(sink: EventSink | None = None) -> int:
    settings = get_settings()
    sink = sink or get_booking_manager().events
    with SessionLocal() as db:
        reminders = collect_class_reminders(db, lead=timedelta(hours=settings.reminder_lead_hours))
        db.commit()
    for reminder in reminders:
        sink.publish(reminder)
    logger.info("Class reminders queued", extra={"count": len(reminders)})
    return len(reminders)


def resync_participant_counters(manager: BookingManager | None = None) -> int:
    manager = manager or get_booking_manager()
    repaired = manager.resync_counters()
    if repaired:
        logger.warning("Repaired participant counters", extra={"classes": repaired})
    return repaired


def get_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(send_class_reminders, "interval", hours=1)
    scheduler.add_job(resync_participant_counters, "interval", minutes=30)
    return scheduler
