from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Iterator

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.constants import (
    ACTION_BOOKING_CANCELLED,
    ACTION_BOOKING_CREATED,
    ACTION_BOOKING_PROMOTED,
    ACTION_COUNTER_REPAIRED,
    SYSTEM_ACTOR,
)
from ..core.errors import (
    AlreadyBooked,
    BookingNotFound,
    ClassFull,
    ClassNotFound,
    ConcurrencyConflict,
    InvalidTransition,
    PersistenceError,
    PersistenceTimeout,
)
from ..core.locks import KeyedLock, LockTimeout
from ..db import models
from ..db.models import ACTIVE_STATUSES, ActorType, BookingStatus
from . import class_service
from .events import (
    BookingCancelled,
    BookingCreated,
    BookingEvent,
    BookingStatusChanged,
    EventSink,
    NullEventSink,
)

logger = logging.getLogger(__name__)

ACTIVE_BOOKING_CONSTRAINT = "uq_booking_active_user_class"
# serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_active_booking_violation(exc: IntegrityError) -> bool:
    constraint = getattr(getattr(exc.orig, "diag", None), "constraint_name", "")
    if constraint == ACTIVE_BOOKING_CONSTRAINT:
        return True
    return "bookings.class_id, bookings.user_id" in str(exc.orig)


def _translate_store_error(exc: SQLAlchemyError) -> Exception:
    if isinstance(exc, IntegrityError) and _is_active_booking_violation(exc):
        return AlreadyBooked()
    if isinstance(exc, OperationalError):
        if getattr(exc.orig, "pgcode", None) in _CONFLICT_SQLSTATES:
            return ConcurrencyConflict("Booking store aborted a competing write, try again")
        message = str(exc.orig).lower()
        if "statement timeout" in message or "database is locked" in message:
            return PersistenceTimeout("Booking store did not respond in time")
    return PersistenceError("Booking store is unavailable")


class BookingManager:
    """Creates and cancels bookings and promotes the waitlist.

    Every mutation that reads then writes a class's confirmed count or its
    waitlist head runs under the class's guard and inside a single
    transaction that also locks the class row. Events are published only
    after that transaction commits.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        events: EventSink | None = None,
        *,
        locks: KeyedLock | None = None,
        lock_timeout: float | None = None,
        waitlist_enabled: bool = True,
    ) -> None:
        self.session_factory = session_factory
        self.events = events or NullEventSink()
        self.locks = locks or KeyedLock()
        self.lock_timeout = lock_timeout
        self.waitlist_enabled = waitlist_enabled

    @contextmanager
    def _class_guard(self, class_id: str) -> Iterator[None]:
        try:
            with self.locks.hold(class_id, self.lock_timeout):
                yield
        except LockTimeout as exc:
            raise PersistenceTimeout("Class is busy, try again") from exc

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        db = self.session_factory()
        db.expire_on_commit = False
        try:
            with db.begin():
                yield db
        except SQLAlchemyError as exc:
            logger.warning("Booking transaction rolled back", exc_info=True)
            raise _translate_store_error(exc) from exc
        finally:
            db.close()

    def _emit(self, event: BookingEvent) -> None:
        try:
            self.events.publish(event)
        except Exception:
            logger.exception(
                "Failed to publish booking event",
                extra={"event_kind": event.kind, "booking_id": event.booking_id},
            )

    @staticmethod
    def _lock_class(db: Session, class_id: str) -> models.FitnessClass | None:
        return db.execute(
            select(models.FitnessClass)
            .where(models.FitnessClass.id == class_id)
            .with_for_update()
        ).scalar_one_or_none()

    @staticmethod
    def _count_confirmed(db: Session, class_id: str) -> int:
        db.flush()
        return db.scalar(
            select(func.count(models.Booking.id)).where(
                models.Booking.class_id == class_id,
                models.Booking.status == BookingStatus.confirmed,
            )
        )

    @staticmethod
    def _next_created_at(db: Session, class_id: str) -> datetime:
        now = _utc_now()
        latest = db.scalar(
            select(func.max(models.Booking.created_at)).where(
                models.Booking.class_id == class_id
            )
        )
        if latest is not None and _as_utc(latest) >= now:
            return _as_utc(latest) + timedelta(microseconds=1)
        return now

    @staticmethod
    def _transition(booking: models.Booking, status: BookingStatus) -> None:
        if not booking.can_transition_to(status):
            raise InvalidTransition(booking.status.value, status.value)
        booking.status = status

    @staticmethod
    def _audit(
        db: Session,
        action: str,
        booking: models.Booking,
        *,
        actor: str | None,
        actor_type: ActorType,
        **extra,
    ) -> None:
        db.add(
            models.AuditLog(
                actor_type=actor_type,
                actor_id=actor,
                action=action,
                payload={
                    "booking_id": booking.id,
                    "class_id": booking.class_id,
                    "user_id": booking.user_id,
                    "status": booking.status.value,
                    **extra,
                },
            )
        )

    @staticmethod
    def _event(
        kind: type[BookingEvent], booking: models.Booking, fitness_class: models.FitnessClass
    ) -> BookingEvent:
        return kind(
            booking_id=booking.id,
            class_id=booking.class_id,
            user_id=booking.user_id,
            status=booking.status.value,
            class_name=fitness_class.name,
            instructor_id=fitness_class.instructor_id,
        )

    def _sync_counter(self, fitness_class: models.FitnessClass, confirmed: int) -> None:
        if fitness_class.current_participants != confirmed:
            logger.warning(
                "Participant counter drifted from confirmed bookings",
                extra={
                    "class_id": fitness_class.id,
                    "cached": fitness_class.current_participants,
                    "confirmed": confirmed,
                },
            )
            fitness_class.current_participants = confirmed

    def _promote_next(
        self, db: Session, fitness_class: models.FitnessClass, confirmed: int
    ) -> models.Booking | None:
        if confirmed >= fitness_class.max_participants:
            return None
        head = db.execute(
            select(models.Booking)
            .where(
                models.Booking.class_id == fitness_class.id,
                models.Booking.status == BookingStatus.waitlisted,
            )
            .order_by(models.Booking.created_at, models.Booking.id)
            .limit(1)
            .with_for_update()
        ).scalar_one_or_none()
        if head is None:
            return None
        self._transition(head, BookingStatus.confirmed)
        self._audit(
            db,
            ACTION_BOOKING_PROMOTED,
            head,
            actor=SYSTEM_ACTOR,
            actor_type=ActorType.system,
        )
        return head

    def create_booking(
        self,
        class_id: str,
        user_id: str,
        *,
        actor: str | None = None,
        actor_type: ActorType = ActorType.user,
    ) -> models.Booking:
        with self._class_guard(class_id):
            with self._transaction() as db:
                fitness_class = self._lock_class(db, class_id)
                if fitness_class is None:
                    raise ClassNotFound(class_id)
                existing = db.scalar(
                    select(models.Booking.id)
                    .where(
                        models.Booking.class_id == class_id,
                        models.Booking.user_id == user_id,
                        models.Booking.status.in_(ACTIVE_STATUSES),
                    )
                    .limit(1)
                )
                if existing:
                    raise AlreadyBooked(class_id, user_id)

                confirmed = self._count_confirmed(db, class_id)
                self._sync_counter(fitness_class, confirmed)
                if confirmed < fitness_class.max_participants:
                    status = BookingStatus.confirmed
                elif self.waitlist_enabled:
                    status = BookingStatus.waitlisted
                else:
                    raise ClassFull(class_id)

                booking = models.Booking(
                    class_id=class_id,
                    user_id=user_id,
                    status=status,
                    created_at=self._next_created_at(db, class_id),
                )
                db.add(booking)
                if status == BookingStatus.confirmed:
                    fitness_class.current_participants = confirmed + 1
                db.flush()
                self._audit(
                    db,
                    ACTION_BOOKING_CREATED,
                    booking,
                    actor=actor or user_id,
                    actor_type=actor_type,
                )
                event = self._event(BookingCreated, booking, fitness_class)

        logger.info(
            "Booking created",
            extra={"booking_id": booking.id, "class_id": class_id, "status": status.value},
        )
        self._emit(event)
        return booking

    def _class_id_for(self, booking_id: str) -> str:
        with self._transaction() as db:
            class_id = db.scalar(
                select(models.Booking.class_id).where(models.Booking.id == booking_id)
            )
        if class_id is None:
            raise BookingNotFound(booking_id)
        return class_id

    def cancel_booking(
        self,
        booking_id: str,
        *,
        actor: str | None = None,
        actor_type: ActorType = ActorType.user,
        reason: str | None = None,
    ) -> models.Booking:
        """Cancel a booking and hand its seat to the head of the waitlist.

        Cancelling a booking that is already cancelled changes nothing and
        publishes nothing.
        """
        class_id = self._class_id_for(booking_id)
        events: list[BookingEvent] = []
        with self._class_guard(class_id):
            with self._transaction() as db:
                fitness_class = self._lock_class(db, class_id)
                booking = db.execute(
                    select(models.Booking)
                    .where(models.Booking.id == booking_id)
                    .with_for_update()
                ).scalar_one_or_none()
                if fitness_class is None or booking is None:
                    raise BookingNotFound(booking_id)
                if booking.status == BookingStatus.cancelled:
                    logger.info("Booking already cancelled", extra={"booking_id": booking_id})
                    return booking

                prior_status = booking.status
                self._transition(booking, BookingStatus.cancelled)
                booking.cancelled_at = _utc_now()
                booking.cancelled_by = actor
                booking.cancellation_reason = reason
                self._audit(
                    db,
                    ACTION_BOOKING_CANCELLED,
                    booking,
                    actor=actor,
                    actor_type=actor_type,
                    previous_status=prior_status.value,
                    reason=reason,
                )
                events.append(self._event(BookingCancelled, booking, fitness_class))

                if prior_status == BookingStatus.confirmed:
                    confirmed = self._count_confirmed(db, class_id)
                    promoted = self._promote_next(db, fitness_class, confirmed)
                    if promoted is not None:
                        confirmed += 1
                        events.append(self._event(BookingStatusChanged, promoted, fitness_class))
                    fitness_class.current_participants = confirmed

        logger.info(
            "Booking cancelled",
            extra={
                "booking_id": booking_id,
                "class_id": class_id,
                "previous_status": prior_status.value,
                "promoted": len(events) > 1,
            },
        )
        for event in events:
            self._emit(event)
        return booking

    def promote_from_waitlist(self, class_id: str) -> models.Booking | None:
        """Confirm the oldest waitlisted booking if the class has a free seat."""
        with self._class_guard(class_id):
            with self._transaction() as db:
                fitness_class = self._lock_class(db, class_id)
                if fitness_class is None:
                    raise ClassNotFound(class_id)
                confirmed = self._count_confirmed(db, class_id)
                promoted = self._promote_next(db, fitness_class, confirmed)
                if promoted is not None:
                    confirmed += 1
                    event = self._event(BookingStatusChanged, promoted, fitness_class)
                fitness_class.current_participants = confirmed

        if promoted is None:
            return None
        logger.info(
            "Booking promoted from waitlist",
            extra={"booking_id": promoted.id, "class_id": class_id},
        )
        self._emit(event)
        return promoted

    def delete_class(self, class_id: str) -> None:
        with self._class_guard(class_id):
            with self._transaction() as db:
                fitness_class = self._lock_class(db, class_id)
                if fitness_class is None:
                    raise ClassNotFound(class_id)
                class_service.delete_class(db, fitness_class)
        logger.info("Class deleted", extra={"class_id": class_id})

    def get_booking(self, booking_id: str) -> models.Booking:
        with self._transaction() as db:
            booking = db.get(models.Booking, booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    def list_bookings(
        self,
        class_id: str | None = None,
        user_id: str | None = None,
        status: BookingStatus | None = None,
        *,
        newest_first: bool = False,
    ) -> list[models.Booking]:
        stmt = select(models.Booking)
        if class_id:
            stmt = stmt.where(models.Booking.class_id == class_id)
        if user_id:
            stmt = stmt.where(models.Booking.user_id == user_id)
        if status:
            stmt = stmt.where(models.Booking.status == status)
        if newest_first:
            stmt = stmt.order_by(models.Booking.created_at.desc(), models.Booking.id.desc())
        else:
            stmt = stmt.order_by(models.Booking.created_at, models.Booking.id)
        with self._transaction() as db:
            return list(db.execute(stmt).scalars().all())

    def waitlist_position(self, booking: models.Booking) -> int | None:
        if booking.status != BookingStatus.waitlisted:
            return None
        with self._transaction() as db:
            ahead = db.scalar(
                select(func.count(models.Booking.id)).where(
                    models.Booking.class_id == booking.class_id,
                    models.Booking.status == BookingStatus.waitlisted,
                    or_(
                        models.Booking.created_at < booking.created_at,
                        and_(
                            models.Booking.created_at == booking.created_at,
                            models.Booking.id < booking.id,
                        ),
                    ),
                )
            )
        return ahead + 1

    def resync_counters(self, class_id: str | None = None) -> int:
        """Rewrite cached participant counters from the confirmed bookings."""
        if class_id is not None:
            class_ids = [class_id]
        else:
            with self._transaction() as db:
                class_ids = list(db.scalars(select(models.FitnessClass.id)).all())

        repaired = 0
        for current_id in class_ids:
            with self._class_guard(current_id):
                with self._transaction() as db:
                    fitness_class = self._lock_class(db, current_id)
                    if fitness_class is None:
                        if class_id is not None:
                            raise ClassNotFound(class_id)
                        continue
                    confirmed = self._count_confirmed(db, current_id)
                    cached = fitness_class.current_participants
                    if cached == confirmed:
                        continue
                    self._sync_counter(fitness_class, confirmed)
                    db.add(
                        models.AuditLog(
                            actor_type=ActorType.system,
                            actor_id=SYSTEM_ACTOR,
                            action=ACTION_COUNTER_REPAIRED,
                            payload={"class_id": current_id, "cached": cached, "confirmed": confirmed},
                        )
                    )
                    repaired += 1
        return repaired


@lru_cache(maxsize=1)
def get_booking_manager() -> BookingManager:
    from ..config import get_settings
    from ..db.session import SessionLocal
    from .notification_service import get_dispatcher

    settings = get_settings()
    return BookingManager(
        SessionLocal,
        get_dispatcher(),
        lock_timeout=settings.booking_lock_timeout_seconds,
        waitlist_enabled=settings.waitlist_enabled,
    )


__all__ = ["BookingManager", "get_booking_manager"]
