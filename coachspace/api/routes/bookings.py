from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from ...api import deps
from ...core.constants import ROLE_INSTRUCTOR
from ...core.errors import BookingError
from ...core.security import Principal
from ...db.session import get_db
from ...db import models, schemas
from ...db.models import ActorType, BookingStatus
from ...services import class_service
from ...services.booking_service import BookingManager

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _serialize(manager: BookingManager, booking: models.Booking) -> schemas.Booking:
    result = schemas.Booking.model_validate(booking)
    if booking.status == BookingStatus.waitlisted:
        result.waitlist_position = manager.waitlist_position(booking)
    return result


def _is_class_instructor(db: Session, booking: models.Booking, user: Principal) -> bool:
    if user.role != ROLE_INSTRUCTOR:
        return False
    fitness_class = db.get(models.FitnessClass, booking.class_id)
    return fitness_class is not None and fitness_class.instructor_id == user.user_id


def _load_visible_booking(
    db: Session, manager: BookingManager, booking_id: str, user: Principal
) -> tuple[models.Booking, bool]:
    try:
        booking = manager.get_booking(booking_id)
    except BookingError as exc:
        raise deps.http_error(exc) from exc
    as_instructor = _is_class_instructor(db, booking, user)
    if booking.user_id != user.user_id and not as_instructor:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return booking, as_instructor


@router.get("", response_model=list[schemas.Booking])
def list_bookings(
    class_id: str | None = None,
    user_id: str | None = None,
    status_filter: BookingStatus | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
    manager: BookingManager = Depends(deps.get_manager),
    user: Principal = Depends(deps.get_current_user),
):
    if user.role == ROLE_INSTRUCTOR and class_id:
        # instructors see every booking of their own classes
        try:
            fitness_class = class_service.get_class(db, class_id)
        except BookingError as exc:
            raise deps.http_error(exc) from exc
        if fitness_class.instructor_id != user.user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    else:
        if user_id and user_id != user.user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        user_id = user.user_id
    bookings = manager.list_bookings(class_id=class_id, user_id=user_id, status=status_filter)
    return [_serialize(manager, booking) for booking in bookings]


@router.post("", response_model=schemas.Booking, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: schemas.BookingCreate,
    manager: BookingManager = Depends(deps.get_manager),
    user: Principal = Depends(deps.get_current_user),
):
    try:
        booking = manager.create_booking(payload.class_id, user.user_id)
    except BookingError as exc:
        raise deps.http_error(exc) from exc
    return _serialize(manager, booking)


@router.get("/{booking_id}", response_model=schemas.Booking)
def get_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    manager: BookingManager = Depends(deps.get_manager),
    user: Principal = Depends(deps.get_current_user),
):
    booking, _ = _load_visible_booking(db, manager, booking_id, user)
    return _serialize(manager, booking)


@router.post("/{booking_id}/cancel", response_model=schemas.Booking)
def cancel_booking(
    booking_id: str,
    payload: schemas.BookingCancel | None = None,
    db: Session = Depends(get_db),
    manager: BookingManager = Depends(deps.get_manager),
    user: Principal = Depends(deps.get_current_user),
):
    booking, as_instructor = _load_visible_booking(db, manager, booking_id, user)
    actor_type = ActorType.instructor if as_instructor else ActorType.user
    try:
        booking = manager.cancel_booking(
            booking.id,
            actor=user.user_id,
            actor_type=actor_type,
            reason=payload.reason if payload else None,
        )
    except BookingError as exc:
        raise deps.http_error(exc) from exc
    return _serialize(manager, booking)
