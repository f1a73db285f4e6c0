from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from ...api import deps
from ...core.constants import ROLE_INSTRUCTOR
from ...core.errors import BookingError
from ...core.security import Principal
from ...db.session import get_db
from ...db import models, schemas
from ...db.models import ClassCategory, ClassLevel
from ...services import class_service
from ...services.booking_service import BookingManager

router = APIRouter(prefix="/classes", tags=["classes"])


def _get_class_or_404(db: Session, class_id: str) -> models.FitnessClass:
    try:
        return class_service.get_class(db, class_id)
    except BookingError as exc:
        raise deps.http_error(exc) from exc


def _ensure_owner(fitness_class: models.FitnessClass, user: Principal) -> None:
    if fitness_class.instructor_id != user.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


@router.get("", response_model=list[schemas.FitnessClass])
def list_classes(
    category: ClassCategory | None = None,
    level: ClassLevel | None = None,
    venue_id: str | None = None,
    instructor_id: str | None = None,
    from_dt: datetime | None = None,
    to_dt: datetime | None = None,
    db: Session = Depends(get_db),
):
    classes = class_service.list_classes(
        db,
        category=category,
        level=level,
        venue_id=venue_id,
        instructor_id=instructor_id,
        starts_from=from_dt,
        starts_to=to_dt,
    )
    return class_service.annotate_availability(db, classes)


@router.get("/search", response_model=list[schemas.FitnessClass])
def search_classes(
    q: str = Query(..., min_length=1, description="Name prefix"),
    limit: int = Query(20, ge=1, le=50),
    db: Session = Depends(get_db),
):
    classes = class_service.search_classes(db, q, limit=limit)
    return class_service.annotate_availability(db, classes)


@router.get("/{class_id}", response_model=schemas.FitnessClass)
def get_class(class_id: str, db: Session = Depends(get_db)):
    fitness_class = _get_class_or_404(db, class_id)
    return class_service.annotate_availability(db, [fitness_class])[0]


@router.post("", response_model=schemas.FitnessClass, status_code=status.HTTP_201_CREATED)
def create_class(
    payload: schemas.FitnessClassCreate,
    db: Session = Depends(get_db),
    user: Principal = Depends(deps.require_roles(ROLE_INSTRUCTOR)),
):
    return class_service.create_class(db, payload, instructor_id=user.user_id)


@router.patch("/{class_id}", response_model=schemas.FitnessClass)
def update_class(
    class_id: str,
    payload: schemas.FitnessClassUpdate,
    db: Session = Depends(get_db),
    user: Principal = Depends(deps.require_roles(ROLE_INSTRUCTOR)),
):
    fitness_class = _get_class_or_404(db, class_id)
    _ensure_owner(fitness_class, user)
    return class_service.update_class(db, fitness_class, payload)


@router.delete("/{class_id}")
def delete_class(
    class_id: str,
    db: Session = Depends(get_db),
    manager: BookingManager = Depends(deps.get_manager),
    user: Principal = Depends(deps.require_roles(ROLE_INSTRUCTOR)),
):
    fitness_class = _get_class_or_404(db, class_id)
    _ensure_owner(fitness_class, user)
    try:
        manager.delete_class(class_id)
    except BookingError as exc:
        raise deps.http_error(exc) from exc
    return {"status": "deleted"}


@router.get("/{class_id}/participants", response_model=list[str])
def list_participants(
    class_id: str,
    db: Session = Depends(get_db),
    _: Principal = Depends(deps.get_current_user),
):
    try:
        return class_service.class_participants(db, class_id)
    except BookingError as exc:
        raise deps.http_error(exc) from exc


@router.get("/{class_id}/waitlist", response_model=list[schemas.Booking])
def list_waitlist(
    class_id: str,
    db: Session = Depends(get_db),
    user: Principal = Depends(deps.require_roles(ROLE_INSTRUCTOR)),
):
    fitness_class = _get_class_or_404(db, class_id)
    _ensure_owner(fitness_class, user)
    waitlist = class_service.class_waitlist(db, class_id)
    return [
        schemas.Booking.model_validate(booking).model_copy(update={"waitlist_position": position})
        for position, booking in enumerate(waitlist, start=1)
    ]


@router.post("/{class_id}/promote", response_model=schemas.Booking | None)
def promote_from_waitlist(
    class_id: str,
    db: Session = Depends(get_db),
    manager: BookingManager = Depends(deps.get_manager),
    user: Principal = Depends(deps.require_roles(ROLE_INSTRUCTOR)),
):
    fitness_class = _get_class_or_404(db, class_id)
    _ensure_owner(fitness_class, user)
    try:
        return manager.promote_from_waitlist(class_id)
    except BookingError as exc:
        raise deps.http_error(exc) from exc
