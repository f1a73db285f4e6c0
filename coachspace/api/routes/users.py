from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from ...api import deps
from ...core.security import Principal
from ...db.session import get_db
from ...db import schemas
from ...services import class_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me/classes/upcoming", response_model=list[schemas.FitnessClass])
def upcoming_classes(
    db: Session = Depends(get_db),
    user: Principal = Depends(deps.get_current_user),
):
    classes = class_service.upcoming_classes_for_user(db, user.user_id)
    return class_service.annotate_availability(db, classes)


@router.get("/me/classes/past", response_model=list[schemas.FitnessClass])
def past_classes(
    db: Session = Depends(get_db),
    user: Principal = Depends(deps.get_current_user),
):
    classes = class_service.past_classes_for_user(db, user.user_id)
    return class_service.annotate_availability(db, classes)
