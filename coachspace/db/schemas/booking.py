from datetime import datetime
from pydantic import BaseModel

from ..models.booking import BookingStatus


class BookingCreate(BaseModel):
    class_id: str


class BookingCancel(BaseModel):
    reason: str | None = None


class Booking(BaseModel):
    id: str
    class_id: str
    user_id: str
    status: BookingStatus
    created_at: datetime
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    waitlist_position: int | None = None

    class Config:
        from_attributes = True
