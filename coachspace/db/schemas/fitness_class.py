from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from ..models.fitness_class import ClassCategory, ClassLevel


class FitnessClassBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    venue_id: str | None = None
    category: ClassCategory
    level: ClassLevel = ClassLevel.all_levels
    starts_at: datetime
    duration_min: int = Field(default=60, gt=0)
    price: float = Field(default=0, ge=0)
    image_url: str | None = None
    tags: list[str] = []


class FitnessClassCreate(FitnessClassBase):
    max_participants: int = Field(gt=0)


class FitnessClassUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    venue_id: str | None = None
    category: ClassCategory | None = None
    level: ClassLevel | None = None
    starts_at: datetime | None = None
    duration_min: int | None = Field(default=None, gt=0)
    price: float | None = Field(default=None, ge=0)
    image_url: str | None = None
    tags: list[str] | None = None

    @field_validator("name", "category", "level", "starts_at", "duration_min", "price")
    @classmethod
    def not_null(cls, value, info):
        # omit the field to leave it unchanged
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class FitnessClass(FitnessClassBase):
    id: str
    instructor_id: str
    max_participants: int
    current_participants: int
    tags: list[str] | None = None
    booked_seats: int | None = None
    waitlisted_count: int | None = None
    available_seats: int | None = None

    class Config:
        from_attributes = True
