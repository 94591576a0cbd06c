from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import AliasChoices, BaseModel, Field, StrictBool


class TeacherStatusOut(BaseModel):
    """Roster view of a teacher. Never carries credentials."""

    id: uuid.UUID
    name: str
    email: str
    phone: str | None = None
    room_no: str | None = None
    is_available: bool
    last_available_at: datetime | None = None

    class Config:
        from_attributes = True


class AvailabilityUpdate(BaseModel):
    is_available: StrictBool = Field(validation_alias=AliasChoices("is_available", "isAvailable"))


class TodayTimeOut(BaseModel):
    teacher_id: uuid.UUID
    day: date
    total_available_seconds: int
    live_available_seconds: int


class DailyTimeRecordOut(BaseModel):
    day: date
    total_available_seconds: int

    class Config:
        from_attributes = True
