from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field


class QueryCreate(BaseModel):
    teacher_id: uuid.UUID = Field(validation_alias=AliasChoices("teacher_id", "teacherId"))
    query_text: str = Field(
        min_length=1,
        max_length=4000,
        validation_alias=AliasChoices("query_text", "queryText"),
    )


class QueryResolve(BaseModel):
    resolution: Literal["satisfied", "not_satisfied"]


class QueryOut(BaseModel):
    id: uuid.UUID
    student_id: uuid.UUID
    teacher_id: uuid.UUID
    student_name: str
    query_text: str
    status: str
    resolution: str | None = None
    created_at: datetime
    ended_at: datetime | None = None
    resolved_at: datetime | None = None

    class Config:
        from_attributes = True
