from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field


class TeacherSignupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=256)
    phone: str | None = Field(default=None, max_length=40)
    room_no: str | None = Field(
        default=None,
        max_length=40,
        validation_alias=AliasChoices("room_no", "roomno"),
    )


class StudentSignupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=256)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=256)


class SignupResponse(BaseModel):
    ok: bool = True
    id: uuid.UUID


class LoginResponse(BaseModel):
    ok: bool = True
    access_token: str
    token_type: str = "bearer"
    role: str
    id: uuid.UUID
    name: str
    email: str


class MeResponse(BaseModel):
    id: uuid.UUID
    role: str
    name: str
    email: str
    created_at: datetime
