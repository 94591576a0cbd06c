from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from core.database import get_db
from core.errors import ForbiddenError, UnauthorizedError
from core.security import ROLE_STUDENT, ROLE_TEACHER, decode_token
from models.student import Student
from models.teacher import Teacher
from services.availability import AvailabilityService, Clock
from services.broadcast import BroadcastHub
from services.queries import QueryService


bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    id: uuid.UUID
    role: str
    record: Teacher | Student

    @property
    def is_teacher(self) -> bool:
        return self.role == ROLE_TEACHER


def extract_token(
    headers: Any,
    cookies: Any,
    creds: HTTPAuthorizationCredentials | None = None,
) -> str | None:
    if creds is not None and creds.credentials:
        return creds.credentials
    # Older clients send the raw token in x-auth-token.
    legacy = headers.get("x-auth-token")
    if legacy:
        return legacy
    return cookies.get("access_token") or None


def resolve_principal(db: Session, token: str) -> Principal:
    try:
        payload = decode_token(token)
    except JWTError:
        raise UnauthorizedError("token is not valid", code="INVALID_TOKEN")

    try:
        subject_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise UnauthorizedError("token is not valid", code="INVALID_TOKEN")

    role = str(payload.get("role") or "").upper()
    if role == ROLE_TEACHER:
        record = db.get(Teacher, subject_id)
    elif role == ROLE_STUDENT:
        record = db.get(Student, subject_id)
    else:
        raise UnauthorizedError("token is not valid", code="INVALID_TOKEN")

    if record is None:
        raise UnauthorizedError("token is not valid", code="INVALID_TOKEN")
    return Principal(id=subject_id, role=role, record=record)


def get_current_principal(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Principal:
    cached = getattr(request.state, "principal", None)
    if isinstance(cached, Principal):
        return cached

    token = extract_token(request.headers, request.cookies, creds)
    if not token:
        raise UnauthorizedError("no token, authorization denied", code="NOT_AUTHENTICATED")

    principal = resolve_principal(db, token)
    request.state.principal = principal
    return principal


def get_current_teacher(principal: Principal = Depends(get_current_principal)) -> Teacher:
    if principal.role != ROLE_TEACHER:
        raise ForbiddenError("teacher account required")
    return principal.record


def get_current_student(principal: Principal = Depends(get_current_principal)) -> Student:
    if principal.role != ROLE_STUDENT:
        raise ForbiddenError("student account required")
    return principal.record


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_availability_service(
    db: Session = Depends(get_db),
    hub: BroadcastHub = Depends(get_hub),
    clock: Clock = Depends(get_clock),
) -> AvailabilityService:
    return AvailabilityService(db, hub=hub, clock=clock)


def get_query_service(
    db: Session = Depends(get_db),
    hub: BroadcastHub = Depends(get_hub),
    clock: Clock = Depends(get_clock),
) -> QueryService:
    return QueryService(db, hub=hub, clock=clock)