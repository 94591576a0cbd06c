from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from api.deps import Principal, get_current_principal
from core.config import settings
from core.database import get_db
from core.security import ROLE_STUDENT, ROLE_TEACHER, create_access_token, hash_password, verify_password
from models.student import Student
from models.teacher import Teacher
from schemas.auth import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    SignupResponse,
    StudentSignupRequest,
    TeacherSignupRequest,
)


# Mounted at /api/auth (teachers) and /api/student/auth (students).
router = APIRouter()
student_router = APIRouter()

logger = logging.getLogger(__name__)


# Simple in-memory rate limiting for login.
# NOTE: In multi-worker deployments this is per-worker.
_LOGIN_WINDOW_SECONDS = 60
_LOGIN_MAX_ATTEMPTS_PER_KEY = 12
_login_attempts: dict[str, list[float]] = {}


def _rate_limit_key(request: Request, email: str) -> str:
    ip = request.client.host if request.client else "unknown"
    return f"{ip}:{email.lower().strip()}"


def _enforce_login_rate_limit(request: Request, email: str) -> None:
    key = _rate_limit_key(request, email)
    now = time.time()
    history = _login_attempts.get(key, [])
    history = [t for t in history if now - t < _LOGIN_WINDOW_SECONDS]
    history.append(now)
    _login_attempts[key] = history
    if len(history) > _LOGIN_MAX_ATTEMPTS_PER_KEY:
        raise HTTPException(status_code=429, detail="RATE_LIMITED")


def _normalize_email(raw: str) -> str:
    email = str(raw or "").strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise HTTPException(status_code=422, detail="INVALID_EMAIL")
    return email


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        secure=settings.is_production,
        samesite=settings.cookie_samesite,
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
    )


def _login(model, role: str, payload: LoginRequest, request: Request, response: Response, db: Session) -> LoginResponse:
    email = str(payload.email or "").strip().lower()
    _enforce_login_rate_limit(request, email)
    ip = request.client.host if request.client else "unknown"

    account = db.execute(select(model).where(func.lower(model.email) == email)).scalar_one_or_none()
    if account is None:
        logger.warning("Login failed (unknown account) role=%s ip=%s email=%r", role, ip, email)
        raise HTTPException(status_code=401, detail="INVALID_CREDENTIALS")

    password = str(payload.password or "")
    password_ok = verify_password(password, account.password_hash)
    if not password_ok and password != password.strip():
        # Copy/paste often adds a trailing newline/space.
        password_ok = verify_password(password.strip(), account.password_hash)
        if password_ok:
            logger.warning("Login password had surrounding whitespace; accepted after trimming ip=%s email=%r", ip, email)

    if not password_ok:
        logger.warning("Login failed (bad password) role=%s ip=%s email=%r", role, ip, email)
        raise HTTPException(status_code=401, detail="INVALID_CREDENTIALS")

    token = create_access_token(subject_id=str(account.id), email=account.email, role=role)
    _set_auth_cookie(response, token)
    logger.info("Login success role=%s ip=%s email=%r", role, ip, email)
    return LoginResponse(
        ok=True,
        access_token=token,
        role=role,
        id=account.id,
        name=account.name,
        email=account.email,
    )


def _signup(db: Session, request: Request, account, role: str) -> SignupResponse:
    ip = request.client.host if request.client else "unknown"
    model = type(account)

    # Case-insensitive uniqueness; the unique index on lower(email) backs this up.
    existing = db.execute(select(model.id).where(func.lower(model.email) == account.email)).scalar_one_or_none()
    if existing is not None:
        logger.warning("Signup rejected (email taken) role=%s ip=%s email=%r", role, ip, account.email)
        raise HTTPException(status_code=409, detail="EMAIL_TAKEN")

    db.add(account)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Signup rejected (integrity error) role=%s ip=%s email=%r", role, ip, account.email)
        raise HTTPException(status_code=409, detail="EMAIL_TAKEN")
    db.refresh(account)

    logger.info("Signup success role=%s ip=%s email=%r", role, ip, account.email)
    return SignupResponse(ok=True, id=account.id)


@router.post("/register", response_model=SignupResponse, status_code=201)
def register_teacher(
    payload: TeacherSignupRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> SignupResponse:
    email = _normalize_email(payload.email)
    _enforce_login_rate_limit(request, email)
    teacher = Teacher(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        phone=(payload.phone or "").strip() or None,
        room_no=(payload.room_no or "").strip() or None,
        is_available=False,
        last_available_at=None,
    )
    return _signup(db, request, teacher, ROLE_TEACHER)


@router.post("/login", response_model=LoginResponse)
def login_teacher(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> LoginResponse:
    return _login(Teacher, ROLE_TEACHER, payload, request, response, db)


@student_router.post("/register", response_model=SignupResponse, status_code=201)
def register_student(
    payload: StudentSignupRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> SignupResponse:
    email = _normalize_email(payload.email)
    _enforce_login_rate_limit(request, email)
    student = Student(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
    )
    return _signup(db, request, student, ROLE_STUDENT)


@student_router.post("/login", response_model=LoginResponse)
def login_student(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> LoginResponse:
    return _login(Student, ROLE_STUDENT, payload, request, response, db)


@router.post("/logout")
def logout(response: Response) -> dict[str, Any]:
    response.delete_cookie(key="access_token", path="/")
    return {"ok": True}


@router.get("/me", response_model=MeResponse)
def me(principal: Principal = Depends(get_current_principal)) -> MeResponse:
    record = principal.record
    return MeResponse(
        id=record.id,
        role=principal.role,
        name=record.name,
        email=record.email,
        created_at=record.created_at,
    )
