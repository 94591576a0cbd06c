from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.config import settings
from core.database import ENGINE
from core.security import hash_password
from models.base import Base
from models.teacher import Teacher


logger = logging.getLogger(__name__)


def _ensure_schema() -> None:
    # Idempotent: only creates tables/indexes that are missing.
    Base.metadata.create_all(ENGINE)


def _seed_teacher_if_configured() -> None:
    email = settings.seed_teacher_email
    password = settings.seed_teacher_password
    if not email or not password:
        return

    with Session(ENGINE) as db:
        existing = db.execute(select(Teacher.id).where(func.lower(Teacher.email) == email)).first()
        if existing is not None:
            return
        db.add(
            Teacher(
                name=email.split("@", 1)[0],
                email=email,
                password_hash=hash_password(password),
                is_available=False,
                last_available_at=None,
            )
        )
        db.commit()

    logger.warning(
        "Seeded initial teacher from env (email=%r). Change the password after first login.",
        email,
    )


def bootstrap_schema() -> None:
    """Startup bootstrap, safe to run on every start.

    - Creates missing tables from the ORM metadata.
    - Optionally seeds a teacher if SEED_TEACHER_EMAIL + SEED_TEACHER_PASSWORD are set.
    """

    _ensure_schema()
    _seed_teacher_if_configured()
