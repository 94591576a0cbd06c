from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Callable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from core.errors import ForbiddenError, NotFoundError, StorageUnavailableError, ValidationFailedError
from models.daily_time_record import DailyTimeRecord
from models.teacher import Teacher
from schemas.teacher import TeacherStatusOut
from services.broadcast import BroadcastHub
from services.time_ledger import TimeLedger


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

MAX_REPORT_DAYS = 366


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def session_seconds(started: datetime | None, ended: datetime) -> int:
    """Whole seconds between two instants, clamped at zero for clock skew."""

    started = as_utc(started)
    if started is None:
        return 0
    return max(0, int((as_utc(ended) - started).total_seconds()))


def roster_payload(teachers: list[Teacher]) -> list[dict[str, Any]]:
    return [TeacherStatusOut.model_validate(t).model_dump(mode="json") for t in teachers]


class AvailabilityService:
    """Teacher status transitions and the time accounting attached to them.

    Closing a session is a two-step commit inside one transaction: the ledger
    increment runs first, then the status flip as a conditional update. If
    either step fails nothing is committed and the teacher stays available
    with the original start marker, so a retry recomputes the full session.
    The roster broadcast only happens after the commit succeeds.
    """

    def __init__(
        self,
        db: Session,
        *,
        hub: BroadcastHub | None = None,
        clock: Clock = utcnow,
        tz: tzinfo | None = None,
    ) -> None:
        self.db = db
        self.hub = hub
        self.clock = clock
        self.tz = tz or settings.ledger_tz
        self.ledger = TimeLedger(db)

    def now(self) -> datetime:
        return as_utc(self.clock())

    def day_of(self, instant: datetime) -> date:
        return as_utc(instant).astimezone(self.tz).date()

    # ---- reads ----

    def get_teacher(self, teacher_id: uuid.UUID) -> Teacher:
        teacher = self.db.get(Teacher, teacher_id)
        if teacher is None:
            raise NotFoundError(f"teacher {teacher_id} does not exist", code="TEACHER_NOT_FOUND")
        return teacher

    def list_teachers(self) -> list[Teacher]:
        q = select(Teacher).order_by(Teacher.name.asc(), Teacher.email.asc())
        # Sessions keep objects across commits; reload so the roster is current.
        q = q.execution_options(populate_existing=True)
        return list(self.db.execute(q).scalars().all())

    def roster(self) -> list[dict[str, Any]]:
        return roster_payload(self.list_teachers())

    def get_today_available_seconds(self, teacher_id: uuid.UUID) -> int:
        """Committed seconds for today; the open session is not included."""

        self.get_teacher(teacher_id)
        return self.ledger.get(teacher_id, self.day_of(self.now()))

    def get_live_available_seconds(self, teacher_id: uuid.UUID) -> int:
        teacher = self.get_teacher(teacher_id)
        now = self.now()
        total = self.ledger.get(teacher_id, self.day_of(now))
        if teacher.is_available:
            total += session_seconds(teacher.last_available_at, now)
        return total

    def time_records(self, teacher_id: uuid.UUID, start: date, end: date) -> list[DailyTimeRecord]:
        self.get_teacher(teacher_id)
        if end < start:
            raise ValidationFailedError("start must not be after end", code="INVALID_RANGE")
        if end - start > timedelta(days=MAX_REPORT_DAYS - 1):
            raise ValidationFailedError(f"range is limited to {MAX_REPORT_DAYS} days", code="RANGE_TOO_LARGE")
        return self.ledger.list_range(teacher_id, start, end)

    # ---- transitions ----

    def set_availability(
        self,
        caller_teacher_id: uuid.UUID | None,
        teacher_id: uuid.UUID,
        desired_available: bool,
    ) -> Teacher:
        if caller_teacher_id is None or str(caller_teacher_id) != str(teacher_id):
            raise ForbiddenError("teachers may only change their own status")
        if not isinstance(desired_available, bool):
            raise ValidationFailedError("desired_available must be a boolean", code="INVALID_STATUS")

        teacher = self._load_for_update(teacher_id)
        if bool(teacher.is_available) == desired_available:
            logger.debug("Status unchanged teacher=%s is_available=%s", teacher_id, desired_available)
            return teacher

        now = self.now()
        try:
            if desired_available:
                changed = self._open_session(teacher, now)
            else:
                changed = self._close_session(teacher, now)
            if not changed:
                # Another request flipped the status first; drop our ledger write.
                self.db.rollback()
                logger.info("Concurrent status change detected teacher=%s; treating as no-op", teacher_id)
                return self._load_for_update(teacher_id)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Status transition aborted teacher=%s", teacher_id, exc_info=exc)
            raise StorageUnavailableError("status change was not saved; please retry") from exc
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(teacher)
        self._broadcast_roster()
        return teacher

    def _load_for_update(self, teacher_id: uuid.UUID) -> Teacher:
        q = (
            select(Teacher)
            .where(Teacher.id == teacher_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        teacher = self.db.execute(q).scalar_one_or_none()
        if teacher is None:
            raise NotFoundError(f"teacher {teacher_id} does not exist", code="TEACHER_NOT_FOUND")
        return teacher

    def _open_session(self, teacher: Teacher, now: datetime) -> bool:
        result = self.db.execute(
            update(Teacher)
            .where(Teacher.id == teacher.id)
            .where(Teacher.is_available.is_(False))
            .values(is_available=True, last_available_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        logger.info("Teacher available teacher=%s at=%s", teacher.id, now.isoformat())
        return True

    def _close_session(self, teacher: Teacher, now: datetime) -> bool:
        seconds = session_seconds(teacher.last_available_at, now)
        # The whole session counts toward the day it ends on, even across midnight.
        day = self.day_of(now)

        # Step 1: ledger. Step 2: flip, only if the session is still open.
        self.ledger.accumulate(teacher.id, day, seconds)
        result = self.db.execute(
            update(Teacher)
            .where(Teacher.id == teacher.id)
            .where(Teacher.is_available.is_(True))
            .values(is_available=False, last_available_at=None)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        logger.info("Teacher unavailable teacher=%s session_seconds=%d day=%s", teacher.id, seconds, day.isoformat())
        return True

    def _broadcast_roster(self) -> None:
        if self.hub is None:
            return
        self.hub.publish_roster_from(self.roster)
