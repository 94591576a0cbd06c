from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from core.errors import ValidationFailedError
from models.daily_time_record import DailyTimeRecord


_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class TimeLedger:
    """Per-teacher, per-day accumulator of committed available-seconds.

    ``accumulate`` does not commit: it runs inside the caller's transaction so
    the status flip that closes a session commits (or rolls back) together
    with its ledger increment.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _UPSERT_DIALECTS[dialect]
        except KeyError:
            raise RuntimeError(f"TimeLedger has no upsert-increment for dialect {dialect!r}") from None

    def accumulate(self, teacher_id: uuid.UUID, day: date, delta_seconds: int) -> None:
        # datetime is a date subclass; a timestamp here means the caller skipped day attribution.
        if not isinstance(day, date) or isinstance(day, datetime):
            raise ValidationFailedError("day must be a calendar date", code="INVALID_DAY")
        if isinstance(delta_seconds, bool) or not isinstance(delta_seconds, int):
            raise ValidationFailedError("delta_seconds must be an integer", code="INVALID_DELTA")
        if delta_seconds < 0:
            raise ValidationFailedError("delta_seconds must not be negative", code="INVALID_DELTA")

        insert = self._insert()
        stmt = insert(DailyTimeRecord).values(
            id=uuid.uuid4(),
            teacher_id=teacher_id,
            day=day,
            total_available_seconds=delta_seconds,
        )
        # One statement: find-or-create then increment, no read-modify-write round trip.
        stmt = stmt.on_conflict_do_update(
            index_elements=["teacher_id", "day"],
            set_={
                "total_available_seconds": DailyTimeRecord.total_available_seconds
                + stmt.excluded.total_available_seconds,
                "updated_at": func.now(),
            },
        )
        self.db.execute(stmt)

    def get(self, teacher_id: uuid.UUID, day: date) -> int:
        total = self.db.execute(
            select(DailyTimeRecord.total_available_seconds)
            .where(DailyTimeRecord.teacher_id == teacher_id)
            .where(DailyTimeRecord.day == day)
        ).scalar_one_or_none()
        return int(total or 0)

    def list_range(self, teacher_id: uuid.UUID, start: date, end: date) -> list[DailyTimeRecord]:
        if start > end:
            raise ValidationFailedError("start must not be after end", code="INVALID_RANGE")
        q = (
            select(DailyTimeRecord)
            .where(DailyTimeRecord.teacher_id == teacher_id)
            .where(DailyTimeRecord.day >= start)
            .where(DailyTimeRecord.day <= end)
            .order_by(DailyTimeRecord.day.asc())
        )
        return list(self.db.execute(q).scalars().all())
