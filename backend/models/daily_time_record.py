from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


class DailyTimeRecord(Base):
    """Committed available-seconds for one teacher on one calendar day."""

    __tablename__ = "daily_time_records"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    teacher_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("teachers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day = Column(Date, nullable=False)
    total_available_seconds = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("teacher_id", "day", name="uq_daily_time_records_teacher_day"),
        CheckConstraint("total_available_seconds >= 0", name="ck_daily_time_records_non_negative"),
    )
