from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


QUERY_STATUSES = ("pending", "ended", "resolved")
QUERY_RESOLUTIONS = ("satisfied", "not_satisfied")


class Query(Base):
    __tablename__ = "queries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    teacher_id = Column(Uuid(as_uuid=True), ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
    student_name = Column(Text, nullable=False)
    query_text = Column(Text, nullable=False)

    status = Column(String(20), nullable=False, default="pending")
    resolution = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    ended_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status in ('pending', 'ended', 'resolved')", name="ck_queries_status"),
        CheckConstraint(
            "resolution is null or resolution in ('satisfied', 'not_satisfied')",
            name="ck_queries_resolution",
        ),
        CheckConstraint(
            "(status = 'resolved') = (resolution is not null)",
            name="ck_queries_resolution_iff_resolved",
        ),
        Index("ix_queries_teacher_created", "teacher_id", "created_at"),
        Index("ix_queries_student_created", "student_id", "created_at"),
    )
