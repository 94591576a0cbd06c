from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, String, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class Teacher(Base):
    __tablename__ = "teachers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    email = Column(String(255), nullable=False)
    password_hash = Column(Text, nullable=False)
    phone = Column(String(40), nullable=True)
    room_no = Column(String(40), nullable=True)

    is_available = Column(Boolean, nullable=False, default=False)
    # Start of the open availability session; set iff is_available.
    last_available_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "(is_available and last_available_at is not null) "
            "or (not is_available and last_available_at is null)",
            name="ck_teachers_session_marker",
        ),
        Index("ux_teachers_email_lower", func.lower(email), unique=True),
    )

    def __repr__(self) -> str:
        return f"<Teacher {self.email} available={self.is_available}>"
