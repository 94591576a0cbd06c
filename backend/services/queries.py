from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StorageUnavailableError,
    ValidationFailedError,
)
from models.query import Query
from models.student import Student
from models.teacher import Teacher
from schemas.query import QueryOut
from services.availability import Clock, utcnow
from services.broadcast import (
    EVENT_NEW_QUERY,
    EVENT_QUERY_UPDATED,
    BroadcastHub,
    student_group,
    teacher_group,
)


logger = logging.getLogger(__name__)


def query_payload(query: Query) -> dict[str, Any]:
    return QueryOut.model_validate(query).model_dump(mode="json")


class QueryService:
    """Student queries: pending -> ended (teacher) -> resolved (student)."""

    def __init__(self, db: Session, *, hub: BroadcastHub | None = None, clock: Clock = utcnow) -> None:
        self.db = db
        self.hub = hub
        self.clock = clock

    def _get(self, query_id: uuid.UUID) -> Query:
        query = self.db.get(Query, query_id)
        if query is None:
            raise NotFoundError(f"query {query_id} does not exist", code="QUERY_NOT_FOUND")
        return query

    def _commit(self, what: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Query %s failed", what, exc_info=exc)
            raise StorageUnavailableError(f"query {what} was not saved; please retry") from exc

    def create(self, student: Student, teacher_id: uuid.UUID, query_text: str) -> Query:
        teacher = self.db.get(Teacher, teacher_id)
        if teacher is None:
            raise NotFoundError(f"teacher {teacher_id} does not exist", code="TEACHER_NOT_FOUND")
        if not teacher.is_available:
            raise ConflictError("teacher is not available right now", code="TEACHER_UNAVAILABLE")

        text = query_text.strip()
        if not text:
            raise ValidationFailedError("query text is empty", code="EMPTY_QUERY")

        query = Query(
            student_id=student.id,
            teacher_id=teacher.id,
            student_name=student.name,
            query_text=text,
            status="pending",
            created_at=self.clock(),
        )
        self.db.add(query)
        self._commit("creation")
        self.db.refresh(query)
        logger.info("Query created id=%s teacher=%s student=%s", query.id, teacher.id, student.id)

        if self.hub is not None:
            self.hub.publish_to_group(teacher_group(teacher.id), EVENT_NEW_QUERY, query_payload(query))
        return query

    def list_for_teacher(self, teacher_id: uuid.UUID) -> list[Query]:
        q = select(Query).where(Query.teacher_id == teacher_id).order_by(Query.created_at.desc())
        return list(self.db.execute(q).scalars().all())

    def list_for_student(self, student_id: uuid.UUID) -> list[Query]:
        q = select(Query).where(Query.student_id == student_id).order_by(Query.created_at.desc())
        return list(self.db.execute(q).scalars().all())

    def end(self, teacher: Teacher, query_id: uuid.UUID) -> Query:
        query = self._get(query_id)
        if str(query.teacher_id) != str(teacher.id):
            raise ForbiddenError("only the addressed teacher can end a query")
        if query.status != "pending":
            raise ConflictError(f"cannot end a {query.status} query", code="INVALID_QUERY_TRANSITION")

        query.status = "ended"
        query.ended_at = self.clock()
        self._commit("end")
        self.db.refresh(query)
        self._notify_update(query)
        return query

    def resolve(self, student: Student, query_id: uuid.UUID, resolution: str) -> Query:
        query = self._get(query_id)
        if str(query.student_id) != str(student.id):
            raise ForbiddenError("only the asking student can resolve a query")
        if query.status != "ended":
            raise ConflictError(f"cannot resolve a {query.status} query", code="INVALID_QUERY_TRANSITION")

        query.status = "resolved"
        query.resolution = resolution
        query.resolved_at = self.clock()
        self._commit("resolution")
        self.db.refresh(query)
        self._notify_update(query)
        return query

    def _notify_update(self, query: Query) -> None:
        logger.info("Query %s id=%s", query.status, query.id)
        if self.hub is None:
            return
        payload = query_payload(query)
        self.hub.publish_to_group(teacher_group(query.teacher_id), EVENT_QUERY_UPDATED, payload)
        self.hub.publish_to_group(student_group(query.student_id), EVENT_QUERY_UPDATED, payload)
