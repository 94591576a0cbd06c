from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from api.deps import Principal, get_current_principal, get_current_student, get_current_teacher, get_query_service
from models.student import Student
from models.teacher import Teacher
from schemas.query import QueryCreate, QueryOut, QueryResolve
from services.queries import QueryService


router = APIRouter()


@router.post("", response_model=QueryOut, status_code=201)
def create_query(
    payload: QueryCreate,
    student: Student = Depends(get_current_student),
    service: QueryService = Depends(get_query_service),
) -> QueryOut:
    return service.create(student, payload.teacher_id, payload.query_text)


@router.get("/mine", response_model=list[QueryOut])
def my_queries(
    principal: Principal = Depends(get_current_principal),
    service: QueryService = Depends(get_query_service),
) -> list[QueryOut]:
    if principal.is_teacher:
        return service.list_for_teacher(principal.id)
    return service.list_for_student(principal.id)


@router.put("/{query_id}/end", response_model=QueryOut)
def end_query(
    query_id: uuid.UUID,
    teacher: Teacher = Depends(get_current_teacher),
    service: QueryService = Depends(get_query_service),
) -> QueryOut:
    return service.end(teacher, query_id)


@router.put("/{query_id}/resolve", response_model=QueryOut)
def resolve_query(
    query_id: uuid.UUID,
    payload: QueryResolve,
    student: Student = Depends(get_current_student),
    service: QueryService = Depends(get_query_service),
) -> QueryOut:
    return service.resolve(student, query_id, payload.resolution)
