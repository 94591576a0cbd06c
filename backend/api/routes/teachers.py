from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query

from api.deps import get_availability_service, get_current_teacher
from models.teacher import Teacher
from schemas.teacher import AvailabilityUpdate, DailyTimeRecordOut, TeacherStatusOut, TodayTimeOut
from services.availability import AvailabilityService


router = APIRouter()


@router.get("", response_model=list[TeacherStatusOut])
def list_teachers(service: AvailabilityService = Depends(get_availability_service)) -> list[TeacherStatusOut]:
    return service.list_teachers()


@router.put("/status", response_model=TeacherStatusOut)
def update_own_status(
    payload: AvailabilityUpdate,
    current_teacher: Teacher = Depends(get_current_teacher),
    service: AvailabilityService = Depends(get_availability_service),
) -> TeacherStatusOut:
    return service.set_availability(current_teacher.id, current_teacher.id, payload.is_available)


@router.put("/{teacher_id}/status", response_model=TeacherStatusOut)
def update_status(
    teacher_id: uuid.UUID,
    payload: AvailabilityUpdate,
    current_teacher: Teacher = Depends(get_current_teacher),
    service: AvailabilityService = Depends(get_availability_service),
) -> TeacherStatusOut:
    return service.set_availability(current_teacher.id, teacher_id, payload.is_available)


@router.get("/me/time/today", response_model=TodayTimeOut)
def today_time(
    current_teacher: Teacher = Depends(get_current_teacher),
    service: AvailabilityService = Depends(get_availability_service),
) -> TodayTimeOut:
    return TodayTimeOut(
        teacher_id=current_teacher.id,
        day=service.day_of(service.now()),
        total_available_seconds=service.get_today_available_seconds(current_teacher.id),
        live_available_seconds=service.get_live_available_seconds(current_teacher.id),
    )


@router.get("/me/time-records", response_model=list[DailyTimeRecordOut])
def time_records(
    start: date = Query(...),
    end: date = Query(...),
    current_teacher: Teacher = Depends(get_current_teacher),
    service: AvailabilityService = Depends(get_availability_service),
) -> list[DailyTimeRecordOut]:
    return service.time_records(current_teacher.id, start, end)
