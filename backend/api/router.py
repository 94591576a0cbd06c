from __future__ import annotations

from fastapi import APIRouter

from api.routes import auth, queries, teachers


api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(auth.student_router, prefix="/student/auth", tags=["auth"])

# Per-route dependencies decide who may call what (roster reads are public).
api_router.include_router(teachers.router, prefix="/teachers", tags=["teachers"])
api_router.include_router(queries.router, prefix="/queries", tags=["queries"])
