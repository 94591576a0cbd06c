from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from api.deps import extract_token, resolve_principal
from core.database import SessionLocal
from core.errors import UnauthorizedError
from core.security import ROLE_TEACHER
from services.availability import AvailabilityService
from services.broadcast import BroadcastHub, student_group, teacher_group


router = APIRouter()

logger = logging.getLogger(__name__)


def _groups_for_token(token: str) -> list[str]:
    with SessionLocal() as db:
        principal = resolve_principal(db, token)
    if principal.role == ROLE_TEACHER:
        return [teacher_group(principal.id)]
    return [student_group(principal.id)]


def _load_roster() -> list[dict[str, Any]]:
    with SessionLocal() as db:
        return AvailabilityService(db).roster()


async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError):
            logger.debug("Socket closed while sending %s", message.get("event"))
            return


@router.websocket("/ws")
async def realtime(websocket: WebSocket) -> None:
    hub: BroadcastHub = websocket.app.state.hub

    # Anonymous clients get roster broadcasts only; a token adds the caller's own group.
    token = websocket.query_params.get("token") or extract_token(websocket.headers, websocket.cookies)
    groups: list[str] = []
    if token:
        try:
            groups = await run_in_threadpool(_groups_for_token, token)
        except UnauthorizedError:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await websocket.accept()
    subscriber_id = uuid.uuid4().hex
    # Register before taking the snapshot so no broadcast falls in between.
    queue = hub.register(subscriber_id, groups=groups)
    sender = asyncio.create_task(_pump(websocket, queue))
    try:
        try:
            # Snapshot read and enqueue happen under the hub roster lock, in a worker thread.
            await run_in_threadpool(hub.send_roster_snapshot, subscriber_id, _load_roster)
        except SQLAlchemyError:
            logger.warning("Could not load roster snapshot for subscriber=%s", subscriber_id, exc_info=True)
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            return

        # Clients never need to talk back; keep reading only to notice the disconnect.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
        hub.unregister(subscriber_id)
