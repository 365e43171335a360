import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session

from marketplace.database import engine
from marketplace.notifications.live import registry
from marketplace.utils.token import user_from_token

logger = logging.getLogger(__name__)

router = APIRouter()


def _resolve_user(token: Optional[str]):
    with Session(engine) as session:
        user = user_from_token(session, token)
        return (user.id, user.role) if user else (None, None)


@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, token: Optional[str] = None):
    """
    Live channel for the authenticated user. Pushes are JSON objects with an
    ``event`` of ``order_status_updated``, ``payment_status_updated`` or
    ``notification``. Sending ``ping`` answers ``{"event": "pong"}``.
    """
    user_id, role = await run_in_threadpool(_resolve_user, token)

    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    registry.bind_loop(asyncio.get_running_loop())
    registry.register(websocket, user_id, role)

    try:
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        logger.info(f"User {user_id} disconnected")
    finally:
        registry.unregister(websocket, user_id, role)
