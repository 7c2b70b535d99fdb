from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from ..auth.security import profile_from_token
from ..db import get_db
from ..services.events import hub


router = APIRouter(tags=["events"])
logger = structlog.get_logger(__name__)


@router.websocket("/ws/events")
async def ws_events(websocket: WebSocket, token: Optional[str] = None, db: Session = Depends(get_db)):
    if not token:
        await websocket.close(code=4401)
        return
    try:
        profile = profile_from_token(token, db)
    except HTTPException:
        await websocket.close(code=4401)
        return

    user_id = str(profile.id)
    await websocket.accept()
    await hub.connect(user_id, websocket, role=profile.role, province=profile.province)
    await websocket.send_json({"event": "connected", "data": {"user_id": user_id, "role": profile.role}})

    try:
        while True:
            data = await websocket.receive_text()
            if data and data.strip().lower() in {"ping", "keepalive"}:
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        await hub.disconnect(user_id, websocket)
    except Exception as exc:
        logger.warning("event_socket_error", user_id=user_id, error=str(exc))
        await hub.disconnect(user_id, websocket)
