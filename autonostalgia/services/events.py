import asyncio
from typing import Any, Dict, Iterable, Optional, Set

import structlog
from fastapi import WebSocket

logger = structlog.get_logger(__name__)


class EventHub:
    def __init__(self) -> None:
        # profile_id (str) -> set of WebSocket connections
        self._user_connections: Dict[str, Set[WebSocket]] = {}
        # profile_id (str) -> role at connect time
        self._roles: Dict[str, str] = {}
        # profile_id (str) -> province at connect time (None means unrestricted)
        self._provinces: Dict[str, Optional[str]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, ws: WebSocket, role: str = "", province: Optional[str] = None) -> None:
        async with self._lock:
            self._user_connections.setdefault(user_id, set()).add(ws)
            if role:
                self._roles[user_id] = role
            self._provinces[user_id] = province or None

    async def disconnect(self, user_id: str, ws: WebSocket) -> None:
        async with self._lock:
            conns = self._user_connections.get(user_id)
            if conns is not None:
                conns.discard(ws)
                if not conns:
                    self._user_connections.pop(user_id, None)
                    self._roles.pop(user_id, None)
                    self._provinces.pop(user_id, None)

    def connected_users(self) -> Set[str]:
        return set(self._user_connections.keys())

    async def send_to_user(self, user_id: str, event: str, payload: Any) -> None:
        await self.broadcast_to_users({user_id}, event, payload)

    async def broadcast_to_users(self, user_ids: Iterable[str], event: str, payload: Any) -> None:
        user_ids = {u for u in user_ids if u}
        if not user_ids:
            return
        data = {"event": event, "data": payload}
        async with self._lock:
            targets = []
            for uid in user_ids:
                targets.extend(self._user_connections.get(uid, set()))
        for ws in targets:
            try:
                await ws.send_json(data)
            except Exception as exc:  # dead sockets are dropped on disconnect
                logger.warning("event_send_failed", event_name=event, error=str(exc))

    async def broadcast_to_role(self, role: str, event: str, payload: Any) -> None:
        async with self._lock:
            user_ids = {uid for uid, r in self._roles.items() if r == role}
        await self.broadcast_to_users(user_ids, event, payload)

    async def broadcast_to_province(self, role: str, province: Optional[str], event: str, payload: Any) -> None:
        """Users of a role whose province matches, plus those with no province set."""
        async with self._lock:
            user_ids = {
                uid
                for uid, r in self._roles.items()
                if r == role and (self._provinces.get(uid) is None or self._provinces.get(uid) == province)
            }
        await self.broadcast_to_users(user_ids, event, payload)


# Global singleton hub
hub = EventHub()


async def publish_assessment_change(
    assessment: Dict[str, Any], action: str, customer_province: Optional[str] = None
) -> None:
    """Notify everyone who can see an assessment that it changed.

    Pending requests also go to the open pool: assessors in the customer's
    province and assessors without a province.
    """
    payload = {"action": action, "assessment": assessment}
    recipients = {assessment.get("user_id"), assessment.get("assigned_assessor_id")}
    await hub.broadcast_to_users(recipients, "assessment_updated", payload)
    await hub.broadcast_to_role("admin", "assessment_updated", payload)
    if assessment.get("status") == "pending":
        await hub.broadcast_to_province("assessor", customer_province, "assessment_updated", payload)
