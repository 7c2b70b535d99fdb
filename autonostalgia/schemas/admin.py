from typing import Optional

from pydantic import BaseModel


class StatusUpdate(BaseModel):
    status: str


class SuspendRequest(BaseModel):
    reason: Optional[str] = None


class RoleUpdate(BaseModel):
    role: str
