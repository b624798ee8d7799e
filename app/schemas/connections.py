from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.base import TimestampedSchema
from app.schemas.enums import ConnectionStatus


class ConnectionRequestIn(BaseModel):
    to_user_id: str = Field(..., min_length=1)
    message: Optional[str] = Field(default=None, max_length=500)


class ConnectionOut(TimestampedSchema):
    id: int
    requester_id: str
    recipient_id: str
    status: ConnectionStatus
    message: str = ""
    created_at: datetime
    updated_at: datetime


class UserConnectionOut(BaseModel):
    other_user_id: str
    is_incoming: bool
    connection: ConnectionOut


class ConnectionStatusOut(BaseModel):
    connection: Optional[ConnectionOut] = None


class ConnectedOut(BaseModel):
    connected: bool


class UserConnectionsResponse(BaseModel):
    connections: List[UserConnectionOut]
