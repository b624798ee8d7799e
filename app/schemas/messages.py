from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.base import BaseSchema
from app.schemas.enums import MessageType


class SendMessageRequest(BaseModel):
    receiver_id: str = Field(..., min_length=1)
    content: str
    message_type: MessageType = MessageType.text
    reply_to_message_id: Optional[int] = None


class EditMessageRequest(BaseModel):
    content: str


class SendGroupMessageRequest(BaseModel):
    content: str
    message_type: MessageType = MessageType.text
    reply_to_message_id: Optional[int] = None


class MessageOut(BaseSchema):
    id: int
    conversation_key: str
    sender_id: str
    receiver_id: str
    content: str
    message_type: MessageType
    reply_to_message_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    read_at: Optional[datetime] = None
    is_edited: bool = False


class MessagePageOut(BaseModel):
    messages: List[MessageOut]
    next_cursor: Optional[int] = None


class GroupMessageOut(BaseSchema):
    id: int
    place_id: str
    sender_id: str
    content: str
    message_type: MessageType
    reply_to_message_id: Optional[int] = None
    created_at: datetime
    read_by: List[str]


class GroupMessagePageOut(BaseModel):
    messages: List[GroupMessageOut]
    next_cursor: Optional[int] = None


class MarkedReadOut(BaseModel):
    success: bool = True
    marked_as_read: int


class UnreadCountOut(BaseModel):
    count: int


class ConversationSummaryOut(BaseModel):
    conversation_key: str
    other_user_id: str
    last_message: MessageOut
    preview: str
    last_message_at: datetime
    unread_count: int


class ConversationsResponse(BaseModel):
    conversations: List[ConversationSummaryOut]
