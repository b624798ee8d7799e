from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_id
from app.core.db import get_db
from app.schemas.messages import (
    ConversationSummaryOut,
    ConversationsResponse,
    EditMessageRequest,
    GroupMessageOut,
    GroupMessagePageOut,
    MarkedReadOut,
    MessageOut,
    MessagePageOut,
    SendGroupMessageRequest,
    SendMessageRequest,
    UnreadCountOut,
)
from .service import (
    delete_message,
    edit_message,
    list_conversations,
    list_group_messages,
    list_messages,
    mark_group_read,
    mark_read,
    send_group_message,
    send_message,
    unread_count,
)

router = APIRouter(prefix="/v1/chat", tags=["chat"])


# ---------- direct ----------

@router.post("/send", response_model=MessageOut)
def message_send(
    payload: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return send_message(
        db,
        user_id,
        payload.receiver_id,
        payload.content,
        message_type=payload.message_type,
        reply_to_message_id=payload.reply_to_message_id,
    )


@router.get("/conversations", response_model=ConversationsResponse)
def conversation_list(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    summaries = list_conversations(db, user_id)
    return ConversationsResponse(
        conversations=[
            ConversationSummaryOut(
                conversation_key=s.conversation_key,
                other_user_id=s.other_user_id,
                last_message=MessageOut.model_validate(s.last_message),
                preview=s.preview,
                last_message_at=s.last_message.created_at,
                unread_count=s.unread_count,
            )
            for s in summaries
        ]
    )


@router.get("/conversation/{conversation_key}/messages", response_model=MessagePageOut)
def message_list(
    conversation_key: str,
    limit: Optional[int] = Query(default=None, ge=1),
    before_id: Optional[int] = Query(default=None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    page = list_messages(db, conversation_key, user_id, limit=limit, before_id=before_id)
    return MessagePageOut(
        messages=[MessageOut.model_validate(m) for m in page.messages],
        next_cursor=page.next_cursor,
    )


@router.post("/conversation/{conversation_key}/read", response_model=MarkedReadOut)
def message_mark_read(
    conversation_key: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return MarkedReadOut(marked_as_read=mark_read(db, conversation_key, user_id))


@router.get("/unread-count", response_model=UnreadCountOut)
def message_unread_count(
    conversation_key: Optional[str] = Query(default=None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return UnreadCountOut(count=unread_count(db, user_id, conversation_key))


@router.put("/message/{message_id}", response_model=MessageOut)
def message_edit(
    message_id: int,
    payload: EditMessageRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return edit_message(db, message_id, user_id, payload.content)


@router.delete("/message/{message_id}")
def message_delete(
    message_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delete_message(db, message_id, user_id)
    return {"success": True}


# ---------- place groups ----------

@router.post("/groups/{place_id}/messages", response_model=GroupMessageOut)
def group_message_send(
    place_id: str,
    payload: SendGroupMessageRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    msg = send_group_message(
        db,
        place_id,
        user_id,
        payload.content,
        message_type=payload.message_type,
        reply_to_message_id=payload.reply_to_message_id,
    )
    return GroupMessageOut.model_validate(msg)


@router.get("/groups/{place_id}/messages", response_model=GroupMessagePageOut)
def group_message_list(
    place_id: str,
    limit: Optional[int] = Query(default=None, ge=1),
    before_id: Optional[int] = Query(default=None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    page = list_group_messages(db, place_id, user_id, limit=limit, before_id=before_id)
    return GroupMessagePageOut(
        messages=[GroupMessageOut.model_validate(m) for m in page.messages],
        next_cursor=page.next_cursor,
    )


@router.post("/groups/{place_id}/read", response_model=MarkedReadOut)
def group_message_mark_read(
    place_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return MarkedReadOut(marked_as_read=mark_group_read(db, place_id, user_id))
