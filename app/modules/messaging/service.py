from dataclasses import dataclass
from typing import Generic, List, Optional, TypeVar

from loguru import logger
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import MESSAGE_PAGE_LIMIT, MESSAGE_PAGE_LIMIT_MAX
from app.core.db import store_call, utcnow
from app.core.errors import AccessDeniedError, InvalidInputError, NotFoundError, PolicyViolationError
from app.modules.connections.service import is_connected
from app.modules.places.models import Membership, Place
from app.schemas.enums import MessageType

from .keys import conversation_key, participants
from .models import GroupMessage, GroupMessageRead, Message

T = TypeVar("T")

PREVIEW_LENGTH = 50


@dataclass
class MessagePage(Generic[T]):
    messages: List[T]
    # pass back as before_id to fetch the next (older) page
    next_cursor: Optional[int]


@dataclass
class ConversationSummary:
    conversation_key: str
    other_user_id: str
    last_message: Message
    preview: str
    unread_count: int


def _clean_content(content: Optional[str]) -> str:
    text = (content or "").strip()
    if not text:
        raise InvalidInputError("empty_content", "Message content is required")
    return text


def _message_type(value) -> str:
    try:
        return MessageType(value or MessageType.text).value
    except ValueError:
        raise InvalidInputError("invalid_message_type", f"Unknown message type: {value}", message_type=value)


def _page_limit(limit: Optional[int]) -> int:
    if limit is None:
        return MESSAGE_PAGE_LIMIT
    if limit < 1:
        raise InvalidInputError("invalid_limit", "limit must be at least 1", limit=limit)
    return min(limit, MESSAGE_PAGE_LIMIT_MAX)


def _page(query, model, limit: Optional[int], before_id: Optional[int]) -> MessagePage:
    size = _page_limit(limit)
    if before_id is not None:
        query = query.filter(model.id < before_id)

    # newest first at the store, chronological for the caller
    rows = query.order_by(model.created_at.desc(), model.id.desc()).limit(size + 1).all()
    has_more = len(rows) > size
    rows = rows[:size]
    rows.reverse()

    next_cursor = rows[0].id if rows and has_more else None
    return MessagePage(messages=rows, next_cursor=next_cursor)


def _preview(content: str) -> str:
    if len(content) <= PREVIEW_LENGTH:
        return content
    return content[:PREVIEW_LENGTH] + "..."


def _require_participant(key: str, user_id: str) -> None:
    if user_id not in participants(key):
        raise AccessDeniedError(
            "access_denied",
            "Access denied to this conversation",
            conversation_key=key,
        )


def _get_own_message(db: Session, message_id: int, actor_id: str) -> Message:
    msg = db.get(Message, message_id)
    if not msg:
        raise NotFoundError("message_not_found", "Message not found", message_id=message_id)
    if msg.sender_id != actor_id:
        raise AccessDeniedError("not_sender", "Only the sender can change this message", message_id=message_id)
    return msg


# ---------- DIRECT MESSAGING ----------

@store_call
def send_message(
    db: Session,
    sender_id: str,
    receiver_id: str,
    content: str,
    message_type=MessageType.text,
    reply_to_message_id: Optional[int] = None,
) -> Message:
    if sender_id == receiver_id:
        raise InvalidInputError("self_message", "Cannot send message to yourself")

    key = conversation_key(sender_id, receiver_id)
    text = _clean_content(content)
    kind = _message_type(message_type)

    if not is_connected(db, sender_id, receiver_id):
        logger.info(f"Message rejected: not connected | from={sender_id} to={receiver_id}")
        raise PolicyViolationError(
            "not_connected",
            "Users must be connected to send messages",
            sender_id=sender_id,
            receiver_id=receiver_id,
        )

    if reply_to_message_id is not None:
        target = db.get(Message, reply_to_message_id)
        if target is None or target.conversation_key != key:
            raise NotFoundError(
                "reply_target_not_found",
                "Replied-to message not found in this conversation",
                reply_to_message_id=reply_to_message_id,
            )

    now = utcnow()
    msg = Message(
        conversation_key=key,
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=text,
        message_type=kind,
        reply_to_message_id=reply_to_message_id,
        created_at=now,
        updated_at=now,
        read_at=None,
        is_edited=False,
    )
    db.add(msg)
    db.commit()
    db.refresh(msg)

    logger.info(f"Message sent | id={msg.id} conversation={key}")
    return msg


@store_call
def list_messages(
    db: Session,
    key: str,
    user_id: str,
    limit: Optional[int] = None,
    before_id: Optional[int] = None,
) -> MessagePage[Message]:
    _require_participant(key, user_id)
    query = db.query(Message).filter(Message.conversation_key == key)
    return _page(query, Message, limit, before_id)


@store_call
def mark_read(db: Session, key: str, user_id: str) -> int:
    """Stamp every unread message addressed to user_id in the thread. Returns the count."""
    _require_participant(key, user_id)

    now = utcnow()
    result = db.execute(
        update(Message)
        .where(
            Message.conversation_key == key,
            Message.receiver_id == user_id,
            Message.read_at.is_(None),
        )
        .values(read_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    marked = result.rowcount or 0
    logger.info(f"Messages marked read | conversation={key} user={user_id} count={marked}")
    return marked


@store_call
def unread_count(db: Session, user_id: str, key: Optional[str] = None) -> int:
    query = db.query(func.count(Message.id)).filter(
        Message.receiver_id == user_id,
        Message.read_at.is_(None),
    )
    if key is not None:
        _require_participant(key, user_id)
        query = query.filter(Message.conversation_key == key)
    return query.scalar()


@store_call
def list_conversations(db: Session, user_id: str) -> List[ConversationSummary]:
    """
    Direct threads user_id has sent or received messages in, most
    recently active first, each with its last message and the number of
    messages still unread by user_id.
    """
    mine = or_(Message.sender_id == user_id, Message.receiver_id == user_id)
    latest_ids = select(func.max(Message.id)).where(mine).group_by(Message.conversation_key)
    last_messages = (
        db.query(Message)
        .filter(Message.id.in_(latest_ids))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )

    unread = dict(
        db.query(Message.conversation_key, func.count(Message.id))
        .filter(Message.receiver_id == user_id, Message.read_at.is_(None))
        .group_by(Message.conversation_key)
        .all()
    )

    out: List[ConversationSummary] = []
    for msg in last_messages:
        low, high = participants(msg.conversation_key)
        out.append(
            ConversationSummary(
                conversation_key=msg.conversation_key,
                other_user_id=high if low == user_id else low,
                last_message=msg,
                preview=_preview(msg.content),
                unread_count=unread.get(msg.conversation_key, 0),
            )
        )
    return out


@store_call
def edit_message(db: Session, message_id: int, actor_id: str, content: str) -> Message:
    msg = _get_own_message(db, message_id, actor_id)

    msg.content = _clean_content(content)
    msg.is_edited = True
    msg.updated_at = utcnow()
    db.commit()
    db.refresh(msg)

    logger.info(f"Message edited | id={message_id}")
    return msg


@store_call
def delete_message(db: Session, message_id: int, actor_id: str) -> None:
    msg = _get_own_message(db, message_id, actor_id)

    # replies stay in the thread but lose their reference
    detached = db.execute(
        update(Message)
        .where(Message.reply_to_message_id == message_id)
        .values(reply_to_message_id=None)
        .execution_options(synchronize_session=False)
    )
    db.delete(msg)
    db.commit()
    logger.info(f"Message deleted | id={message_id} replies_detached={detached.rowcount or 0}")


# ---------- PLACE GROUP THREADS ----------

def _require_place_member(db: Session, place_id: str, user_id: str) -> None:
    if not db.get(Place, place_id):
        raise NotFoundError("place_not_found", "Place not found", place_id=place_id)
    if not db.get(Membership, (place_id, user_id)):
        raise AccessDeniedError(
            "not_a_member",
            "Only members of this place can use its group chat",
            place_id=place_id,
        )


@store_call
def send_group_message(
    db: Session,
    place_id: str,
    sender_id: str,
    content: str,
    message_type=MessageType.text,
    reply_to_message_id: Optional[int] = None,
) -> GroupMessage:
    _require_place_member(db, place_id, sender_id)
    text = _clean_content(content)
    kind = _message_type(message_type)

    if reply_to_message_id is not None:
        target = db.get(GroupMessage, reply_to_message_id)
        if target is None or target.place_id != place_id:
            raise NotFoundError(
                "reply_target_not_found",
                "Replied-to message not found in this group",
                reply_to_message_id=reply_to_message_id,
            )

    now = utcnow()
    msg = GroupMessage(
        place_id=place_id,
        sender_id=sender_id,
        content=text,
        message_type=kind,
        reply_to_message_id=reply_to_message_id,
        created_at=now,
        updated_at=now,
    )
    # the sender has read their own message
    msg.reads.append(GroupMessageRead(user_id=sender_id, read_at=now))
    db.add(msg)
    db.commit()
    db.refresh(msg)

    logger.info(f"Group message sent | id={msg.id} place={place_id}")
    return msg


@store_call
def list_group_messages(
    db: Session,
    place_id: str,
    user_id: str,
    limit: Optional[int] = None,
    before_id: Optional[int] = None,
) -> MessagePage[GroupMessage]:
    _require_place_member(db, place_id, user_id)
    query = db.query(GroupMessage).filter(GroupMessage.place_id == place_id)
    return _page(query, GroupMessage, limit, before_id)


def _insert_group_reads(db: Session, place_id: str, user_id: str) -> int:
    already_read = select(GroupMessageRead.message_id).where(GroupMessageRead.user_id == user_id)
    unread_ids = [
        row.id
        for row in db.query(GroupMessage.id).filter(
            GroupMessage.place_id == place_id,
            GroupMessage.id.notin_(already_read),
        )
    ]

    now = utcnow()
    db.add_all(GroupMessageRead(message_id=mid, user_id=user_id, read_at=now) for mid in unread_ids)
    db.commit()
    return len(unread_ids)


@store_call
def mark_group_read(db: Session, place_id: str, user_id: str) -> int:
    """Add user_id to the read-by set of every group message it has not read yet."""
    _require_place_member(db, place_id, user_id)

    try:
        marked = _insert_group_reads(db, place_id, user_id)
    except IntegrityError:
        # a concurrent call by the same user inserted some of the rows
        db.rollback()
        marked = _insert_group_reads(db, place_id, user_id)

    logger.info(f"Group messages marked read | place={place_id} user={user_id} count={marked}")
    return marked
