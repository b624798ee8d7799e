import pytest

from app.core.errors import AccessDeniedError, InvalidInputError, NotFoundError, PolicyViolationError
from app.core.geo import Coordinate
from app.modules.connections.service import accept_connection, reject_connection, request_connection
from app.modules.messaging.keys import conversation_key
from app.modules.messaging.models import Message
from app.modules.messaging.service import (
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
from app.modules.places.service import create_place, join_place

KEY = "alice_bob"


@pytest.fixture
def connected(db):
    conn = request_connection(db, "alice", "bob")
    return accept_connection(db, conn.id, actor_id="bob")


def test_send_message_between_connected_users(db, connected):
    msg = send_message(db, "bob", "alice", "  hello  ")
    assert msg.conversation_key == KEY == conversation_key("alice", "bob")
    assert msg.content == "hello"
    assert msg.message_type == "text"
    assert msg.read_at is None
    assert not msg.is_edited


def test_send_requires_accepted_connection(db):
    with pytest.raises(PolicyViolationError) as exc:
        send_message(db, "alice", "bob", "hi")
    assert exc.value.code == "not_connected"


@pytest.mark.parametrize("respond", [None, reject_connection])
def test_pending_or_rejected_connection_cannot_message(db, respond):
    conn = request_connection(db, "alice", "bob")
    if respond:
        respond(db, conn.id)
    with pytest.raises(PolicyViolationError):
        send_message(db, "alice", "bob", "hi")


def test_send_to_self(db):
    with pytest.raises(InvalidInputError) as exc:
        send_message(db, "alice", "alice", "hi")
    assert exc.value.code == "self_message"


@pytest.mark.parametrize("content", ["", "   ", None])
def test_send_empty_content(db, connected, content):
    with pytest.raises(InvalidInputError) as exc:
        send_message(db, "alice", "bob", content)
    assert exc.value.code == "empty_content"


def test_send_unknown_message_type(db, connected):
    with pytest.raises(InvalidInputError):
        send_message(db, "alice", "bob", "hi", message_type="video")


def test_reply_must_target_same_thread(db, connected):
    first = send_message(db, "alice", "bob", "first")
    reply = send_message(db, "bob", "alice", "reply", reply_to_message_id=first.id)
    assert reply.reply_to_message_id == first.id

    other = request_connection(db, "alice", "carol")
    accept_connection(db, other.id)
    with pytest.raises(NotFoundError):
        send_message(db, "alice", "carol", "nope", reply_to_message_id=first.id)


def test_list_messages_chronological_with_cursor(db, connected):
    sent = [send_message(db, "alice", "bob", f"m{i}") for i in range(5)]

    page = list_messages(db, KEY, "bob", limit=2)
    assert [m.content for m in page.messages] == ["m3", "m4"]
    assert page.next_cursor == sent[3].id

    page = list_messages(db, KEY, "alice", limit=2, before_id=page.next_cursor)
    assert [m.content for m in page.messages] == ["m1", "m2"]

    page = list_messages(db, KEY, "alice", limit=2, before_id=page.next_cursor)
    assert [m.content for m in page.messages] == ["m0"]
    assert page.next_cursor is None


def test_list_messages_outsider_denied(db, connected):
    with pytest.raises(AccessDeniedError):
        list_messages(db, KEY, "mallory")


def test_mark_read_is_idempotent(db, connected):
    send_message(db, "alice", "bob", "one")
    send_message(db, "alice", "bob", "two")
    send_message(db, "bob", "alice", "three")

    assert unread_count(db, "bob") == 2
    assert mark_read(db, KEY, "bob") == 2
    assert mark_read(db, KEY, "bob") == 0
    assert unread_count(db, "bob", KEY) == 0
    # alice's incoming message is untouched
    assert unread_count(db, "alice", KEY) == 1


def test_mark_read_outsider_denied(db, connected):
    with pytest.raises(AccessDeniedError):
        mark_read(db, KEY, "mallory")


def test_mark_read_malformed_key(db):
    with pytest.raises(InvalidInputError):
        mark_read(db, "bob_alice", "bob")


def test_edit_and_delete_only_by_sender(db, connected):
    msg = send_message(db, "alice", "bob", "typo")

    with pytest.raises(AccessDeniedError):
        edit_message(db, msg.id, "bob", "hijack")

    edited = edit_message(db, msg.id, "alice", "fixed")
    assert edited.content == "fixed"
    assert edited.is_edited

    with pytest.raises(AccessDeniedError):
        delete_message(db, msg.id, "bob")
    delete_message(db, msg.id, "alice")

    with pytest.raises(NotFoundError):
        delete_message(db, msg.id, "alice")


def test_delete_detaches_replies(db, connected):
    first = send_message(db, "alice", "bob", "first")
    reply = send_message(db, "bob", "alice", "reply", reply_to_message_id=first.id)

    delete_message(db, first.id, "alice")

    kept = db.get(Message, reply.id)
    assert kept is not None
    assert kept.reply_to_message_id is None
    assert [m.content for m in list_messages(db, KEY, "alice").messages] == ["reply"]


def test_list_conversations_newest_first(db, connected):
    accept_connection(db, request_connection(db, "carol", "alice").id)
    long_text = "x" * 60

    send_message(db, "alice", "bob", "one")
    send_message(db, "alice", "carol", long_text)
    send_message(db, "bob", "alice", "latest")

    threads = list_conversations(db, "alice")
    assert [t.conversation_key for t in threads] == ["alice_bob", "alice_carol"]
    assert [t.other_user_id for t in threads] == ["bob", "carol"]
    assert threads[0].last_message.content == "latest"
    assert threads[0].preview == "latest"
    assert threads[0].unread_count == 1
    assert threads[1].preview == "x" * 50 + "..."
    assert threads[1].unread_count == 0

    mark_read(db, KEY, "alice")
    assert list_conversations(db, "alice")[0].unread_count == 0

    carol = list_conversations(db, "carol")
    assert [(t.other_user_id, t.unread_count) for t in carol] == [("alice", 1)]
    assert list_conversations(db, "mallory") == []


# ---------- group threads ----------

@pytest.fixture
def lounge(db, origin):
    create_place(db, "lounge", "Lounge", "owner", origin=origin)
    for user in ("alice", "bob", "carol"):
        join_place(db, "lounge", user, Coordinate(0.0001, 0.0))
    return "lounge"


def test_group_message_read_by_sender(db, lounge):
    msg = send_group_message(db, lounge, "alice", "hello all")
    assert msg.read_by == ["alice"]


def test_group_requires_membership(db, lounge):
    with pytest.raises(AccessDeniedError):
        send_group_message(db, lounge, "mallory", "hi")
    with pytest.raises(AccessDeniedError):
        mark_group_read(db, lounge, "mallory")
    with pytest.raises(NotFoundError):
        send_group_message(db, "nowhere", "alice", "hi")


def test_group_read_set_grows(db, lounge):
    send_group_message(db, lounge, "alice", "one")
    send_group_message(db, lounge, "bob", "two")

    assert mark_group_read(db, lounge, "carol") == 2
    assert mark_group_read(db, lounge, "carol") == 0
    assert mark_group_read(db, lounge, "alice") == 1

    page = list_group_messages(db, lounge, "bob")
    assert [m.content for m in page.messages] == ["one", "two"]
    assert page.messages[0].read_by == ["alice", "carol"]
    assert page.messages[1].read_by == ["alice", "bob", "carol"]


def test_group_pagination(db, lounge):
    for i in range(3):
        send_group_message(db, lounge, "alice", f"g{i}")

    page = list_group_messages(db, lounge, "bob", limit=2)
    assert [m.content for m in page.messages] == ["g1", "g2"]
    page = list_group_messages(db, lounge, "bob", limit=2, before_id=page.next_cursor)
    assert [m.content for m in page.messages] == ["g0"]
    assert page.next_cursor is None
