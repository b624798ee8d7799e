"""
Conversation keys for direct threads.

A direct thread has no row of its own: it is the ordered sequence of
messages sharing the key derived from its two participants.
"""
from typing import Tuple

from app.core.errors import InvalidInputError

SEPARATOR = "_"


def check_user_id(user_id: str) -> str:
    if not isinstance(user_id, str) or not user_id:
        raise InvalidInputError("missing_field", "User IDs are required")
    if SEPARATOR in user_id:
        raise InvalidInputError(
            "invalid_user_id",
            f"User IDs may not contain {SEPARATOR!r}",
            user_id=user_id,
        )
    return user_id


def conversation_key(user_a: str, user_b: str) -> str:
    """Order-independent key for the thread between two distinct users."""
    check_user_id(user_a)
    check_user_id(user_b)
    if user_a == user_b:
        raise InvalidInputError("self_conversation", "A conversation needs two distinct users")
    return SEPARATOR.join(sorted([user_a, user_b]))


def participants(key: str) -> Tuple[str, str]:
    parts = key.split(SEPARATOR) if key else []
    if len(parts) != 2 or not all(parts) or parts[0] >= parts[1]:
        raise InvalidInputError("invalid_conversation_key", "Malformed conversation key", conversation_key=key)
    return parts[0], parts[1]
