from typing import List, Optional

from loguru import logger
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.db import store_call, utcnow
from app.core.errors import AccessDeniedError, ConflictError, InvalidInputError, NotFoundError
from app.modules.messaging.keys import check_user_id
from app.schemas.enums import ConnectionStatus

from .models import Connection, canonical_pair


def _find_pair(db: Session, a: str, b: str) -> Optional[Connection]:
    low, high = canonical_pair(a, b)
    return (
        db.query(Connection)
        .filter(Connection.pair_low == low, Connection.pair_high == high)
        .first()
    )


def _get_connection(db: Session, connection_id: int) -> Connection:
    conn = db.get(Connection, connection_id)
    if not conn:
        raise NotFoundError("connection_not_found", "Connection not found", connection_id=connection_id)
    return conn


def _exists_error(conn: Connection) -> ConflictError:
    return ConflictError(
        "connection_exists",
        "Connection already exists between these users",
        connection_id=conn.id,
        status=conn.status,
    )


# ---------- CONNECTION LOGIC ----------

@store_call
def request_connection(
    db: Session,
    requester_id: str,
    recipient_id: str,
    message: Optional[str] = None,
) -> Connection:
    # ids must be usable in a conversation key once the pair is accepted
    check_user_id(requester_id)
    check_user_id(recipient_id)

    if requester_id == recipient_id:
        raise InvalidInputError("self_request", "Cannot send connection request to yourself")

    # any prior record blocks, whatever its status; it must be removed first
    existing = _find_pair(db, requester_id, recipient_id)
    if existing:
        logger.info(
            f"Connection request blocked | from={requester_id} to={recipient_id} "
            f"existing={existing.id} status={existing.status}"
        )
        raise _exists_error(existing)

    low, high = canonical_pair(requester_id, recipient_id)
    now = utcnow()
    conn = Connection(
        requester_id=requester_id,
        recipient_id=recipient_id,
        pair_low=low,
        pair_high=high,
        status=ConnectionStatus.pending.value,
        message=(message or "").strip(),
        created_at=now,
        updated_at=now,
    )
    db.add(conn)

    try:
        db.commit()
    except IntegrityError:
        # lost the race on uq_connections_pair
        db.rollback()
        existing = _find_pair(db, requester_id, recipient_id)
        if existing is None:
            raise
        raise _exists_error(existing)

    db.refresh(conn)
    logger.info(f"Connection requested | id={conn.id} from={requester_id} to={recipient_id}")
    return conn


def _transition(
    db: Session,
    connection_id: int,
    target: ConnectionStatus,
    actor_id: Optional[str],
) -> Connection:
    conn = _get_connection(db, connection_id)

    if actor_id is not None and actor_id != conn.recipient_id:
        raise AccessDeniedError(
            "not_recipient",
            "Only the recipient can respond to a connection request",
            connection_id=connection_id,
        )

    if conn.status != ConnectionStatus.pending.value:
        raise ConflictError(
            "already_processed",
            "Connection request has already been processed",
            connection_id=connection_id,
            status=conn.status,
        )

    # compare-and-set so that two racing responses cannot both win
    result = db.execute(
        update(Connection)
        .where(
            Connection.id == connection_id,
            Connection.status == ConnectionStatus.pending.value,
        )
        .values(status=target.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        db.rollback()
        db.refresh(conn)
        raise ConflictError(
            "already_processed",
            "Connection request has already been processed",
            connection_id=connection_id,
            status=conn.status,
        )

    db.commit()
    db.refresh(conn)

    logger.info(f"Connection {target.value} | id={connection_id}")
    return conn


@store_call
def accept_connection(db: Session, connection_id: int, actor_id: Optional[str] = None) -> Connection:
    return _transition(db, connection_id, ConnectionStatus.accepted, actor_id)


@store_call
def reject_connection(db: Session, connection_id: int, actor_id: Optional[str] = None) -> Connection:
    return _transition(db, connection_id, ConnectionStatus.rejected, actor_id)


@store_call
def remove_connection(db: Session, connection_id: int, actor_id: Optional[str] = None) -> None:
    conn = _get_connection(db, connection_id)

    if actor_id is not None and actor_id not in (conn.requester_id, conn.recipient_id):
        raise AccessDeniedError(
            "not_participant",
            "Only a participant can remove a connection",
            connection_id=connection_id,
        )

    status_was = conn.status
    db.delete(conn)
    db.commit()
    logger.info(f"Connection removed | id={connection_id} status_was={status_was}")


# ---------- QUERIES ----------

@store_call
def status_between(db: Session, user_a: str, user_b: str) -> Optional[Connection]:
    if user_a == user_b:
        return None
    return _find_pair(db, user_a, user_b)


@store_call
def is_connected(db: Session, user_a: str, user_b: str) -> bool:
    if user_a == user_b:
        return False
    conn = _find_pair(db, user_a, user_b)
    return conn is not None and conn.status == ConnectionStatus.accepted.value


@store_call
def pending_incoming(db: Session, user_id: str) -> List[Connection]:
    return (
        db.query(Connection)
        .filter(
            Connection.recipient_id == user_id,
            Connection.status == ConnectionStatus.pending.value,
        )
        .order_by(Connection.created_at.desc(), Connection.id.desc())
        .all()
    )


@store_call
def accepted_connections(db: Session, user_id: str) -> List[Connection]:
    return (
        db.query(Connection)
        .filter(
            or_(Connection.requester_id == user_id, Connection.recipient_id == user_id),
            Connection.status == ConnectionStatus.accepted.value,
        )
        .order_by(Connection.created_at.desc(), Connection.id.desc())
        .all()
    )


@store_call
def connections_for(db: Session, user_id: str) -> List[Connection]:
    return (
        db.query(Connection)
        .filter(or_(Connection.requester_id == user_id, Connection.recipient_id == user_id))
        .order_by(Connection.created_at.desc(), Connection.id.desc())
        .all()
    )
