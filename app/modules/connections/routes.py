from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_id
from app.core.db import get_db
from app.schemas.connections import (
    ConnectedOut,
    ConnectionOut,
    ConnectionRequestIn,
    ConnectionStatusOut,
    UserConnectionOut,
    UserConnectionsResponse,
)
from .models import Connection
from .service import (
    accept_connection,
    accepted_connections,
    connections_for,
    is_connected,
    pending_incoming,
    reject_connection,
    remove_connection,
    request_connection,
    status_between,
)

router = APIRouter(prefix="/v1/connections", tags=["connections"])


def _as_user_connection(conn: Connection, me: str) -> UserConnectionOut:
    return UserConnectionOut(
        other_user_id=conn.other_party(me),
        is_incoming=conn.recipient_id == me,
        connection=ConnectionOut.model_validate(conn),
    )


@router.post("/request", response_model=ConnectionOut)
def connect_request(
    payload: ConnectionRequestIn,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return request_connection(db, user_id, payload.to_user_id, payload.message)


@router.post("/{connection_id}/accept", response_model=ConnectionOut)
def connect_accept(
    connection_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return accept_connection(db, connection_id, actor_id=user_id)


@router.post("/{connection_id}/reject", response_model=ConnectionOut)
def connect_reject(
    connection_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return reject_connection(db, connection_id, actor_id=user_id)


@router.delete("/{connection_id}")
def connect_remove(
    connection_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    remove_connection(db, connection_id, actor_id=user_id)
    return {"success": True}


@router.get("", response_model=UserConnectionsResponse)
def connect_list(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    conns = connections_for(db, user_id)
    return {"connections": [_as_user_connection(c, user_id) for c in conns]}


@router.get("/pending", response_model=UserConnectionsResponse)
def connect_pending(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    conns = pending_incoming(db, user_id)
    return {"connections": [_as_user_connection(c, user_id) for c in conns]}


@router.get("/accepted", response_model=UserConnectionsResponse)
def connect_accepted(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    conns = accepted_connections(db, user_id)
    return {"connections": [_as_user_connection(c, user_id) for c in conns]}


@router.get("/status/{other_user_id}", response_model=ConnectionStatusOut)
def connect_status(
    other_user_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    conn = status_between(db, user_id, other_user_id)
    return {"connection": ConnectionOut.model_validate(conn) if conn else None}


@router.get("/check/{other_user_id}", response_model=ConnectedOut)
def connect_check(
    other_user_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return {"connected": is_connected(db, user_id, other_user_id)}
