from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_id
from app.core.db import get_db
from app.core.geo import Coordinate
from app.schemas.places import (
    JoinPlaceRequest,
    LocationPingRequest,
    MembershipOut,
    NearbyPlaceOut,
    NearbyPlacesResponse,
    NearbyUserOut,
    NearbyUsersResponse,
    PlaceCreateRequest,
    PlaceOut,
    PresenceCheckOut,
)
from .service import (
    create_place,
    get_place,
    join_place,
    leave_place,
    list_nearby,
    nearby_places,
    place_user_count,
    refresh_location,
)

router = APIRouter(prefix="/v1/places", tags=["places"])


@router.post("", response_model=PlaceOut)
def place_create(
    payload: PlaceCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return create_place(
        db,
        payload.place_id,
        payload.name,
        user_id,
        origin=payload.origin.to_coordinate() if payload.origin else None,
        qr_code=payload.qr_code,
        radius_m=payload.radius_m,
    )


@router.get("/nearby", response_model=NearbyPlacesResponse)
def place_nearby(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_m: Optional[float] = Query(default=None, gt=0),
    db: Session = Depends(get_db),
):
    found = nearby_places(db, Coordinate(lat, lng), radius_m)
    return NearbyPlacesResponse(
        places=[
            NearbyPlaceOut(
                place=PlaceOut.model_validate(n.place),
                distance_m=round(n.distance_m, 1),
                user_count=n.user_count,
            )
            for n in found
        ],
        count=len(found),
    )


@router.get("/{place_id}", response_model=PlaceOut)
def place_get(place_id: str, db: Session = Depends(get_db)):
    return get_place(db, place_id)


@router.post("/{place_id}/join", response_model=MembershipOut)
def place_join(
    place_id: str,
    payload: JoinPlaceRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return join_place(db, place_id, user_id, payload.to_coordinate())


@router.post("/{place_id}/leave", response_model=MembershipOut)
def place_leave(
    place_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return leave_place(db, place_id, user_id)


@router.post("/{place_id}/ping", response_model=PresenceCheckOut)
def place_ping(
    place_id: str,
    payload: LocationPingRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    check = refresh_location(db, place_id, user_id, payload.to_coordinate())
    return PresenceCheckOut(
        membership=MembershipOut.model_validate(check.membership),
        distance_m=check.distance_m,
        in_range=check.in_range,
    )


@router.get("/{place_id}/users", response_model=NearbyUsersResponse)
def place_users(
    place_id: str,
    origin_lat: float = Query(..., ge=-90, le=90),
    origin_lng: float = Query(..., ge=-180, le=180),
    radius_m: Optional[float] = Query(default=None, gt=0),
    db: Session = Depends(get_db),
):
    members = list_nearby(db, place_id, Coordinate(origin_lat, origin_lng), radius_m)
    online = place_user_count(db, place_id)
    return NearbyUsersResponse(
        users=[
            NearbyUserOut(
                user_id=n.user_id,
                lat=n.membership.lat,
                lng=n.membership.lng,
                distance_m=round(n.distance_m, 1),
                joined_at=n.membership.joined_at,
            )
            for n in members
        ],
        online_count=online,
    )
