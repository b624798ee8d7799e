from dataclasses import dataclass
from typing import List, Optional

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import DEFAULT_PLACE_RADIUS_METERS, DEFAULT_NEARBY_PLACES_RADIUS_METERS
from app.core.db import store_call, utcnow
from app.core.errors import AccessDeniedError, InvalidInputError, NotFoundError, PolicyViolationError, TooFarError
from app.core.geo import Coordinate, distance_m

from .models import Membership, Place


@dataclass
class NearbyMember:
    user_id: str
    distance_m: float
    membership: Membership


@dataclass
class NearbyPlace:
    place: Place
    distance_m: float
    user_count: int


@dataclass
class PresenceCheck:
    membership: Membership
    distance_m: Optional[float]
    in_range: bool


def _require(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidInputError("missing_field", f"{field} is required", field=field)
    return str(value).strip()


def _get_place(db: Session, place_id: str) -> Place:
    place = db.get(Place, place_id)
    if not place:
        raise NotFoundError("place_not_found", "Place not found", place_id=place_id)
    return place


def _get_membership(db: Session, place_id: str, user_id: str) -> Membership:
    membership = db.get(Membership, (place_id, user_id))
    if not membership:
        raise NotFoundError(
            "not_a_member",
            "User is not a member of this place",
            place_id=place_id,
            user_id=user_id,
        )
    return membership


# ---------- PLACES ----------

@store_call
def create_place(
    db: Session,
    place_id: str,
    name: str,
    created_by: str,
    origin: Optional[Coordinate] = None,
    qr_code: Optional[str] = None,
    radius_m: Optional[float] = None,
) -> Place:
    place_id = _require(place_id, "place_id")
    name = _require(name, "name")
    created_by = _require(created_by, "created_by")

    if radius_m is None:
        radius_m = DEFAULT_PLACE_RADIUS_METERS
    if radius_m <= 0:
        raise InvalidInputError("invalid_radius", "radius_m must be positive", radius_m=radius_m)

    place = db.get(Place, place_id)
    if place is None:
        place = Place(id=place_id, created_by=created_by, created_at=utcnow())
        db.add(place)
    elif place.created_by != created_by:
        raise AccessDeniedError(
            "not_owner",
            "Only the creator can update this place",
            place_id=place_id,
        )

    place.name = name
    place.qr_code = qr_code or place_id
    place.origin_lat = origin.lat if origin else None
    place.origin_lng = origin.lng if origin else None
    place.radius_m = radius_m
    place.is_active = True

    db.commit()
    db.refresh(place)

    logger.info(f"Place saved | place={place_id} origin={origin} radius={radius_m}")
    return place


@store_call
def get_place(db: Session, place_id: str) -> Place:
    return _get_place(db, place_id)


@store_call
def place_user_count(db: Session, place_id: str) -> int:
    _get_place(db, place_id)
    return (
        db.query(func.count(Membership.user_id))
        .filter(
            Membership.place_id == place_id,
            Membership.is_online.is_(True),
            Membership.out_of_range.is_(False),
        )
        .scalar()
    )


@store_call
def nearby_places(
    db: Session,
    origin: Coordinate,
    radius_m: Optional[float] = None,
) -> List[NearbyPlace]:
    if radius_m is None:
        radius_m = DEFAULT_NEARBY_PLACES_RADIUS_METERS

    places = (
        db.query(Place)
        .filter(
            Place.is_active.is_(True),
            Place.origin_lat.isnot(None),
            Place.origin_lng.isnot(None),
        )
        .all()
    )

    in_radius = []
    for place in places:
        d = distance_m(origin, place.origin)
        if d <= radius_m:
            in_radius.append((place, d))

    if not in_radius:
        return []

    counts = dict(
        db.query(Membership.place_id, func.count(Membership.user_id))
        .filter(
            Membership.place_id.in_([p.id for p, _ in in_radius]),
            Membership.is_online.is_(True),
            Membership.out_of_range.is_(False),
        )
        .group_by(Membership.place_id)
        .all()
    )

    out = [NearbyPlace(place=p, distance_m=d, user_count=counts.get(p.id, 0)) for p, d in in_radius]
    out.sort(key=lambda n: (n.distance_m, n.place.id))
    return out


# ---------- MEMBERSHIP ----------

def _apply_join(membership: Membership, coordinate: Coordinate, now) -> None:
    membership.lat = coordinate.lat
    membership.lng = coordinate.lng
    membership.is_online = True
    membership.out_of_range = False
    membership.joined_at = now
    membership.last_seen_at = now
    membership.left_at = None


@store_call
def join_place(db: Session, place_id: str, user_id: str, coordinate: Coordinate) -> Membership:
    """
    Upsert the (place, user) membership as online and in range.

    When the place has an origin the caller must be within its radius,
    otherwise TooFarError is raised with the computed distance and no
    membership is written.
    """
    user_id = _require(user_id, "user_id")
    place = _get_place(db, place_id)

    if not place.is_active:
        raise PolicyViolationError("place_inactive", "This place is no longer active", place_id=place_id)

    origin = place.origin
    if origin is not None:
        d = distance_m(coordinate, origin)
        if d > place.radius_m:
            logger.info(f"Join rejected: too far | place={place_id} user={user_id} distance={d:.1f}m")
            raise TooFarError(d, place.radius_m, place_id=place_id)

    now = utcnow()
    membership = db.get(Membership, (place_id, user_id))
    if membership is None:
        membership = Membership(place_id=place_id, user_id=user_id, first_joined_at=now)
        db.add(membership)
    _apply_join(membership, coordinate, now)

    try:
        db.commit()
    except IntegrityError:
        # a concurrent first join inserted the row; overwrite it instead
        db.rollback()
        membership = _get_membership(db, place_id, user_id)
        _apply_join(membership, coordinate, now)
        db.commit()

    db.refresh(membership)
    logger.info(f"User joined place | place={place_id} user={user_id}")
    return membership


@store_call
def leave_place(db: Session, place_id: str, user_id: str) -> Membership:
    _get_place(db, place_id)
    membership = _get_membership(db, place_id, user_id)

    now = utcnow()
    membership.is_online = False
    membership.left_at = now
    membership.last_seen_at = now
    db.commit()
    db.refresh(membership)

    logger.info(f"User left place | place={place_id} user={user_id}")
    return membership


@store_call
def refresh_location(db: Session, place_id: str, user_id: str, coordinate: Coordinate) -> PresenceCheck:
    """Presence ping: store the new coordinate and re-evaluate the radius."""
    place = _get_place(db, place_id)
    membership = _get_membership(db, place_id, user_id)

    now = utcnow()
    membership.lat = coordinate.lat
    membership.lng = coordinate.lng
    membership.last_seen_at = now

    d = None
    in_range = True
    origin = place.origin
    if origin is not None:
        d = distance_m(coordinate, origin)
        in_range = d <= place.radius_m

    if in_range:
        membership.out_of_range = False
    elif not membership.out_of_range:
        membership.out_of_range = True
        membership.is_online = False
        membership.left_at = now
        logger.info(f"User drifted out of range | place={place_id} user={user_id} distance={d:.1f}m")

    db.commit()
    db.refresh(membership)
    return PresenceCheck(membership=membership, distance_m=d, in_range=in_range)


@store_call
def list_nearby(
    db: Session,
    place_id: str,
    origin: Coordinate,
    radius_m: Optional[float] = None,
) -> List[NearbyMember]:
    """
    Online, in-range members of a place within radius_m of origin.

    Distances are computed from the stored member coordinate at query
    time. Sorted by distance, ties by user id.
    """
    _get_place(db, place_id)
    if radius_m is None:
        radius_m = DEFAULT_PLACE_RADIUS_METERS

    members = (
        db.query(Membership)
        .filter(
            Membership.place_id == place_id,
            Membership.is_online.is_(True),
            Membership.out_of_range.is_(False),
        )
        .all()
    )

    out: List[NearbyMember] = []
    for m in members:
        d = distance_m(m.coordinate, origin)
        if d <= radius_m:
            out.append(NearbyMember(user_id=m.user_id, distance_m=d, membership=m))

    out.sort(key=lambda n: (n.distance_m, n.user_id))
    return out
