from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.base import BaseSchema, LatLng


# ---------- requests ----------
class PlaceCreateRequest(BaseModel):
    place_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    qr_code: Optional[str] = None
    origin: Optional[LatLng] = None
    radius_m: Optional[float] = Field(default=None, gt=0)


class JoinPlaceRequest(LatLng):
    pass


class LocationPingRequest(LatLng):
    pass


# ---------- responses ----------
class PlaceOut(BaseSchema):
    id: str
    name: str
    qr_code: Optional[str] = None
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    radius_m: float
    is_active: bool
    created_by: str
    created_at: datetime


class MembershipOut(BaseSchema):
    place_id: str
    user_id: str
    lat: float
    lng: float
    is_online: bool
    out_of_range: bool
    first_joined_at: datetime
    joined_at: datetime
    last_seen_at: datetime
    left_at: Optional[datetime] = None


class PresenceCheckOut(BaseModel):
    membership: MembershipOut
    distance_m: Optional[float] = None
    in_range: bool


class NearbyUserOut(BaseModel):
    user_id: str
    lat: float
    lng: float
    distance_m: float
    joined_at: datetime


class NearbyUsersResponse(BaseModel):
    users: List[NearbyUserOut]
    # online, in-range members of the place regardless of the query radius
    online_count: int


class NearbyPlaceOut(BaseModel):
    place: PlaceOut
    distance_m: float
    user_count: int


class NearbyPlacesResponse(BaseModel):
    places: List[NearbyPlaceOut]
    count: int
