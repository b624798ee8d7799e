from sqlalchemy import Column, String, Float, Boolean, DateTime, ForeignKey, Index

from app.core.db import Base, utcnow
from app.core.geo import Coordinate


class Place(Base):
    __tablename__ = "places"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    qr_code = Column(String, nullable=True)

    # no origin => radius gating disabled
    origin_lat = Column(Float, nullable=True)
    origin_lng = Column(Float, nullable=True)
    radius_m = Column(Float, nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    @property
    def origin(self) -> Coordinate | None:
        if self.origin_lat is None or self.origin_lng is None:
            return None
        return Coordinate(self.origin_lat, self.origin_lng)


class Membership(Base):
    __tablename__ = "place_memberships"

    # (place_id, user_id) is the uniqueness key; re-joins overwrite in place
    place_id = Column(String, ForeignKey("places.id"), primary_key=True)
    user_id = Column(String, primary_key=True, index=True)

    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)

    is_online = Column(Boolean, nullable=False, default=True)
    out_of_range = Column(Boolean, nullable=False, default=False)

    first_joined_at = Column(DateTime, nullable=False, default=utcnow)
    joined_at = Column(DateTime, nullable=False, default=utcnow)
    last_seen_at = Column(DateTime, nullable=False, default=utcnow)
    left_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_membership_place_online", "place_id", "is_online"),
    )

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lng)
