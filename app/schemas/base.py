from datetime import datetime
from pydantic import BaseModel, Field

from app.core.geo import Coordinate


class BaseSchema(BaseModel):
    class Config:
        from_attributes = True


class TimestampedSchema(BaseSchema):
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lng)
