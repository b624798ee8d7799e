"""Great-circle distance helpers."""

import math
from dataclasses import dataclass

from app.core.errors import InvalidInputError

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    def __post_init__(self):
        for name, value, bound in (("lat", self.lat, 90.0), ("lng", self.lng, 180.0)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidInputError("invalid_coordinate", f"{name} must be a number", **{name: value})
            if not math.isfinite(value) or abs(value) > bound:
                raise InvalidInputError(
                    "invalid_coordinate",
                    f"{name} must be finite and within [-{bound:g}, {bound:g}]",
                    **{name: value},
                )


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in meters on a mean-radius sphere."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlambda = math.radians(b.lng - a.lng)

    h = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    # float drift can push h a hair outside [0, 1] for antipodal points
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def within_radius(a: Coordinate, b: Coordinate, radius_m: float) -> bool:
    # inclusive at the boundary
    return distance_m(a, b) <= radius_m
