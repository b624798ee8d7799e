"""
Domain error kinds.

Every service operation reports failure by raising one of these. None of
them is retried inside the core; StoreUnavailableError is the only kind a
caller may retry (with backoff).
"""
from typing import Any, Dict


class ProximityError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, code: str, message: str | None = None, **detail: Any):
        self.code = code
        self.message = message or code.replace("_", " ")
        self.detail: Dict[str, Any] = detail
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "kind": self.kind,
            "message": self.message,
            **self.detail,
        }


class NotFoundError(ProximityError):
    kind = "not_found"
    status_code = 404


class InvalidInputError(ProximityError):
    kind = "validation"
    status_code = 400


class ConflictError(ProximityError):
    kind = "conflict"
    status_code = 409


class PolicyViolationError(ProximityError):
    kind = "policy_violation"
    status_code = 403


class TooFarError(PolicyViolationError):
    def __init__(self, distance_m: float, radius_m: float, **detail: Any):
        self.distance_m = distance_m
        self.radius_m = radius_m
        super().__init__(
            "too_far",
            "You are too far from this place",
            distance=round(distance_m),
            radius=radius_m,
            **detail,
        )


class AccessDeniedError(PolicyViolationError):
    pass


class StoreUnavailableError(ProximityError):
    kind = "store_unavailable"
    status_code = 503
