import pytest

from app.core.errors import AccessDeniedError, InvalidInputError, NotFoundError, PolicyViolationError, TooFarError
from app.core.geo import Coordinate
from app.modules.places.models import Membership
from app.modules.places.service import (
    create_place,
    get_place,
    join_place,
    leave_place,
    list_nearby,
    nearby_places,
    place_user_count,
    refresh_location,
)

NEAR = Coordinate(0.0005, 0.0)  # ~55.6 m from (0, 0)
FAR = Coordinate(0.01, 0.0)  # ~1,112 m from (0, 0)


@pytest.fixture
def place(db, origin):
    return create_place(db, "cafe", "Corner Cafe", "owner", origin=origin)


def test_create_place_defaults(db, place):
    assert place.radius_m == 100
    assert place.qr_code == "cafe"
    assert place.is_active
    assert get_place(db, "cafe").name == "Corner Cafe"


def test_create_place_upserts(db, place):
    create_place(db, "cafe", "Renamed Cafe", "owner", origin=Coordinate(1, 1), radius_m=50)
    again = get_place(db, "cafe")
    assert again.name == "Renamed Cafe"
    assert again.radius_m == 50
    assert again.origin == Coordinate(1, 1)
    assert again.created_by == "owner"


def test_create_place_cannot_be_taken_over(db, place):
    with pytest.raises(AccessDeniedError) as exc:
        create_place(db, "cafe", "Mine Now", "mallory", origin=Coordinate(1, 1), radius_m=5000)
    assert exc.value.code == "not_owner"

    db.expire_all()
    kept = get_place(db, "cafe")
    assert kept.created_by == "owner"
    assert kept.name == "Corner Cafe"
    assert kept.radius_m == 100
    assert kept.origin == Coordinate(0, 0)


@pytest.mark.parametrize(
    "place_id,name,created_by",
    [("", "x", "owner"), ("p", "  ", "owner"), ("p", "x", None)],
)
def test_create_place_requires_fields(db, place_id, name, created_by):
    with pytest.raises(InvalidInputError):
        create_place(db, place_id, name, created_by)


def test_create_place_rejects_non_positive_radius(db):
    with pytest.raises(InvalidInputError):
        create_place(db, "p", "P", "owner", radius_m=0)


def test_get_missing_place(db):
    with pytest.raises(NotFoundError) as exc:
        get_place(db, "nowhere")
    assert exc.value.code == "place_not_found"


def test_join_within_radius(db, place):
    m = join_place(db, "cafe", "u1", NEAR)
    assert m.is_online
    assert not m.out_of_range
    assert (m.lat, m.lng) == (NEAR.lat, NEAR.lng)
    assert m.first_joined_at is not None


def test_join_too_far_reports_distance_and_writes_nothing(db, place):
    with pytest.raises(TooFarError) as exc:
        join_place(db, "cafe", "u2", FAR)

    assert isinstance(exc.value, PolicyViolationError)
    assert exc.value.distance_m == pytest.approx(1112, abs=2)
    assert exc.value.detail["distance"] == pytest.approx(1112, abs=2)
    assert db.get(Membership, ("cafe", "u2")) is None


def test_join_place_without_origin_never_gates(db):
    create_place(db, "roaming", "Roaming", "owner")
    m = join_place(db, "roaming", "u1", Coordinate(45, 45))
    assert m.is_online


def test_join_missing_place(db):
    with pytest.raises(NotFoundError):
        join_place(db, "nowhere", "u1", NEAR)


def test_join_inactive_place(db, place):
    place.is_active = False
    db.commit()
    with pytest.raises(PolicyViolationError) as exc:
        join_place(db, "cafe", "u1", NEAR)
    assert exc.value.code == "place_inactive"


def test_rejoin_overwrites_in_place(db, place):
    first = join_place(db, "cafe", "u1", NEAR)
    first_joined = first.first_joined_at
    leave_place(db, "cafe", "u1")

    again = join_place(db, "cafe", "u1", Coordinate(0.0002, 0.0001))

    assert db.query(Membership).filter_by(place_id="cafe", user_id="u1").count() == 1
    assert again.is_online
    assert again.left_at is None
    assert again.lat == 0.0002
    assert again.first_joined_at == first_joined


def test_leave_marks_offline_but_keeps_record(db, place):
    join_place(db, "cafe", "u1", NEAR)
    m = leave_place(db, "cafe", "u1")
    assert not m.is_online
    assert m.left_at is not None
    assert db.get(Membership, ("cafe", "u1")) is not None


def test_leave_requires_membership(db, place):
    with pytest.raises(NotFoundError) as exc:
        leave_place(db, "cafe", "ghost")
    assert exc.value.code == "not_a_member"


def test_leave_missing_place(db):
    with pytest.raises(NotFoundError) as exc:
        leave_place(db, "nowhere", "u1")
    assert exc.value.code == "place_not_found"


def test_ping_out_of_range_then_back(db, place):
    join_place(db, "cafe", "u1", NEAR)

    check = refresh_location(db, "cafe", "u1", FAR)
    assert not check.in_range
    assert check.distance_m == pytest.approx(1112, abs=2)
    assert check.membership.out_of_range
    assert not check.membership.is_online

    check = refresh_location(db, "cafe", "u1", NEAR)
    assert check.in_range
    assert not check.membership.out_of_range
    # only an explicit join brings a member back online
    assert not check.membership.is_online


def test_ping_requires_membership(db, place):
    with pytest.raises(NotFoundError):
        refresh_location(db, "cafe", "ghost", NEAR)


def test_list_nearby_filters_and_orders(db, place, origin):
    join_place(db, "cafe", "b", NEAR)
    join_place(db, "cafe", "a", NEAR)
    join_place(db, "cafe", "c", Coordinate(0.0001, 0.0))
    join_place(db, "cafe", "offline", NEAR)
    leave_place(db, "cafe", "offline")
    join_place(db, "cafe", "drifted", NEAR)
    refresh_location(db, "cafe", "drifted", FAR)

    found = list_nearby(db, "cafe", origin, 100)

    assert [n.user_id for n in found] == ["c", "a", "b"]
    assert found[1].distance_m == found[2].distance_m


def test_list_nearby_uses_current_coordinates(db, place, origin):
    join_place(db, "cafe", "u1", NEAR)
    assert [n.user_id for n in list_nearby(db, "cafe", origin, 30)] == []

    refresh_location(db, "cafe", "u1", Coordinate(0.0001, 0.0))
    assert [n.user_id for n in list_nearby(db, "cafe", origin, 30)] == ["u1"]


def test_list_nearby_is_restartable(db, place, origin):
    join_place(db, "cafe", "u1", NEAR)
    assert [n.user_id for n in list_nearby(db, "cafe", origin)] == [
        n.user_id for n in list_nearby(db, "cafe", origin)
    ]


def test_list_nearby_missing_place(db, origin):
    with pytest.raises(NotFoundError):
        list_nearby(db, "nowhere", origin)


def test_place_user_count(db, place):
    join_place(db, "cafe", "u1", NEAR)
    join_place(db, "cafe", "u2", NEAR)
    leave_place(db, "cafe", "u2")
    assert place_user_count(db, "cafe") == 1


def test_nearby_places(db, place):
    create_place(db, "park", "Park", "owner", origin=Coordinate(0.005, 0.0))
    create_place(db, "far", "Far", "owner", origin=Coordinate(1.0, 1.0))
    create_place(db, "no-origin", "Nowhere", "owner")
    join_place(db, "cafe", "u1", NEAR)

    found = nearby_places(db, Coordinate(0.0, 0.0), 1000)

    assert [n.place.id for n in found] == ["cafe", "park"]
    assert found[0].user_count == 1
    assert found[1].user_count == 0
    assert found[1].distance_m == pytest.approx(556, abs=2)
