import pytest
from sqlalchemy.exc import OperationalError

from app.core.db import store_call
from app.core.errors import NotFoundError, StoreUnavailableError
from app.modules.connections import service


def test_operational_error_becomes_store_unavailable(db, monkeypatch):
    def boom(session, a, b):
        raise OperationalError("SELECT 1", {}, Exception("connection reset"))

    monkeypatch.setattr(service, "_find_pair", boom)

    with pytest.raises(StoreUnavailableError) as exc:
        service.is_connected(db, "alice", "bob")
    assert exc.value.status_code == 503
    assert exc.value.detail["operation"] == "is_connected"


def test_domain_errors_pass_through(db):
    @store_call
    def lookup(session):
        raise NotFoundError("thing_not_found")

    with pytest.raises(NotFoundError):
        lookup(db)


def test_store_unavailable_http_response(client, monkeypatch):
    def boom(session, a, b):
        raise OperationalError("SELECT 1", {}, Exception("connection reset"))

    monkeypatch.setattr(service, "_find_pair", boom)

    resp = client.get("/v1/connections/check/bob", headers={"X-User-Id": "alice"})
    assert resp.status_code == 503
    assert resp.json()["kind"] == "store_unavailable"
