from datetime import datetime, timedelta

import pytest
from conftest import auth_headers, register
from fastapi.testclient import TestClient

from godplan.main import create_app
from godplan.models.attendance import Attendance

INSIDE = {"latitude": -6.20005, "longitude": 106.80005, "photo_selfie": "AAA", "force": False}
OUTSIDE = {"latitude": -6.3, "longitude": 106.9, "force": False}


def row_count(database):
    with database.session() as db:
        return db.query(Attendance).count()


def clock_in(client, token, body):
    return client.post("/api/v1/attendance/clock-in", json=body, headers=auth_headers(token))


def test_clock_in_inside_geofence(client, token):
    resp = clock_in(client, token, INSIDE)
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Clock in successful"
    data = body["data"]
    assert data["type"] == "in"
    assert data["status"] == "approved"
    assert data["in_range"] is True
    assert data["force_attendance"] is False
    assert data["photo_selfie"] == "AAA"
    assert data["distance"] < 100
    assert data["max_radius"] == 100


def test_clock_in_outside_without_force_is_rejected(client, token, database):
    clock_in(client, token, INSIDE)
    before = client.get("/api/v1/attendance", headers=auth_headers(token)).json()["data"]

    resp = clock_in(client, token, OUTSIDE)
    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert "outside the office range (100 meters)" in resp.json()["error"]

    after = client.get("/api/v1/attendance", headers=auth_headers(token)).json()["data"]
    assert after == before
    assert row_count(database) == 1


def test_clock_in_outside_with_force(client, token):
    resp = clock_in(client, token, dict(OUTSIDE, force=True))
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["status"] == "forced"
    assert data["in_range"] is False
    assert data["force_attendance"] is True
    assert data["distance"] > 100


def test_force_inside_geofence_is_still_approved(client, token):
    data = clock_in(client, token, dict(INSIDE, force=True)).json()["data"]
    assert data["status"] == "approved"
    assert data["force_attendance"] is True


def test_clock_out(client, token):
    resp = client.post("/api/v1/attendance/clock-out", json=INSIDE, headers=auth_headers(token))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["type"] == "out"
    assert data["status"] == "approved"
    assert resp.json()["message"] == "Clock out successful"


def test_persisted_rows_keep_status_invariants(client, token, database):
    clock_in(client, token, INSIDE)
    clock_in(client, token, dict(OUTSIDE, force=True))
    client.post("/api/v1/attendance/clock-out", json=dict(INSIDE, force=True), headers=auth_headers(token))
    client.post("/api/v1/attendance/clock-out", json=OUTSIDE, headers=auth_headers(token))

    with database.session() as db:
        rows = db.query(Attendance).all()
    assert len(rows) == 3
    for a in rows:
        assert (a.status == "approved") == a.in_range
        if a.status == "forced":
            assert not a.in_range and a.force_attendance


def test_history_filters_by_date_newest_first(client, token, database):
    first = clock_in(client, token, INSIDE).json()["data"]
    second = clock_in(client, token, INSIDE).json()["data"]

    # A clock-in from yesterday
    with database.session() as db:
        earlier = db.query(Attendance).filter(Attendance.id == first["id"]).one()
        db.add(Attendance(
            user_id=earlier.user_id,
            type="in",
            status="approved",
            latitude=INSIDE["latitude"],
            longitude=INSIDE["longitude"],
            in_range=True,
            force_attendance=False,
            created_at=earlier.created_at - timedelta(days=1),
        ))
        db.commit()

    today = datetime.fromisoformat(second["created_at"]).date().isoformat()
    resp = client.get(f"/api/v1/attendance?date={today}&limit=10", headers=auth_headers(token))
    assert resp.status_code == 200
    ids = [a["id"] for a in resp.json()["data"]]
    assert ids == [second["id"], first["id"]]

    everything = client.get("/api/v1/attendance", headers=auth_headers(token)).json()["data"]
    assert len(everything) == 3
    assert "distance" not in everything[0]


def test_history_limit(client, token):
    for _ in range(3):
        clock_in(client, token, INSIDE)

    resp = client.get("/api/v1/attendance?limit=2", headers=auth_headers(token))
    assert len(resp.json()["data"]) == 2

    for bad in ("0", "-1", "abc"):
        resp = client.get(f"/api/v1/attendance?limit={bad}", headers=auth_headers(token))
        assert resp.status_code == 200
        assert len(resp.json()["data"]) == 3


def test_history_bad_date(client, token):
    resp = client.get("/api/v1/attendance?date=yesterday", headers=auth_headers(token))
    assert resp.status_code == 400


def test_history_is_per_user(client, token):
    clock_in(client, token, INSIDE)
    other = register(client, username="budi", email="budi@x.io").json()["data"]["token"]
    assert client.get("/api/v1/attendance", headers=auth_headers(other)).json()["data"] == []


def test_empty_history_is_a_list(client, token):
    resp = client.get("/api/v1/attendance", headers=auth_headers(token))
    assert resp.status_code == 200
    assert resp.json()["data"] == []


@pytest.mark.parametrize("headers", [
    {},
    {"Authorization": "Bearer not.a.real.token"},
    {"Authorization": "bearer whatever"},
    {"Authorization": "Basic YWxpOnB3"},
])
def test_protected_routes_require_valid_token(client, database, headers):
    resp = client.post("/api/v1/attendance/clock-in", json=INSIDE, headers=headers)
    assert resp.status_code == 401
    assert resp.json()["success"] is False
    assert row_count(database) == 0


def test_malformed_json_does_not_persist(client, token, database):
    resp = client.post(
        "/api/v1/attendance/clock-in",
        content="{not json",
        headers=dict(auth_headers(token), **{"Content-Type": "application/json"}),
    )
    assert resp.status_code == 400
    assert row_count(database) == 0


def test_check_location_is_side_effect_free(client, token, database):
    body = {"latitude": -6.3, "longitude": 106.9}
    first = client.post("/api/v1/attendance/check-location", json=body, headers=auth_headers(token))
    second = client.post("/api/v1/attendance/check-location", json=body, headers=auth_headers(token))
    assert first.status_code == 200
    assert first.json() == second.json()
    data = first.json()["data"]
    assert data["in_range"] is False
    assert data["need_force"] is True
    assert data["max_radius"] == 100
    assert row_count(database) == 0


def test_location_check_disabled(settings, database):
    relaxed = settings.model_copy(update={"ENABLE_LOCATION_CHECK": False})
    with TestClient(create_app(settings=relaxed, database=database)) as c:
        token = register(c).json()["data"]["token"]
        data = clock_in(c, token, OUTSIDE).json()["data"]
    assert data["status"] == "approved"
    assert data["in_range"] is True
    assert data["distance"] == 0


@pytest.mark.parametrize("path,raw", [
    ("/api/v1/attendance/check-location", '{"latitude": NaN, "longitude": 106.9}'),
    ("/api/v1/attendance/clock-in", '{"latitude": Infinity, "longitude": 106.9, "force": true}'),
    ("/api/v1/attendance/clock-out", '{"latitude": -6.2, "longitude": -Infinity, "force": true}'),
    ("/api/v1/attendance/clock-in", '{"latitude": 91.0, "longitude": 106.9, "force": true}'),
    ("/api/v1/attendance/clock-in", '{"latitude": -6.2, "longitude": 180.5, "force": true}'),
])
def test_non_finite_or_out_of_range_coordinates_rejected(client, token, database, path, raw):
    resp = client.post(path, content=raw, headers=dict(auth_headers(token), **{"Content-Type": "application/json"}))
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Validation failed:")
    assert row_count(database) == 0
