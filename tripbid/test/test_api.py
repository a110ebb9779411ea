from fastapi.testclient import TestClient
from sqlalchemy import create_engine, insert
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from tripbid.main import app
import tripbid.routes as routes
import tripbid.models as models


def setup_test_app(tmp_path):
    db_path = tmp_path / "api.db"
    # sync engine for schema and fixtures, async engine for the app
    engine = create_engine(f"sqlite:///{db_path}")
    models.metadata.create_all(bind=engine)
    async_engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)

    async def override_get_conn():
        async with async_engine.connect() as conn:
            yield conn

    app.dependency_overrides[routes.get_conn] = override_get_conn
    client = TestClient(app)
    return client, engine


def add_user(engine, user_type, first_name, **profile):
    with engine.begin() as conn:
        user_id = conn.execute(
            insert(models.users).returning(models.users.c.id).values(first_name=first_name, last_name="Test", user_type=user_type)
        ).scalar_one()
        if user_type == models.ROLE_RIDER:
            conn.execute(insert(models.riders).values(user_id=user_id, rating=5))
        else:
            driver_id = conn.execute(
                insert(models.drivers).returning(models.drivers.c.id).values(user_id=user_id, rating=4, total_trips=1, **profile)
            ).scalar_one()
            conn.execute(insert(models.vehicles).values(driver_id=driver_id, make="Honda", model="Fit", status=models.VEHICLE_APPROVED))
    return {"X-User-Id": str(user_id)}


def test_full_flow_request_bid_accept_start_complete(tmp_path):
    client, engine = setup_test_app(tmp_path)
    rider = add_user(engine, models.ROLE_RIDER, "Rita")
    expensive = add_user(engine, models.ROLE_DRIVER, "Eve", daily_fee_status=models.FEE_PAID, current_latitude=0.0, current_longitude=0.0)
    cheap = add_user(engine, models.ROLE_DRIVER, "Carl", daily_fee_status=models.FEE_PAID, current_latitude=0.0, current_longitude=0.01)

    # rider requests a ~10 km trip
    r = client.post("/v1/trips/request", headers=rider, json={
        "start": {"latitude": 0.0, "longitude": 0.0, "address": "Origin Square"},
        "end": {"latitude": 0.0, "longitude": 0.09, "address": "East Market"},
    })
    assert r.status_code == 200
    trip = r.json()
    assert trip["status"] == "pending"
    assert trip["estimated_fare"] == 7.0

    # drivers see it nearby and bid
    r = client.get("/v1/trips/nearby/available", headers=expensive)
    assert r.status_code == 200
    assert [t["id"] for t in r.json()] == [trip["id"]]

    r = client.post(f"/v1/bids/trips/{trip['id']}", headers=expensive, json={"amount": 8})
    assert r.status_code == 200
    r = client.post(f"/v1/bids/trips/{trip['id']}", headers=cheap, json={"amount": 6, "estimated_arrival_time": 3})
    assert r.status_code == 200
    cheap_bid = r.json()

    r = client.post(f"/v1/bids/trips/{trip['id']}", headers=cheap, json={"amount": 5})
    assert r.status_code == 400
    assert "already placed a bid" in r.json()["detail"]

    r = client.get(f"/v1/bids/trips/{trip['id']}", headers=rider)
    assert [b["amount"] for b in r.json()] == [6.0, 8.0]

    # rider accepts the cheaper bid
    r = client.post(f"/v1/bids/{cheap_bid['id']}/accept", headers=rider)
    assert r.status_code == 200
    assert r.json()["final_fare"] == 6.0
    assert r.json()["status"] == "driver_assigned"

    r = client.get("/v1/bids/my-bids", headers=expensive)
    assert [b["status"] for b in r.json()] == ["rejected"]

    # the losing bidder can still read the trip but cannot progress it
    r = client.get(f"/v1/trips/{trip['id']}", headers=expensive)
    assert r.status_code == 200
    r = client.put(f"/v1/trips/{trip['id']}/status", headers=expensive, json={"status": "in_progress"})
    assert r.status_code == 403

    r = client.put(f"/v1/trips/{trip['id']}/status", headers=cheap, json={"status": "in_progress"})
    assert r.status_code == 200 and r.json()["status"] == "in_progress"
    r = client.put(f"/v1/trips/{trip['id']}/status", headers=cheap, json={"status": "completed"})
    assert r.status_code == 200 and r.json()["status"] == "completed"

    r = client.post(f"/v1/trips/{trip['id']}/cancel", headers=rider, json={"reason": "too late"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Trip cannot be cancelled"

    r = client.get("/v1/trips/rider/history", headers=rider)
    assert [t["status"] for t in r.json()] == ["completed"]
    r = client.get("/v1/trips/driver/history?status=completed", headers=cheap)
    assert [t["id"] for t in r.json()] == [trip["id"]]


def test_unpaid_driver_cannot_bid(tmp_path):
    client, engine = setup_test_app(tmp_path)
    rider = add_user(engine, models.ROLE_RIDER, "Rita")
    unpaid = add_user(engine, models.ROLE_DRIVER, "Ursula", daily_fee_status=models.FEE_UNPAID)
    trip = client.post("/v1/trips/request", headers=rider, json={
        "start": {"latitude": 1.0, "longitude": 1.0, "address": "A"},
        "end": {"latitude": 1.1, "longitude": 1.0, "address": "B"},
    }).json()

    r = client.post(f"/v1/bids/trips/{trip['id']}", headers=unpaid, json={"amount": 8})
    assert r.status_code == 400
    assert r.json()["detail"].startswith("Active subscription required")


def test_request_validation_and_errors(tmp_path):
    client, engine = setup_test_app(tmp_path)
    rider = add_user(engine, models.ROLE_RIDER, "Rita")

    r = client.post("/v1/trips/request", headers=rider, json={
        "start": {"latitude": 91.0, "longitude": 0.0, "address": "Nowhere"},
        "end": {"latitude": 0.0, "longitude": 0.0, "address": "Somewhere"},
    })
    assert r.status_code == 422

    r = client.get("/v1/trips/12345", headers=rider)
    assert r.status_code == 404

    r = client.post("/v1/bids/999/accept", headers=rider)
    assert r.status_code == 404

    r = client.get("/v1/trips/rider/history")
    assert r.status_code == 422

    r = client.put("/v1/trips/1/status", headers=rider, json={"status": "flying"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid status: flying"


def test_driver_location_update(tmp_path):
    client, engine = setup_test_app(tmp_path)
    driver = add_user(engine, models.ROLE_DRIVER, "Dan", daily_fee_status=models.FEE_PAID)

    r = client.get("/v1/trips/nearby/available", headers=driver)
    assert r.status_code == 400

    r = client.post("/v1/drivers/location", headers=driver, json={"latitude": -17.8, "longitude": 31.0})
    assert r.status_code == 200
    assert r.json()["latitude"] == -17.8

    r = client.get("/v1/trips/nearby/available", headers=driver)
    assert r.status_code == 200 and r.json() == []


def test_health():
    client = TestClient(app)
    assert client.get("/health").json() == {"status": "ok"}
