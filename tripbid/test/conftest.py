import asyncio

import pytest
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import create_async_engine

from tripbid import models
from tripbid.bids import BidService
from tripbid.notifier import RealtimeNotifier
from tripbid.trips import TripService


class FakeRedis:
    def __init__(self):
        self.published = []

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    def channels(self):
        return [c for c, _ in self.published]


class BrokenRedis:
    async def publish(self, channel, message):
        raise ConnectionError("redis unavailable")


class StalledRedis:
    async def publish(self, channel, message):
        await asyncio.sleep(3600)


class Seeder:
    """Inserts users with rider/driver profiles straight into the store."""

    def __init__(self, engine):
        self.engine = engine

    async def rider(self, first_name="Rita"):
        async with self.engine.begin() as conn:
            user_id = (await conn.execute(
                insert(models.users).returning(models.users.c.id).values(
                    first_name=first_name, last_name="Rider", phone="0700000000", user_type=models.ROLE_RIDER)
            )).scalar_one()
            rider_id = (await conn.execute(
                insert(models.riders).returning(models.riders.c.id).values(user_id=user_id, rating=4.5, total_trips=3)
            )).scalar_one()
        return {"user_id": user_id, "rider_id": rider_id}

    async def driver(self, first_name="Dan", fee=models.FEE_PAID, vehicle=models.VEHICLE_APPROVED, lat=None, lon=None):
        async with self.engine.begin() as conn:
            user_id = (await conn.execute(
                insert(models.users).returning(models.users.c.id).values(
                    first_name=first_name, last_name="Driver", phone="0711111111", user_type=models.ROLE_DRIVER)
            )).scalar_one()
            driver_id = (await conn.execute(
                insert(models.drivers).returning(models.drivers.c.id).values(
                    user_id=user_id, daily_fee_status=fee, current_latitude=lat, current_longitude=lon,
                    rating=4.8, total_trips=12)
            )).scalar_one()
            vehicle_id = None
            if vehicle:
                vehicle_id = (await conn.execute(
                    insert(models.vehicles).returning(models.vehicles.c.id).values(
                        driver_id=driver_id, make="Toyota", model="Vitz", plate_number=f"AB{driver_id:04d}",
                        color="white", status=vehicle)
                )).scalar_one()
        return {"user_id": user_id, "driver_id": driver_id, "vehicle_id": vehicle_id}


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tripbid.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(models.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def seed(engine):
    return Seeder(engine)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def broken_redis():
    return BrokenRedis()


@pytest.fixture
def stalled_redis():
    return StalledRedis()


@pytest.fixture
def trip_service(fake_redis):
    return TripService(RealtimeNotifier(fake_redis))


@pytest.fixture
def bid_service(fake_redis):
    return BidService(RealtimeNotifier(fake_redis))


@pytest.fixture
def call(engine):
    """Run one service operation on a fresh connection."""
    async def _call(fn, *args, **kwargs):
        async with engine.connect() as conn:
            return await fn(conn, *args, **kwargs)
    return _call


ORIGIN = {"latitude": 0.0, "longitude": 0.0, "address": "Origin Square"}
TEN_KM_EAST = {"latitude": 0.0, "longitude": 0.09, "address": "East Market"}


@pytest.fixture
def pending_trip(seed, call, trip_service):
    async def _make(rider=None, start=ORIGIN, end=TEN_KM_EAST):
        rider = rider or await seed.rider()
        trip = await call(trip_service.create_trip, rider["user_id"], start, end, None)
        return rider, trip
    return _make
