"""Resolve a caller's user id to a rider or driver profile."""

import logging
from typing import Optional

from sqlalchemy import select, update, and_, asc

from . import models
from .errors import NotFoundError, BadRequestError

logger = logging.getLogger(__name__)


async def get_user(conn, user_id: int) -> Optional[dict]:
    res = await conn.execute(select(models.users).where(models.users.c.id == user_id))
    row = res.first()
    return dict(row._mapping) if row else None


async def get_rider_by_user(conn, user_id: int) -> Optional[dict]:
    res = await conn.execute(select(models.riders).where(models.riders.c.user_id == user_id))
    row = res.first()
    return dict(row._mapping) if row else None


async def get_driver_by_user(conn, user_id: int) -> Optional[dict]:
    """Driver profile with its approved vehicles (oldest first) under `vehicles`."""
    res = await conn.execute(select(models.drivers).where(models.drivers.c.user_id == user_id))
    row = res.first()
    if not row:
        return None
    driver = dict(row._mapping)
    v_res = await conn.execute(
        select(models.vehicles)
        .where(and_(models.vehicles.c.driver_id == driver["id"], models.vehicles.c.status == models.VEHICLE_APPROVED))
        .order_by(asc(models.vehicles.c.id))
    )
    driver["vehicles"] = [dict(v._mapping) for v in v_res.all()]
    return driver


def first_vehicle(driver: dict) -> Optional[dict]:
    vehicles = driver.get("vehicles") or []
    return vehicles[0] if vehicles else None


def is_eligible(driver: Optional[dict]) -> bool:
    return bool(driver) and driver.get("daily_fee_status") == models.FEE_PAID and first_vehicle(driver) is not None


async def require_rider(conn, user_id: int, error=BadRequestError) -> dict:
    rider = await get_rider_by_user(conn, user_id)
    if not rider:
        raise error("Rider profile not found")
    return rider


async def require_driver(conn, user_id: int) -> dict:
    driver = await get_driver_by_user(conn, user_id)
    if not driver:
        raise BadRequestError("Driver profile not found")
    return driver


async def require_eligible_driver(conn, user_id: int, subscription_message: str = "Active subscription required") -> dict:
    """Driver with a paid daily fee and at least one approved vehicle."""
    driver = await require_driver(conn, user_id)
    if driver["daily_fee_status"] != models.FEE_PAID:
        raise BadRequestError(subscription_message)
    if first_vehicle(driver) is None:
        raise BadRequestError("Please add and activate a vehicle first")
    return driver


async def set_driver_location(conn, user_id: int, lat: float, lon: float) -> dict:
    """Store the driver's last known coordinates."""
    driver = await get_driver_by_user(conn, user_id)
    if not driver:
        raise NotFoundError("Driver profile not found")
    now = models.utcnow()
    await conn.execute(
        update(models.drivers)
        .where(models.drivers.c.id == driver["id"])
        .values(current_latitude=lat, current_longitude=lon, last_location_update=now)
    )
    logger.debug("set_driver_location: driver=%s lat=%s lon=%s", driver["id"], lat, lon)
    driver.update({"current_latitude": lat, "current_longitude": lon, "last_location_update": now})
    return driver
