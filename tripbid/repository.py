"""Transactional reads and writes over trips and bids.

Every helper takes an open `AsyncConnection`; callers own the transaction.
Status changes are conditional updates (`UPDATE ... WHERE status IN (...)`)
and report whether a row was actually changed, so a caller that lost a race
sees `False` instead of overwriting the winner.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy import select, insert, update, and_, desc, asc

from . import models

logger = logging.getLogger(__name__)


def _row(row) -> Optional[dict]:
    return dict(row._mapping) if row is not None else None


# ---------------------- Trips ----------------------

async def insert_trip(conn, **values) -> int:
    values.setdefault("status", models.TRIP_PENDING)
    values.setdefault("created_at", models.utcnow())
    res = await conn.execute(
        insert(models.trips).returning(models.trips.c.id).values(**values)
    )
    return res.scalar_one()


async def get_trip(conn, trip_id: int, for_update: bool = False) -> Optional[dict]:
    """Load a trip; `for_update` row-locks it until the transaction ends."""
    sel = select(models.trips).where(models.trips.c.id == trip_id)
    if for_update:
        sel = sel.with_for_update()
    res = await conn.execute(sel)
    return _row(res.first())


async def list_trips(conn, *, rider_id: int | None = None, driver_id: int | None = None,
                     status: str | None = None, limit: int = 20) -> list[dict]:
    sel = select(models.trips)
    if rider_id is not None:
        sel = sel.where(models.trips.c.rider_id == rider_id)
    if driver_id is not None:
        sel = sel.where(models.trips.c.driver_id == driver_id)
    if status:
        sel = sel.where(models.trips.c.status == status)
    sel = sel.order_by(desc(models.trips.c.created_at), desc(models.trips.c.id)).limit(limit)
    res = await conn.execute(sel)
    return [_row(r) for r in res.all()]


async def list_pending_trips(conn) -> list[dict]:
    sel = (
        select(models.trips)
        .where(models.trips.c.status == models.TRIP_PENDING)
        .order_by(desc(models.trips.c.created_at), desc(models.trips.c.id))
    )
    res = await conn.execute(sel)
    return [_row(r) for r in res.all()]


async def assign_trip(conn, trip_id: int, driver_id: int, vehicle_id: int, final_fare) -> bool:
    """Claim a pending trip for a driver. Returns False if the trip is no longer pending."""
    res = await conn.execute(
        update(models.trips)
        .where(and_(models.trips.c.id == trip_id, models.trips.c.status == models.TRIP_PENDING))
        .values(
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            final_fare=final_fare,
            status=models.TRIP_DRIVER_ASSIGNED,
            driver_assigned_at=models.utcnow(),
        )
    )
    return res.rowcount == 1


async def trip_status(conn, trip_id: int) -> Optional[str]:
    res = await conn.execute(select(models.trips.c.status).where(models.trips.c.id == trip_id))
    return res.scalar_one_or_none()


async def transition_trip(conn, trip_id: int, from_statuses: Iterable[str], **values) -> bool:
    """Move a trip to a new status only if it is still in one of `from_statuses`."""
    res = await conn.execute(
        update(models.trips)
        .where(and_(models.trips.c.id == trip_id, models.trips.c.status.in_(list(from_statuses))))
        .values(**values)
    )
    return res.rowcount == 1


# ---------------------- Bids ----------------------

async def insert_bid(conn, **values) -> int:
    values.setdefault("status", models.BID_PENDING)
    values.setdefault("created_at", models.utcnow())
    res = await conn.execute(
        insert(models.bids).returning(models.bids.c.id).values(**values)
    )
    return res.scalar_one()


async def get_bid(conn, bid_id: int) -> Optional[dict]:
    res = await conn.execute(select(models.bids).where(models.bids.c.id == bid_id))
    return _row(res.first())


async def find_bid(conn, trip_id: int, driver_id: int) -> Optional[dict]:
    res = await conn.execute(
        select(models.bids).where(
            and_(models.bids.c.trip_id == trip_id, models.bids.c.driver_id == driver_id)
        )
    )
    return _row(res.first())


async def list_trip_bids(conn, trip_id: int) -> list[dict]:
    sel = (
        select(models.bids)
        .where(models.bids.c.trip_id == trip_id)
        .order_by(asc(models.bids.c.amount), asc(models.bids.c.id))
    )
    res = await conn.execute(sel)
    return [_row(r) for r in res.all()]


async def list_driver_bids(conn, driver_id: int, status: str | None = None, limit: int = 20) -> list[dict]:
    sel = select(models.bids).where(models.bids.c.driver_id == driver_id)
    if status:
        sel = sel.where(models.bids.c.status == status)
    sel = sel.order_by(desc(models.bids.c.created_at), desc(models.bids.c.id)).limit(limit)
    res = await conn.execute(sel)
    return [_row(r) for r in res.all()]


async def driver_bid_trip_ids(conn, driver_id: int) -> set[int]:
    res = await conn.execute(
        select(models.bids.c.trip_id).where(models.bids.c.driver_id == driver_id)
    )
    return set(res.scalars().all())


async def accept_bid(conn, bid_id: int, trip_id: int) -> bool:
    """Mark the winning bid accepted and reject every other pending bid on the trip.

    Returns False (and changes nothing) if the bid is no longer pending.
    """
    res = await conn.execute(
        update(models.bids)
        .where(and_(models.bids.c.id == bid_id, models.bids.c.status == models.BID_PENDING))
        .values(status=models.BID_ACCEPTED)
    )
    if res.rowcount != 1:
        return False
    rejected = await conn.execute(
        update(models.bids)
        .where(
            and_(
                models.bids.c.trip_id == trip_id,
                models.bids.c.id != bid_id,
                models.bids.c.status == models.BID_PENDING,
            )
        )
        .values(status=models.BID_REJECTED)
    )
    logger.debug("accept_bid: bid=%s trip=%s rejected=%s", bid_id, trip_id, rejected.rowcount)
    return True


# ---------------------- Hydration ----------------------

async def user_summary(conn, user_id: int, with_phone: bool = True) -> Optional[dict]:
    cols = [models.users.c.id, models.users.c.first_name, models.users.c.last_name]
    if with_phone:
        cols.append(models.users.c.phone)
    res = await conn.execute(select(*cols).where(models.users.c.id == user_id))
    return _row(res.first())


async def first_approved_vehicle(conn, driver_id: int) -> Optional[dict]:
    res = await conn.execute(
        select(models.vehicles)
        .where(and_(models.vehicles.c.driver_id == driver_id, models.vehicles.c.status == models.VEHICLE_APPROVED))
        .order_by(asc(models.vehicles.c.id))
        .limit(1)
    )
    return _row(res.first())


async def get_vehicle(conn, vehicle_id: int) -> Optional[dict]:
    res = await conn.execute(select(models.vehicles).where(models.vehicles.c.id == vehicle_id))
    return _row(res.first())


async def rider_summary(conn, rider_id: int, with_phone: bool = True) -> Optional[dict]:
    res = await conn.execute(select(models.riders).where(models.riders.c.id == rider_id))
    rider = _row(res.first())
    if rider is None:
        return None
    rider["user"] = await user_summary(conn, rider["user_id"], with_phone=with_phone)
    return rider


async def driver_summary(conn, driver_id: int, with_phone: bool = True) -> Optional[dict]:
    res = await conn.execute(
        select(
            models.drivers.c.id,
            models.drivers.c.user_id,
            models.drivers.c.rating,
            models.drivers.c.total_trips,
        ).where(models.drivers.c.id == driver_id)
    )
    driver = _row(res.first())
    if driver is None:
        return None
    driver["user"] = await user_summary(conn, driver["user_id"], with_phone=with_phone)
    driver["vehicle"] = await first_approved_vehicle(conn, driver_id)
    return driver


async def bid_detail(conn, bid: dict) -> dict:
    detail = dict(bid)
    driver = await driver_summary(conn, bid["driver_id"], with_phone=False)
    if driver is not None:
        driver["rating"] = float(driver["rating"] or 0)
        driver["total_trips"] = driver["total_trips"] or 0
    detail["driver"] = driver
    return detail


async def trip_detail(conn, trip_id: int, include_bids: bool = False) -> Optional[dict]:
    """Load a trip with its rider, driver and vehicle resolved by id."""
    trip = await get_trip(conn, trip_id)
    if trip is None:
        return None
    trip["rider"] = await rider_summary(conn, trip["rider_id"])
    trip["driver"] = await driver_summary(conn, trip["driver_id"]) if trip["driver_id"] else None
    trip["vehicle"] = await get_vehicle(conn, trip["vehicle_id"]) if trip["vehicle_id"] else None
    if include_bids:
        trip["bids"] = [await bid_detail(conn, b) for b in await list_trip_bids(conn, trip_id)]
    return trip
