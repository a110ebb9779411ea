from fastapi import APIRouter, Depends, Header
from typing import Optional
import logging

from . import db, schemas
from .bids import BidService
from .nearby import get_nearby_trips
from .trips import TripService

logger = logging.getLogger(__name__)

router = APIRouter()

# notifier is attached on startup, see main.py
trip_service = TripService()
bid_service = BidService()


async def get_conn():
    async with db.get_conn() as conn:
        yield conn


async def current_user(x_user_id: int = Header(..., gt=0)) -> int:
    # authentication happens upstream; the gateway forwards the resolved user id
    return x_user_id


# ---------------------- Trips ----------------------

@router.post("/trips/request")
async def create_trip(req: schemas.TripCreate, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    logger.info("create_trip: user=%s start=%s end=%s", user_id, req.start.model_dump(), req.end.model_dump())
    return await trip_service.create_trip(conn, user_id, req.start.model_dump(), req.end.model_dump(), req.notes)


@router.get("/trips/nearby/available")
async def nearby_trips(radius: Optional[float] = None, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    return await get_nearby_trips(conn, user_id, radius)


@router.get("/trips/rider/history")
async def rider_trips(status: Optional[schemas.TripStatusFilter] = None, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    return await trip_service.get_rider_trips(conn, user_id, status)


@router.get("/trips/driver/history")
async def driver_trips(status: Optional[schemas.TripStatusFilter] = None, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    return await trip_service.get_driver_trips(conn, user_id, status)


@router.get("/trips/{trip_id}")
async def get_trip(trip_id: int, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    return await trip_service.get_trip_by_id(conn, trip_id, user_id)


@router.post("/trips/{trip_id}/accept")
async def accept_trip(trip_id: int, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    logger.info("accept_trip: trip=%s user=%s", trip_id, user_id)
    return await trip_service.accept_trip(conn, trip_id, user_id)


@router.put("/trips/{trip_id}/status")
async def update_trip_status(trip_id: int, payload: schemas.TripStatusUpdate, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    logger.info("update_trip_status: trip=%s user=%s status=%s", trip_id, user_id, payload.status)
    return await trip_service.update_trip_status(conn, trip_id, user_id, payload.status, payload.reason)


@router.post("/trips/{trip_id}/cancel")
async def cancel_trip(trip_id: int, payload: schemas.CancelRequest, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    logger.info("cancel_trip: trip=%s user=%s", trip_id, user_id)
    return await trip_service.cancel_trip(conn, trip_id, user_id, reason=payload.reason)


# ---------------------- Bids ----------------------

@router.post("/bids/trips/{trip_id}")
async def create_bid(trip_id: int, payload: schemas.BidCreate, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    logger.info("create_bid: trip=%s user=%s amount=%s", trip_id, user_id, payload.amount)
    return await bid_service.create_bid(
        conn, trip_id, user_id, payload.amount, payload.message, payload.estimated_arrival_time
    )


@router.get("/bids/trips/{trip_id}")
async def trip_bids(trip_id: int, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    return await bid_service.get_trip_bids(conn, trip_id, user_id)


@router.post("/bids/{bid_id}/accept")
async def accept_bid(bid_id: int, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    logger.info("accept_bid: bid=%s user=%s", bid_id, user_id)
    return await bid_service.accept_bid(conn, bid_id, user_id)


@router.get("/bids/my-bids")
async def my_bids(status: Optional[schemas.BidStatusFilter] = None, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    return await bid_service.get_driver_bids(conn, user_id, status)


# ---------------------- Drivers ----------------------

@router.post("/drivers/location")
async def driver_location(loc: schemas.Location, user_id: int = Depends(current_user), conn=Depends(get_conn)):
    return await trip_service.update_driver_location(conn, user_id, loc.latitude, loc.longitude)
