"""
Bid placement and winner selection.

Accepting a bid assigns the trip, accepts the bid and rejects every other
pending bid on the trip in one transaction. Both the trip and the bid are
updated conditionally on still being pending, so of two concurrent
acceptances on one trip exactly one commits.

Placing a bid row-locks the trip and re-reads its status after the insert,
so a bid never lands on a trip that was assigned in the meantime.
"""

import logging

from sqlalchemy.exc import IntegrityError

from . import models, repository, profiles
from .config import settings
from .errors import NotFoundError, BadRequestError, ForbiddenError, log_failures
from .geo import to_money
from .notifier import NotifierMixin, RealtimeNotifier

logger = logging.getLogger(__name__)

DUPLICATE_BID = "You have already placed a bid on this trip"
CLOSED = "Trip is no longer accepting bids"


class BidService(NotifierMixin):

    def __init__(self, notifier: RealtimeNotifier | None = None):
        self.notifier = notifier

    @log_failures
    async def create_bid(self, conn, trip_id: int, user_id: int, amount, message: str | None = None,
                         estimated_arrival_time: int | None = None) -> dict:
        try:
            async with conn.begin():
                driver = await profiles.require_eligible_driver(
                    conn, user_id, subscription_message="Active subscription required to place bids"
                )
                trip = await repository.get_trip(conn, trip_id, for_update=True)
                if not trip:
                    raise NotFoundError("Trip not found")
                if trip["status"] != models.TRIP_PENDING:
                    raise BadRequestError(CLOSED)
                if await repository.find_bid(conn, trip_id, driver["id"]):
                    raise BadRequestError(DUPLICATE_BID)
                # the (trip_id, driver_id) unique constraint catches a concurrent duplicate
                bid_id = await repository.insert_bid(
                    conn,
                    trip_id=trip_id,
                    driver_id=driver["id"],
                    amount=to_money(amount),
                    message=message,
                    estimated_arrival_time=estimated_arrival_time,
                )
                # the insert holds the write lock now; an acceptance that committed first is visible
                if await repository.trip_status(conn, trip_id) != models.TRIP_PENDING:
                    logger.warning("create_bid: trip=%s assigned while bidding, user=%s", trip_id, user_id)
                    raise BadRequestError(CLOSED)
                bid = await repository.bid_detail(conn, await repository.get_bid(conn, bid_id))
                rider = await repository.rider_summary(conn, trip["rider_id"], with_phone=False)
        except IntegrityError:
            async with conn.begin():
                existing = await repository.find_bid(conn, trip_id, driver["id"])
            if existing is None:
                raise
            logger.warning("create_bid: duplicate bid trip=%s user=%s", trip_id, user_id)
            raise BadRequestError(DUPLICATE_BID)
        logger.info("bid_placed: bid=%s trip=%s driver=%s amount=%s", bid_id, trip_id, driver["id"], bid["amount"])

        await self._notify("notify_user", rider["user_id"], models.ROLE_RIDER, {
            "type": "bid_received",
            "title": "New Bid",
            "message": f"New bid of {bid['amount']} on your trip",
            "data": {"trip_id": trip_id, "bid_id": bid_id},
        })
        return bid

    @log_failures
    async def get_trip_bids(self, conn, trip_id: int, user_id: int) -> list[dict]:
        """All bids on the rider's trip, lowest amount first."""
        async with conn.begin():
            trip = await repository.get_trip(conn, trip_id)
            if not trip:
                raise NotFoundError("Trip not found")
            rider = await profiles.get_rider_by_user(conn, user_id)
            if not rider or trip["rider_id"] != rider["id"]:
                raise ForbiddenError("You can only view bids for your own trips")
            bids = [await repository.bid_detail(conn, b) for b in await repository.list_trip_bids(conn, trip_id)]
        return bids

    @log_failures
    async def accept_bid(self, conn, bid_id: int, user_id: int) -> dict:
        async with conn.begin():
            rider = await profiles.require_rider(conn, user_id)
            bid = await repository.get_bid(conn, bid_id)
            if not bid:
                raise NotFoundError("Bid not found")
            trip = await repository.get_trip(conn, bid["trip_id"], for_update=True)

            if trip["rider_id"] != rider["id"]:
                raise ForbiddenError("You can only accept bids for your own trips")
            if trip["status"] != models.TRIP_PENDING:
                raise BadRequestError(CLOSED)
            if bid["status"] != models.BID_PENDING:
                raise BadRequestError("This bid is no longer available")
            vehicle = await repository.first_approved_vehicle(conn, bid["driver_id"])
            if vehicle is None:
                raise BadRequestError("The driver no longer has an approved vehicle")

            assigned = await repository.assign_trip(conn, trip["id"], bid["driver_id"], vehicle["id"], bid["amount"])
            if not assigned:
                logger.warning("accept_bid: trip=%s already assigned, bid=%s", trip["id"], bid_id)
                raise BadRequestError(CLOSED)
            if not await repository.accept_bid(conn, bid_id, trip["id"]):
                # raising rolls back the trip assignment above
                raise BadRequestError("This bid is no longer available")
            updated = await repository.trip_detail(conn, trip["id"])
        logger.info("bid_accepted: bid=%s trip=%s driver=%s fare=%s", bid_id, trip["id"], bid["driver_id"], bid["amount"])

        await self._notify("broadcast_trip_status", trip["id"], models.TRIP_DRIVER_ASSIGNED, {
            "driver_id": bid["driver_id"],
            "final_fare": bid["amount"],
        })
        if updated["driver"]:
            await self._notify("notify_user", updated["driver"]["user_id"], models.ROLE_DRIVER, {
                "type": "bid_accepted",
                "title": "Bid Accepted",
                "message": "Your bid was accepted. Head to the pickup point.",
                "data": {"trip_id": trip["id"], "bid_id": bid_id},
            })
        return updated

    @log_failures
    async def get_driver_bids(self, conn, user_id: int, status: str | None = None) -> list[dict]:
        async with conn.begin():
            driver = await profiles.require_driver(conn, user_id)
            bids = await repository.list_driver_bids(conn, driver["id"], status=status, limit=settings.HISTORY_LIMIT)
            for bid in bids:
                trip = await repository.get_trip(conn, bid["trip_id"])
                if trip:
                    trip["rider"] = await repository.rider_summary(conn, trip["rider_id"], with_phone=False)
                bid["trip"] = trip
        return bids
