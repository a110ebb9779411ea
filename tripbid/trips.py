"""
Trip lifecycle: creation, direct acceptance and status transitions.

    pending --accept--> driver_assigned --start--> in_progress --complete--> completed
    pending | driver_assigned | in_progress --cancel--> cancelled

Each operation runs in a single transaction on the connection it is given.
Status writes are conditional on the status that was validated, so a caller
racing another writer fails with BadRequestError rather than overwriting it.
Notifications go out after commit and never affect the outcome.
"""

import logging
from typing import Optional

from . import models, repository, profiles
from .config import settings
from .errors import NotFoundError, BadRequestError, ForbiddenError, log_failures
from .geo import distance_km, estimate_fare, to_money
from .notifier import NotifierMixin, RealtimeNotifier

logger = logging.getLogger(__name__)

STARTABLE = (models.TRIP_DRIVER_ASSIGNED, models.TRIP_DRIVER_ARRIVED)


def _full_name(person: Optional[dict]) -> str:
    user = (person or {}).get("user") or {}
    return " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p)


class TripService(NotifierMixin):

    def __init__(self, notifier: RealtimeNotifier | None = None):
        self.notifier = notifier

    # ---------------------- Rider operations ----------------------

    @log_failures
    async def create_trip(self, conn, user_id: int, start: dict, end: dict, notes: str | None = None) -> dict:
        """Create a pending trip for the rider and announce it to drivers.

        `start` and `end` carry `latitude`, `longitude` and `address`.
        """
        async with conn.begin():
            rider = await profiles.require_rider(conn, user_id, error=NotFoundError)
            distance = distance_km(start["latitude"], start["longitude"], end["latitude"], end["longitude"])
            fare = estimate_fare(distance)
            trip_id = await repository.insert_trip(
                conn,
                rider_id=rider["id"],
                start_address=start["address"],
                start_latitude=start["latitude"],
                start_longitude=start["longitude"],
                end_address=end["address"],
                end_latitude=end["latitude"],
                end_longitude=end["longitude"],
                distance_km=to_money(distance),
                estimated_fare=to_money(fare),
                notes=notes,
            )
            trip = await repository.get_trip(conn, trip_id)
            rider_info = await repository.rider_summary(conn, rider["id"])
        logger.info("trip_created: trip=%s rider=%s distance_km=%.2f fare=%.2f", trip_id, rider["id"], distance, fare)

        await self._notify("broadcast_to_drivers", "trip:new", {
            "trip_id": trip_id,
            "start_address": trip["start_address"],
            "end_address": trip["end_address"],
            "estimated_fare": trip["estimated_fare"],
            "distance": trip["distance_km"],
        })
        return {
            "id": trip["id"],
            "status": trip["status"],
            "start_address": trip["start_address"],
            "end_address": trip["end_address"],
            "distance_km": trip["distance_km"],
            "estimated_fare": trip["estimated_fare"],
            "notes": trip["notes"],
            "created_at": trip["created_at"],
            "rider": {"id": rider_info["id"], "user": rider_info["user"]} if rider_info else None,
        }

    @log_failures
    async def get_trip_by_id(self, conn, trip_id: int, user_id: int) -> dict:
        async with conn.begin():
            trip = await repository.trip_detail(conn, trip_id, include_bids=True)
            if not trip:
                raise NotFoundError("Trip not found")
            user = await profiles.get_user(conn, user_id)
            if not user:
                raise ForbiddenError("User not found")
            if user["user_type"] == models.ROLE_RIDER:
                rider = await profiles.get_rider_by_user(conn, user_id)
                if not rider or trip["rider_id"] != rider["id"]:
                    raise ForbiddenError("You do not have access to this trip")
            elif user["user_type"] == models.ROLE_DRIVER:
                driver = await profiles.get_driver_by_user(conn, user_id)
                driver_id = driver["id"] if driver else None
                has_bid = any(b["driver_id"] == driver_id for b in trip["bids"])
                if driver_id is None or (
                    trip["driver_id"] != driver_id and not has_bid and trip["status"] != models.TRIP_PENDING
                ):
                    raise ForbiddenError("You do not have access to this trip")
            else:
                raise ForbiddenError("You do not have access to this trip")
        return trip

    @log_failures
    async def get_rider_trips(self, conn, user_id: int, status: str | None = None) -> list[dict]:
        async with conn.begin():
            rider = await profiles.require_rider(conn, user_id)
            trips = await repository.list_trips(conn, rider_id=rider["id"], status=status, limit=settings.HISTORY_LIMIT)
            for trip in trips:
                trip["driver"] = await repository.driver_summary(conn, trip["driver_id"]) if trip["driver_id"] else None
        return trips

    @log_failures
    async def get_driver_trips(self, conn, user_id: int, status: str | None = None) -> list[dict]:
        async with conn.begin():
            driver = await profiles.require_driver(conn, user_id)
            trips = await repository.list_trips(conn, driver_id=driver["id"], status=status, limit=settings.HISTORY_LIMIT)
            for trip in trips:
                trip["rider"] = await repository.rider_summary(conn, trip["rider_id"])
                trip["vehicle"] = await repository.get_vehicle(conn, trip["vehicle_id"]) if trip["vehicle_id"] else None
        return trips

    # ---------------------- Driver operations ----------------------

    @log_failures
    async def accept_trip(self, conn, trip_id: int, user_id: int) -> dict:
        """Claim a pending trip at its estimated fare, bypassing bidding."""
        async with conn.begin():
            driver = await profiles.require_eligible_driver(conn, user_id)
            vehicle = profiles.first_vehicle(driver)
            trip = await repository.get_trip(conn, trip_id, for_update=True)
            if not trip:
                raise NotFoundError("Trip not found")
            if trip["status"] != models.TRIP_PENDING:
                raise BadRequestError("Trip is no longer available")
            claimed = await repository.assign_trip(conn, trip_id, driver["id"], vehicle["id"], trip["estimated_fare"])
            if not claimed:
                logger.warning("accept_trip: trip=%s lost race for driver=%s", trip_id, driver["id"])
                raise BadRequestError("Trip is no longer available")
            updated = await repository.trip_detail(conn, trip_id)
        logger.info("trip_accepted: trip=%s driver=%s vehicle=%s", trip_id, driver["id"], vehicle["id"])

        await self._notify("broadcast_trip_status", trip_id, models.TRIP_DRIVER_ASSIGNED, {
            "driver_id": driver["id"],
            "driver_name": _full_name(updated["driver"]),
            "vehicle": vehicle,
        })
        await self._notify("notify_user", updated["rider"]["user_id"], models.ROLE_RIDER, {
            "type": "trip_accepted",
            "title": "Driver Assigned",
            "message": f"{_full_name(updated['driver']) or 'Your driver'} is on the way!",
            "data": {"trip_id": trip_id, "driver_id": driver["id"]},
        })
        return updated

    @log_failures
    async def update_driver_location(self, conn, user_id: int, lat: float, lon: float) -> dict:
        async with conn.begin():
            driver = await profiles.set_driver_location(conn, user_id, lat, lon)
            active = await repository.list_trips(conn, driver_id=driver["id"], status=models.TRIP_DRIVER_ASSIGNED)
            active += await repository.list_trips(conn, driver_id=driver["id"], status=models.TRIP_IN_PROGRESS)
        for trip in active:
            await self._notify("broadcast_trip_status", trip["id"], trip["status"], {
                "driver_location": {"latitude": lat, "longitude": lon},
            })
        return {
            "driver_id": driver["id"],
            "latitude": lat,
            "longitude": lon,
            "last_location_update": driver["last_location_update"],
        }

    async def update_trip_status(self, conn, trip_id: int, user_id: int, status: str, reason: str | None = None) -> dict:
        if status == models.TRIP_IN_PROGRESS:
            return await self.start_trip(conn, trip_id, user_id)
        if status == models.TRIP_COMPLETED:
            return await self.complete_trip(conn, trip_id, user_id)
        if status == models.TRIP_CANCELLED:
            return await self.cancel_trip(conn, trip_id, user_id, reason=reason)
        raise BadRequestError(f"Invalid status: {status}")

    async def _assigned_trip(self, conn, trip_id: int, user_id: int) -> tuple[dict, dict]:
        driver = await profiles.require_driver(conn, user_id)
        trip = await repository.get_trip(conn, trip_id)
        if not trip:
            raise NotFoundError("Trip not found")
        if trip["driver_id"] != driver["id"]:
            raise ForbiddenError("You are not assigned to this trip")
        return driver, trip

    @log_failures
    async def start_trip(self, conn, trip_id: int, user_id: int) -> dict:
        async with conn.begin():
            driver, trip = await self._assigned_trip(conn, trip_id, user_id)
            if trip["status"] not in STARTABLE:
                raise BadRequestError("Trip cannot be started")
            started_at = models.utcnow()
            if not await repository.transition_trip(
                conn, trip_id, STARTABLE, status=models.TRIP_IN_PROGRESS, started_at=started_at
            ):
                raise BadRequestError("Trip cannot be started")
            updated = await repository.get_trip(conn, trip_id)
        logger.info("trip_started: trip=%s driver=%s", trip_id, driver["id"])

        await self._notify("broadcast_trip_status", trip_id, models.TRIP_IN_PROGRESS, {"started_at": started_at})
        return updated

    @log_failures
    async def complete_trip(self, conn, trip_id: int, user_id: int) -> dict:
        async with conn.begin():
            driver, trip = await self._assigned_trip(conn, trip_id, user_id)
            if trip["status"] != models.TRIP_IN_PROGRESS:
                raise BadRequestError("Trip is not in progress")
            completed_at = models.utcnow()
            if not await repository.transition_trip(
                conn, trip_id, (models.TRIP_IN_PROGRESS,), status=models.TRIP_COMPLETED, completed_at=completed_at
            ):
                raise BadRequestError("Trip is not in progress")
            updated = await repository.trip_detail(conn, trip_id)
        logger.info("trip_completed: trip=%s driver=%s", trip_id, driver["id"])

        await self._notify("broadcast_trip_status", trip_id, models.TRIP_COMPLETED, {
            "completed_at": completed_at,
            "final_fare": updated["final_fare"],
        })
        await self._notify("notify_user", updated["rider"]["user_id"], models.ROLE_RIDER, {
            "type": "trip_completed",
            "title": "Trip Completed",
            "message": "Your trip has been completed. Please rate your driver.",
            "data": {"trip_id": trip_id, "final_fare": updated["final_fare"]},
        })
        return updated

    # ---------------------- Cancellation ----------------------

    def _cancellable_from(self) -> tuple[str, ...]:
        statuses = [models.TRIP_PENDING, models.TRIP_DRIVER_ASSIGNED, models.TRIP_DRIVER_ARRIVED]
        if settings.ALLOW_CANCEL_IN_PROGRESS:
            statuses.append(models.TRIP_IN_PROGRESS)
        return tuple(statuses)

    @log_failures
    async def cancel_trip(self, conn, trip_id: int, user_id: int | None, reason: str | None = None) -> dict:
        """Cancel a trip on behalf of its rider, its assigned driver, or the system.

        A `user_id` of None is a system cancellation and skips ownership checks.
        """
        async with conn.begin():
            trip = await repository.get_trip(conn, trip_id)
            if user_id is None:
                cancelled_by = models.ROLE_SYSTEM
            else:
                user = await profiles.get_user(conn, user_id)
                if not user:
                    raise ForbiddenError("User not found")
                cancelled_by = user["user_type"]
            if not trip:
                raise NotFoundError("Trip not found")

            if cancelled_by == models.ROLE_RIDER:
                rider = await profiles.get_rider_by_user(conn, user_id)
                if not rider or trip["rider_id"] != rider["id"]:
                    raise ForbiddenError("You cannot cancel this trip")
            elif cancelled_by == models.ROLE_DRIVER:
                driver = await profiles.get_driver_by_user(conn, user_id)
                if not driver or trip["driver_id"] != driver["id"]:
                    raise ForbiddenError("You cannot cancel this trip")
            elif cancelled_by != models.ROLE_SYSTEM:
                raise ForbiddenError("You cannot cancel this trip")

            allowed = self._cancellable_from()
            if trip["status"] not in allowed:
                raise BadRequestError("Trip cannot be cancelled")
            cancelled_at = models.utcnow()
            if not await repository.transition_trip(
                conn, trip_id, allowed,
                status=models.TRIP_CANCELLED,
                cancelled_at=cancelled_at,
                cancellation_reason=reason,
                cancelled_by=cancelled_by,
            ):
                raise BadRequestError("Trip cannot be cancelled")
            updated = await repository.get_trip(conn, trip_id)
        logger.info("trip_cancelled: trip=%s by=%s user=%s", trip_id, cancelled_by, user_id)

        await self._notify("broadcast_trip_status", trip_id, models.TRIP_CANCELLED, {
            "cancelled_by": cancelled_by,
            "reason": reason,
        })
        return updated
