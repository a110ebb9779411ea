import logging

from . import repository, profiles, models
from .config import settings
from .errors import BadRequestError, log_failures
from .geo import distance_km

logger = logging.getLogger(__name__)


@log_failures
async def get_nearby_trips(conn, user_id: int, radius_km: float | None = None) -> list[dict]:
    """Pending trips within `radius_km` of the driver's last known position, closest first."""
    radius_km = settings.NEARBY_RADIUS_KM if radius_km is None else radius_km
    async with conn.begin():
        driver = await profiles.require_driver(conn, user_id)
        if driver["daily_fee_status"] != models.FEE_PAID:
            raise BadRequestError("Active subscription required to view trip requests")
        lat, lon = driver["current_latitude"], driver["current_longitude"]
        if lat is None or lon is None:
            raise BadRequestError("Please update your location to view nearby trips")

        pending = await repository.list_pending_trips(conn)
        bid_trip_ids = await repository.driver_bid_trip_ids(conn, driver["id"])
        nearby = []
        for trip in pending:
            dist = distance_km(lat, lon, trip["start_latitude"], trip["start_longitude"])
            if dist <= radius_km:
                nearby.append((dist, trip))
        nearby.sort(key=lambda item: item[0])

        result = []
        for dist, trip in nearby:
            rider = await repository.rider_summary(conn, trip["rider_id"], with_phone=False)
            result.append({
                "id": trip["id"],
                "start_address": trip["start_address"],
                "end_address": trip["end_address"],
                "distance_km": trip["distance_km"],
                "estimated_fare": trip["estimated_fare"],
                "distance_from_driver": round(dist, 2),
                "has_bid": trip["id"] in bid_trip_ids,
                "created_at": trip["created_at"],
                "rider": {
                    "first_name": (rider and rider["user"] and rider["user"]["first_name"]) or "Unknown",
                    "rating": float(rider["rating"] or 0) if rider else 0.0,
                },
            })
    logger.debug("get_nearby_trips: driver=%s radius_km=%s pending=%d nearby=%d",
                 driver["id"], radius_km, len(pending), len(result))
    return result
