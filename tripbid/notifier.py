"""Realtime fan-out of trip events over Redis pub/sub.

Channels:
    drivers          new trips for prospecting drivers
    trip:{id}        status updates for everyone following a trip
    user:{id}        personal notifications for a rider or driver
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from .config import settings

logger = logging.getLogger(__name__)


def _default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    # Decimal amounts
    return str(value)


class RealtimeNotifier:
    def __init__(self, redis):
        self.redis = redis

    async def _publish(self, channel: str, message: Dict[str, Any]) -> None:
        message = {**message, "timestamp": datetime.now(timezone.utc).isoformat()}
        await self.redis.publish(channel, json.dumps(message, default=_default))
        logger.debug("published: channel=%s event=%s", channel, message.get("event"))

    async def broadcast_to_drivers(self, event: str, payload: Dict[str, Any]) -> None:
        await self._publish("drivers", {"event": event, **payload})

    async def broadcast_trip_status(self, trip_id: int, status: str, payload: Dict[str, Any] | None = None) -> None:
        await self._publish(
            f"trip:{trip_id}",
            {"event": "trip:status:update", "trip_id": trip_id, "status": status, **(payload or {})},
        )
        logger.info("broadcast_trip_status: trip=%s status=%s", trip_id, status)

    async def notify_user(self, user_id: int, role: str, payload: Dict[str, Any]) -> None:
        await self._publish(f"user:{user_id}", {"event": "notification", "role": role, **payload})
        logger.info("notify_user: user=%s role=%s type=%s", user_id, role, payload.get("type"))


class NotifierMixin:
    """Holds an optional notifier; every dispatch is best-effort and time-boxed."""

    notifier: RealtimeNotifier | None = None

    def set_notifier(self, notifier: RealtimeNotifier | None) -> None:
        self.notifier = notifier

    async def _notify(self, method: str, *args, **kwargs) -> None:
        if self.notifier is None:
            return
        try:
            await asyncio.wait_for(getattr(self.notifier, method)(*args, **kwargs), settings.NOTIFY_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("notification timed out: %s args=%s after %ss", method, args, settings.NOTIFY_TIMEOUT)
        except Exception as e:
            logger.warning("notification failed: %s args=%s error=%s", method, args, e)
