import json
import logging
from datetime import datetime
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from pixelperks.models.schema_models import BillSchema, StationSchema

BILLS_CHANNEL = "bills"


def station_channel(station_id) -> str:
    return f"station:{station_id}"


class EventPublisher:
    """Publish domain events to Redis for logging and notification consumers."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def _publish(self, channel: str, payload: dict) -> None:
        # A lost event never fails the operation.
        try:
            await self.redis.publish(channel, json.dumps(payload, default=str))
        except (RedisError, OSError) as e:
            logging.error(f"Failed to publish {payload.get('event')} to {channel}: {e}")

    async def bill_created(self, bill: BillSchema) -> None:
        await self._publish(
            BILLS_CHANNEL,
            {"event": "bill-created", "bill": bill.model_dump(mode="json")},
        )

    async def session_transitioned(
        self,
        station: StationSchema,
        action: str,
        at: Optional[datetime] = None,
    ) -> None:
        await self._publish(
            station_channel(station.station_id),
            {
                "event": "session-transitioned",
                "action": action,
                "station_id": str(station.station_id),
                "status": station.status.value,
                "at": (at or datetime.now()).isoformat(),
            },
        )

    async def timer_expired(self, station: StationSchema, participant_ids: list, at: datetime) -> None:
        await self._publish(
            station_channel(station.station_id),
            {
                "event": "timer-expired",
                "station_id": str(station.station_id),
                "participant_ids": participant_ids,
                "at": at.isoformat(),
            },
        )
