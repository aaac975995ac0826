"""Shared service instances for routers and the scheduler."""

from redis.asyncio import Redis

from pixelperks.db import Session
from pixelperks.event_publisher import EventPublisher
from pixelperks.load_secrets import redis_host, redis_port
from pixelperks.services.catalog_db import CatalogService
from pixelperks.services.member_db import MemberService
from pixelperks.services.settlement import SettlementService
from pixelperks.services.station_db import StationService

redis = Redis(host=redis_host, port=redis_port, decode_responses=True, health_check_interval=30)
publisher = EventPublisher(redis)

catalog_service = CatalogService(Session)
member_service = MemberService(Session, publisher)
station_service = StationService(Session, publisher)
settlement_service = SettlementService(Session, publisher)
