from datetime import datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pixelperks.models.schema_models import (
    GamingPackageSchema,
    MemberRechargeSchema,
    MemberSchema,
    ParticipantStatus,
    SessionParticipantSchema,
    StationSchema,
    StationType,
)
from pixelperks.models.schemas import Base
from pixelperks.services.catalog_db import CatalogService
from pixelperks.services.member_db import MemberService
from pixelperks.services.settlement import SettlementService
from pixelperks.services.station_db import StationService

NOW = datetime(2024, 6, 3, 18, 0, 0)  # a Monday evening


class FakePublisher:
    """Collects events instead of publishing them to Redis."""

    def __init__(self):
        self.events = []

    async def bill_created(self, bill):
        self.events.append(("bill-created", bill))

    async def session_transitioned(self, station, action, at=None):
        self.events.append(("session-transitioned", action, station.status))

    async def timer_expired(self, station, participant_ids, at):
        self.events.append(("timer-expired", station.station_id, participant_ids))

    def names(self):
        return [event[0] for event in self.events]


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_participant(now):
    def _make(participant_id="m-1", name="Alice", seconds=3600, **overrides):
        values = {
            "participant_id": participant_id,
            "name": name,
            "status": ParticipantStatus.active,
            "start_time": now,
            "end_time": now + timedelta(seconds=seconds) if seconds else None,
            "allotted_seconds": seconds or None,
        }
        values.update(overrides)
        return SessionParticipantSchema(**values)

    return _make


@pytest.fixture
def make_station():
    def _make(station_type=StationType.console, **overrides):
        values = {"station_id": uuid4(), "name": "PS5-1", "station_type": station_type}
        values.update(overrides)
        return StationSchema(**values)

    return _make


@pytest.fixture
def make_recharge(now):
    def _make(recharge_id="r-1", remaining=3600, days_left=10, **overrides):
        values = {
            "recharge_id": recharge_id,
            "package_id": "pkg-recharge",
            "package_name": "10 Hour Pack",
            "total_duration": max(remaining, 3600),
            "remaining_duration": remaining,
            "purchase_date": now - timedelta(days=1),
            "expiry_date": now + timedelta(days=days_left),
            "price_paid": 1000.0,
        }
        values.update(overrides)
        return MemberRechargeSchema(**values)

    return _make


@pytest.fixture
def make_member():
    def _make(**overrides):
        values = {"member_id": uuid4(), "name": "Alice"}
        values.update(overrides)
        return MemberSchema(**values)

    return _make


@pytest.fixture
def make_package():
    def _make(name="Solo Hour", duration=3600, price=100.0, **overrides):
        values = {"package_id": uuid4(), "name": name, "duration": duration, "price": price}
        values.update(overrides)
        return GamingPackageSchema(**values)

    return _make


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def catalog_service(session_factory):
    return CatalogService(session_factory)


@pytest.fixture
def member_service(session_factory, publisher):
    return MemberService(session_factory, publisher)


@pytest.fixture
def station_service(session_factory, publisher):
    return StationService(session_factory, publisher)


@pytest.fixture
def settlement_service(session_factory, publisher):
    return SettlementService(session_factory, publisher)
