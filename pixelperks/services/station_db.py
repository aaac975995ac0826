"""DB service layer for station session use cases.

- Routers should not touch DB sessions directly; they call this module.
- This layer owns session/transaction boundaries.
- Domain rule violations come back as a failed OperationResultModel,
  never as an exception.
"""

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from uuid6 import uuid7

from pixelperks.crud import CreateData, DeleteData, ReadData, UpdateData
from pixelperks.domain import pricing_rules, recharge_ledger, session_rules, time_model
from pixelperks.domain.pricing_rules import BUY_RECHARGE_PREFIX, RECHARGE_PREFIX
from pixelperks.domain.session_rules import SessionRuleError
from pixelperks.event_publisher import EventPublisher
from pixelperks.load_secrets import timer_sweep_seconds
from pixelperks.models.dc_models import (
    AddTimeModel,
    JoinSessionModel,
    MoveSessionModel,
    OperationResultModel,
    ParticipantPlanModel,
    PlanModeModel,
    ReduceTimeModel,
    SaveBillModel,
    StartSessionModel,
    StationModel,
    TimerModel,
)
from pixelperks.models.schema_models import (
    GUEST_ID_PREFIX,
    POOL_RECHARGE_ID,
    GamingPackageSchema,
    SessionParticipantSchema,
    StationSchema,
)
from pixelperks.services.atomic import StorageConflictError, run_atomic
from pixelperks.services.member_db import apply_member_debit

# Default reminder for a pool session when no duration is chosen.
DEFAULT_POOL_SECONDS = 3600

Mutation = Callable[[StationSchema, AsyncSession], Awaitable[Tuple[StationSchema, bool]]]


class ResolvedPlan:
    """A participant ready to seat, with the label and package behind their plan."""

    def __init__(self, participant: SessionParticipantSchema, label: Optional[str], package: Optional[GamingPackageSchema]):
        self.participant = participant
        self.label = label
        self.package = package


async def _read_package(package_id: Optional[str], session: AsyncSession) -> GamingPackageSchema:
    if not package_id:
        raise SessionRuleError("A package must be chosen for this plan")
    package = await ReadData.read_package(package_id, session)
    if package is None:
        raise LookupError(f"Package {package_id} not found")
    return package


async def resolve_plan(plan: ParticipantPlanModel, now: datetime, session: AsyncSession) -> ResolvedPlan:
    """Turn a requested plan into a participant with its planned duration.

    Args:
        plan (ParticipantPlanModel): Who plays and how they pay
        now (datetime): Resolution instant, used for balance checks
        session (AsyncSession): AsyncSession object to interact with database
    Returns:
        ResolvedPlan: Participant (duration in `allotted_seconds`), label and package
    """
    is_guest = plan.participant_id is None
    if is_guest and plan.mode in (PlanModeModel.recharge, PlanModeModel.pool, PlanModeModel.buy_recharge):
        raise SessionRuleError(f"Guest {plan.name} cannot use a recharge")

    member = None
    if not is_guest:
        member = await ReadData.read_member(plan.participant_id, session)
        if member is None:
            raise LookupError(f"Member {plan.participant_id} not found")

    participant = SessionParticipantSchema(
        participant_id=plan.participant_id or f"{GUEST_ID_PREFIX}{uuid7()}",
        name=plan.name,
    )

    if plan.mode == PlanModeModel.open:
        return ResolvedPlan(participant, None, None)

    if plan.mode in (PlanModeModel.walk_in, PlanModeModel.buy_recharge):
        package = await _read_package(plan.package_id, session)
        buying = plan.mode == PlanModeModel.buy_recharge
        if buying and not package.is_recharge_pack:
            raise SessionRuleError(f"{package.name} is not a recharge pack")
        participant = participant.model_copy(
            update={
                "package_id": str(package.package_id),
                "is_new_recharge": buying,
                "allotted_seconds": plan.duration_seconds or package.duration,
            }
        )
        label = f"{BUY_RECHARGE_PREFIX}{package.name}" if buying else package.name
        return ResolvedPlan(participant, label, package)

    if plan.mode == PlanModeModel.recharge:
        recharge = next((r for r in member.recharges if r.recharge_id == plan.recharge_id), None)
        if recharge is None or not recharge_ledger.is_active(recharge, now):
            raise SessionRuleError(f"{plan.name} has no active recharge {plan.recharge_id}")
        seconds = recharge.remaining_duration
        if plan.duration_seconds:
            seconds = min(plan.duration_seconds, seconds)
        participant = participant.model_copy(
            update={"recharge_id": recharge.recharge_id, "package_id": recharge.package_id, "allotted_seconds": seconds}
        )
        return ResolvedPlan(participant, f"{RECHARGE_PREFIX}{recharge.package_name}", None)

    # pool
    balance = recharge_ledger.active_balance(member, now)
    if balance <= 0:
        raise SessionRuleError(f"{plan.name} has no active recharge balance")
    seconds = min(plan.duration_seconds or min(DEFAULT_POOL_SECONDS, balance), balance)
    participant = participant.model_copy(update={"recharge_id": POOL_RECHARGE_ID, "allotted_seconds": seconds})
    return ResolvedPlan(participant, f"{RECHARGE_PREFIX}Pool Balance", None)


class StationService:
    def __init__(self, session_factory: async_sessionmaker, publisher: EventPublisher):
        self.Session = session_factory
        self.publisher = publisher

    # ==== plain reads / writes ====
    async def create_station(self, station: StationModel) -> StationSchema:
        new_station = StationSchema(station_id=uuid7(), name=station.name, station_type=station.station_type)
        async with self.Session() as session:
            async with session.begin():
                await CreateData.create_station(new_station, session)
        logging.info(f"Created {new_station.station_type.value} station {new_station.name}")
        return new_station

    async def read_station(self, station_id: UUID) -> Optional[StationSchema]:
        async with self.Session() as session:
            return await ReadData.read_station(station_id, session)

    async def read_stations(self) -> List[StationSchema]:
        async with self.Session() as session:
            return await ReadData.read_stations(session)

    async def delete_station(self, station_id: UUID) -> OperationResultModel:
        async with self.Session() as session:
            async with session.begin():
                station = await ReadData.read_station(station_id, session, for_update=True)
                if station is None:
                    return OperationResultModel(success=False, message="Station not found")
                if station.members:
                    return OperationResultModel(success=False, message=f"Station {station.name} has a live session")
                await DeleteData.delete_station(station_id, session)
        return OperationResultModel(success=True, message=f"Deleted station {station.name}")

    async def read_timer(self, station_id: UUID, now: Optional[datetime] = None) -> Optional[TimerModel]:
        station = await self.read_station(station_id)
        if station is None:
            return None
        soonest, latest = time_model.timer_bounds(station, now or datetime.now())
        return TimerModel(station_id=station.station_id, soonest_remaining=soonest, latest_remaining=latest)

    # ==== transitions ====
    async def _transition(self, station_id: UUID, action: str, mutate: Mutation, now: datetime) -> OperationResultModel:
        async def work(session: AsyncSession):
            station = await ReadData.read_station(station_id, session, for_update=True)
            if station is None:
                raise LookupError("Station not found")
            updated, checkout_required = await mutate(station, session)
            return await UpdateData.write_station(updated, session), checkout_required

        try:
            station, checkout_required = await run_atomic(self.Session, work, f"{action} on {station_id}")
        except LookupError as e:
            return OperationResultModel(success=False, message=str(e))
        except ValueError as e:
            logging.info(f"Rejected {action} on {station_id}: {e}")
            return OperationResultModel(success=False, message=str(e))
        except StorageConflictError as e:
            logging.error(f"Failed to {action}: {e}")
            return OperationResultModel(success=False, message="The station is busy, please retry")

        logging.info(f"{action} on {station.name}: now {station.status.value}")
        await self.publisher.session_transitioned(station, action, now)
        return OperationResultModel(success=True, station=station, checkout_required=checkout_required)

    async def start_session(
        self, station_id: UUID, request: StartSessionModel, now: Optional[datetime] = None
    ) -> OperationResultModel:
        now = now or datetime.now()

        async def mutate(station: StationSchema, session: AsyncSession):
            plans = [await resolve_plan(plan, now, session) for plan in request.players]
            participants = [p.participant for p in plans]
            packages: Dict[str, GamingPackageSchema] = {
                str(p.package.package_id): p.package for p in plans if p.package is not None
            }
            items = pricing_rules.session_package_items(participants, packages, now)
            label = plans[0].label if plans else None
            return session_rules.start_session(station, participants, label, items, now), False

        return await self._transition(station_id, "start-session", mutate, now)

    async def start_walk_in_order(
        self, station_id: UUID, request: StartSessionModel, now: Optional[datetime] = None
    ) -> OperationResultModel:
        now = now or datetime.now()

        async def mutate(station: StationSchema, session: AsyncSession):
            plans = [
                await resolve_plan(plan.model_copy(update={"mode": PlanModeModel.open}), now, session)
                for plan in request.players
            ]
            return session_rules.start_walk_in_order(station, [p.participant for p in plans], now), False

        return await self._transition(station_id, "walk-in-order", mutate, now)

    async def join_session(
        self, station_id: UUID, request: JoinSessionModel, now: Optional[datetime] = None
    ) -> OperationResultModel:
        now = now or datetime.now()

        async def mutate(station: StationSchema, session: AsyncSession):
            plan = await resolve_plan(request.player, now, session)
            item = pricing_rules.join_item(plan.participant, plan.package, now)
            return session_rules.join_session(station, plan.participant, item, now), False

        return await self._transition(station_id, "join-session", mutate, now)

    async def stop_participant(
        self, station_id: UUID, participant_id: str, now: Optional[datetime] = None
    ) -> OperationResultModel:
        now = now or datetime.now()

        async def mutate(station: StationSchema, session: AsyncSession):
            outcome = session_rules.stop_participant(station, participant_id, now)
            stopped = outcome.station
            if outcome.debit is not None:
                recharge_id = str(uuid7())
                member = await apply_member_debit(outcome.debit, now, session, new_recharge_id=recharge_id)
                if member is not None and outcome.debit.purchase_package_id is not None:
                    stopped = session_rules.adopt_recharge(stopped, participant_id, recharge_id)
            return stopped, outcome.checkout_required

        return await self._transition(station_id, "stop-player", mutate, now)

    async def toggle_station_timer(self, station_id: UUID, now: Optional[datetime] = None) -> OperationResultModel:
        now = now or datetime.now()

        async def mutate(station: StationSchema, session: AsyncSession):
            return session_rules.toggle_station_timer(station, now), False

        return await self._transition(station_id, "toggle-station", mutate, now)

    async def toggle_player_timer(
        self, station_id: UUID, participant_id: str, now: Optional[datetime] = None
    ) -> OperationResultModel:
        now = now or datetime.now()

        async def mutate(station: StationSchema, session: AsyncSession):
            return session_rules.toggle_player_timer(station, participant_id, now), False

        return await self._transition(station_id, "toggle-player", mutate, now)

    async def add_time(self, station_id: UUID, request: AddTimeModel, now: Optional[datetime] = None) -> OperationResultModel:
        now = now or datetime.now()

        async def mutate(station: StationSchema, session: AsyncSession):
            package = await _read_package(request.package_id, session)
            wanted = set(request.participant_ids)
            targets = [p for p in station.members if p.participant_id in wanted]
            items = pricing_rules.time_extension_items(package, targets, now)
            updated = session_rules.add_time(station, request.participant_ids, package.duration, items, now)
            return updated, False

        return await self._transition(station_id, "add-time", mutate, now)

    async def reduce_time(
        self, station_id: UUID, request: ReduceTimeModel, now: Optional[datetime] = None
    ) -> OperationResultModel:
        now = now or datetime.now()

        async def mutate(station: StationSchema, session: AsyncSession):
            seconds = request.minutes * 60
            return session_rules.reduce_time(station, request.participant_ids, seconds, now), False

        return await self._transition(station_id, "reduce-time", mutate, now)

    async def save_bill(self, station_id: UUID, request: SaveBillModel, now: Optional[datetime] = None) -> OperationResultModel:
        now = now or datetime.now()

        async def mutate(station: StationSchema, session: AsyncSession):
            return session_rules.save_bill(station, request.items, request.discount), False

        return await self._transition(station_id, "save-bill", mutate, now)

    async def move_session(
        self, station_id: UUID, request: MoveSessionModel, now: Optional[datetime] = None
    ) -> OperationResultModel:
        now = now or datetime.now()

        async def work(session: AsyncSession):
            # lock both stations in ascending id order
            locked = {}
            for key in sorted({station_id, request.target_station_id}):
                locked[key] = await ReadData.read_station(key, session, for_update=True)
            source = locked[station_id]
            target = locked[request.target_station_id]
            if source is None or target is None:
                raise LookupError("Station not found")
            source, target = session_rules.move_session(source, target)
            return await UpdateData.write_station(source, session), await UpdateData.write_station(target, session)

        try:
            source, target = await run_atomic(self.Session, work, f"move {station_id}")
        except LookupError as e:
            return OperationResultModel(success=False, message=str(e))
        except ValueError as e:
            return OperationResultModel(success=False, message=str(e))
        except StorageConflictError as e:
            logging.error(f"Failed to move session: {e}")
            return OperationResultModel(success=False, message="The station is busy, please retry")

        logging.info(f"Moved session from {source.name} to {target.name}")
        await self.publisher.session_transitioned(source, "move-out", now)
        await self.publisher.session_transitioned(target, "move-in", now)
        return OperationResultModel(success=True, message=f"Session moved to {target.name}", station=target)

    # ==== scheduled ====
    async def announce_expired_timers(
        self, now: Optional[datetime] = None, window_seconds: int = timer_sweep_seconds
    ) -> int:
        """Emit timer-expired for participants whose time ran out since the last sweep.

        Returns:
            int: Number of stations announced
        """
        now = now or datetime.now()
        since = now - timedelta(seconds=window_seconds)
        announced = 0
        for station in await self.read_stations():
            expired = [
                p.participant_id
                for p in station.members
                if not p.is_finished and p.end_time is not None and since < p.end_time <= now
            ]
            if expired:
                await self.publisher.timer_expired(station, expired, now)
                announced += 1
        if announced:
            logging.info(f"Announced expired timers on {announced} station(s)")
        return announced
