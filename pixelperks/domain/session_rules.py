"""Station and participant session state machine.

Station:     available -> in-use <-> paused -> (checkout) -> available
Participant: active <-> paused -> finished

Every operation takes the current station and returns an updated copy.
Broken preconditions raise SessionRuleError before anything is changed.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from pixelperks.domain import time_model
from pixelperks.domain.pricing_rules import MIXED_SESSION, WALK_IN_ORDER
from pixelperks.domain.recharge_ledger import RechargeDebit
from pixelperks.models.schema_models import (
    BillItemSchema,
    ParticipantStatus,
    SessionParticipantSchema,
    StationSchema,
    StationStatus,
    StationType,
)

PLAYER_LIMITS = {
    StationType.console: 4,
    StationType.table: 8,
}

OCCUPIED = (StationStatus.in_use, StationStatus.paused)


class SessionRuleError(ValueError):
    """A session operation was attempted in a state that does not allow it."""


class StopOutcome(BaseModel):
    station: StationSchema
    played_seconds: int
    debit: Optional[RechargeDebit] = None
    checkout_required: bool = False


def player_limit(station_type: StationType) -> int:
    return PLAYER_LIMITS[station_type]


# ==== guards ====
def _require_status(station: StationSchema, allowed: Iterable[StationStatus], action: str) -> None:
    if station.status not in allowed:
        raise SessionRuleError(f"Cannot {action}: station {station.name} is {station.status.value}")


def _require_capacity(station_type: StationType, count: int) -> None:
    limit = player_limit(station_type)
    if count < 1:
        raise SessionRuleError("A session needs at least one player")
    if count > limit:
        raise SessionRuleError(f"A {station_type.value} station allows at most {limit} players")


def _require_unique(participants: Sequence[SessionParticipantSchema]) -> None:
    ids = [p.participant_id for p in participants]
    if len(ids) != len(set(ids)):
        raise SessionRuleError("A player cannot be added to the same session twice")


def _index_of(station: StationSchema, participant_id: str) -> int:
    for index, participant in enumerate(station.members):
        if participant.participant_id == participant_id:
            return index
    raise SessionRuleError(f"Player {participant_id} is not on station {station.name}")


# ==== aggregate ====
def refresh_aggregate(station: StationSchema, now: datetime) -> StationSchema:
    """Recompute the station-level timer from its participants."""
    if station.status == StationStatus.paused:
        values = [
            time_model.remaining(p, now)
            for p in station.members
            if not p.is_finished and p.has_timer
        ]
        return station.model_copy(
            update={"end_time": None, "remaining_time_on_pause": max(values) if values else 0}
        )
    return station.model_copy(
        update={
            "end_time": time_model.latest_end_time(station.members),
            "remaining_time_on_pause": None,
        }
    )


def _start_timer(participant: SessionParticipantSchema, now: datetime) -> SessionParticipantSchema:
    """Activate a participant; `allotted_seconds` carries their planned duration."""
    end_time = None
    if participant.allotted_seconds:
        end_time = now + timedelta(seconds=participant.allotted_seconds)
    return participant.model_copy(
        update={
            "status": ParticipantStatus.active,
            "start_time": now,
            "end_time": end_time,
            "remaining_time_on_pause": None,
            "allotted_seconds": participant.allotted_seconds or None,
        }
    )


def reset_station(station: StationSchema) -> StationSchema:
    return station.model_copy(
        update={
            "status": StationStatus.available,
            "start_time": None,
            "end_time": None,
            "remaining_time_on_pause": None,
            "package_name": None,
            "members": [],
            "current_bill": [],
            "discount": 0.0,
        }
    )


# ==== session start ====
def _same_plan(participants: Sequence[SessionParticipantSchema]) -> bool:
    """One player, or a group of walk-ins who all chose the same package."""
    if len(participants) == 1:
        return True
    package_ids = {p.package_id for p in participants}
    return (
        len(package_ids) == 1
        and None not in package_ids
        and not any(p.recharge_id or p.is_new_recharge for p in participants)
    )


def start_session(
    station: StationSchema,
    participants: Sequence[SessionParticipantSchema],
    package_name: Optional[str],
    items: Sequence[BillItemSchema],
    now: datetime,
) -> StationSchema:
    _require_status(station, (StationStatus.available,), "start a session")
    _require_capacity(station.station_type, len(participants))
    _require_unique(participants)

    members = [_start_timer(p, now) for p in participants]
    started = station.model_copy(
        update={
            "status": StationStatus.in_use,
            "start_time": now,
            "remaining_time_on_pause": None,
            "package_name": package_name if _same_plan(members) else MIXED_SESSION,
            "members": members,
            "current_bill": list(items),
            "discount": 0.0,
        }
    )
    return refresh_aggregate(started, now)


def start_walk_in_order(
    station: StationSchema,
    participants: Sequence[SessionParticipantSchema],
    now: datetime,
) -> StationSchema:
    """Open a food-only order: occupied station, no timers."""
    _require_status(station, (StationStatus.available,), "open a walk-in order")
    _require_capacity(station.station_type, len(participants))
    _require_unique(participants)

    members = [
        p.model_copy(
            update={
                "status": ParticipantStatus.active,
                "start_time": None,
                "end_time": None,
                "remaining_time_on_pause": None,
                "allotted_seconds": None,
            }
        )
        for p in participants
    ]
    return station.model_copy(
        update={
            "status": StationStatus.in_use,
            "start_time": None,
            "end_time": None,
            "remaining_time_on_pause": None,
            "package_name": WALK_IN_ORDER,
            "members": members,
            "current_bill": [],
            "discount": 0.0,
        }
    )


def join_session(
    station: StationSchema,
    participant: SessionParticipantSchema,
    item: Optional[BillItemSchema],
    now: datetime,
) -> StationSchema:
    _require_status(station, OCCUPIED, "join a session")
    members = [*station.members, participant]
    _require_capacity(station.station_type, len(members))
    _require_unique(members)

    joined = _start_timer(participant, now)
    if station.status == StationStatus.paused and joined.has_timer:
        joined = time_model.pause(joined, now)
    bill = list(station.current_bill)
    if item is not None:
        bill.append(item)
    updated = station.model_copy(update={"members": [*station.members, joined], "current_bill": bill})
    return refresh_aggregate(updated, now)


# ==== stop ====
def _debit_for(participant: SessionParticipantSchema, seconds: int) -> Optional[RechargeDebit]:
    if participant.is_guest:
        return None
    # a billed purchase is always delivered, even with nothing played
    if participant.is_new_recharge and participant.package_id:
        return RechargeDebit(
            member_id=participant.participant_id,
            seconds=max(0, seconds),
            purchase_package_id=participant.package_id,
        )
    if seconds <= 0:
        return None
    if participant.recharge_id:
        return RechargeDebit(
            member_id=participant.participant_id,
            seconds=seconds,
            recharge_id=participant.recharge_id,
        )
    return None


def stop_participant(station: StationSchema, participant_id: str, now: datetime) -> StopOutcome:
    """Finish one participant and work out the balance to debit for them."""
    _require_status(station, OCCUPIED, "stop a player")
    index = _index_of(station, participant_id)
    participant = station.members[index]
    if participant.is_finished:
        raise SessionRuleError(f"Player {participant.name} has already finished")

    played = time_model.played_seconds(participant, now)
    members = list(station.members)
    members[index] = participant.model_copy(
        update={
            "status": ParticipantStatus.finished,
            "end_time": now,
            "remaining_time_on_pause": None,
        }
    )
    updated = refresh_aggregate(station.model_copy(update={"members": members}), now)
    return StopOutcome(
        station=updated,
        played_seconds=played,
        debit=_debit_for(participant, played),
        checkout_required=all(p.is_finished for p in members),
    )


def adopt_recharge(station: StationSchema, participant_id: str, recharge_id: str) -> StationSchema:
    """Turn a participant whose purchase went through into a user of the bought pack.

    Later stops and checkouts then debit that pack instead of buying it again.
    """
    index = _index_of(station, participant_id)
    members = list(station.members)
    members[index] = members[index].model_copy(update={"recharge_id": recharge_id, "is_new_recharge": False})
    return station.model_copy(update={"members": members})


# ==== pause / resume ====
def toggle_station_timer(station: StationSchema, now: datetime) -> StationSchema:
    """Pause every running participant, or resume every frozen one."""
    _require_status(station, OCCUPIED, "pause or resume")
    if station.status == StationStatus.in_use:
        members = [
            time_model.pause(p, now) if not p.is_finished and p.has_timer else p
            for p in station.members
        ]
        paused = station.model_copy(update={"members": members, "status": StationStatus.paused})
        return refresh_aggregate(paused, now)

    members = [
        time_model.resume(p, now) if not p.is_finished and p.remaining_time_on_pause is not None else p
        for p in station.members
    ]
    resumed = station.model_copy(update={"members": members, "status": StationStatus.in_use})
    return refresh_aggregate(resumed, now)


def toggle_player_timer(station: StationSchema, participant_id: str, now: datetime) -> StationSchema:
    if station.status == StationStatus.paused:
        raise SessionRuleError("Resume the station before pausing or resuming a single player")
    _require_status(station, (StationStatus.in_use,), "pause or resume a player")
    index = _index_of(station, participant_id)
    participant = station.members[index]
    if participant.is_finished:
        raise SessionRuleError(f"Player {participant.name} has already finished")
    if not participant.has_timer:
        raise SessionRuleError(f"Player {participant.name} has no timer to pause")

    members = list(station.members)
    if participant.status == ParticipantStatus.paused:
        members[index] = time_model.resume(participant, now)
    else:
        members[index] = time_model.pause(participant, now)
    return refresh_aggregate(station.model_copy(update={"members": members}), now)


# ==== add / reduce ====
def _targets(station: StationSchema, target_ids: Sequence[str]) -> List[int]:
    if not target_ids:
        raise SessionRuleError("Select at least one player")
    return [_index_of(station, pid) for pid in dict.fromkeys(target_ids)]


def _extend(participant: SessionParticipantSchema, seconds: int, station_paused: bool, now: datetime):
    if participant.is_finished or not participant.has_timer:
        # restart from now, never from an old end time
        restarted = participant.model_copy(
            update={
                "status": ParticipantStatus.active,
                "start_time": now if participant.is_finished else participant.start_time or now,
                "end_time": now + timedelta(seconds=seconds),
                "remaining_time_on_pause": None,
                "allotted_seconds": seconds,
            }
        )
        return time_model.pause(restarted, now) if station_paused else restarted

    allotted = time_model.total_session_seconds(participant) + seconds
    if participant.remaining_time_on_pause is not None:
        return participant.model_copy(
            update={
                "remaining_time_on_pause": participant.remaining_time_on_pause + seconds,
                "allotted_seconds": allotted,
            }
        )
    return participant.model_copy(
        update={
            "end_time": participant.end_time + timedelta(seconds=seconds),
            "allotted_seconds": allotted,
        }
    )


def add_time(
    station: StationSchema,
    target_ids: Sequence[str],
    seconds: int,
    items: Sequence[BillItemSchema],
    now: datetime,
) -> StationSchema:
    _require_status(station, OCCUPIED, "add time")
    if seconds <= 0:
        raise SessionRuleError("Added time must be positive")
    paused = station.status == StationStatus.paused
    members = list(station.members)
    for index in _targets(station, target_ids):
        members[index] = _extend(members[index], seconds, paused, now)
    updated = station.model_copy(
        update={"members": members, "current_bill": [*station.current_bill, *items]}
    )
    return refresh_aggregate(updated, now)


def reduce_time(
    station: StationSchema,
    target_ids: Sequence[str],
    seconds: int,
    now: datetime,
) -> StationSchema:
    """Take time off the chosen players; nobody goes below zero remaining."""
    _require_status(station, OCCUPIED, "reduce time")
    if seconds <= 0:
        raise SessionRuleError("Reduced time must be positive")
    members = list(station.members)
    for index in _targets(station, target_ids):
        participant = members[index]
        if participant.is_finished or not participant.has_timer:
            continue
        cut = min(seconds, time_model.remaining(participant, now))
        update = {"allotted_seconds": max(0, time_model.total_session_seconds(participant) - cut)}
        if participant.remaining_time_on_pause is not None:
            update["remaining_time_on_pause"] = participant.remaining_time_on_pause - cut
        else:
            update["end_time"] = participant.end_time - timedelta(seconds=cut)
        members[index] = participant.model_copy(update=update)
    return refresh_aggregate(station.model_copy(update={"members": members}), now)


# ==== move / bill ====
def move_session(source: StationSchema, target: StationSchema) -> Tuple[StationSchema, StationSchema]:
    """Carry a running session over to an idle station."""
    if source.station_id == target.station_id:
        raise SessionRuleError("Source and target station are the same")
    _require_status(source, OCCUPIED, "move a session")
    if target.status != StationStatus.available:
        raise SessionRuleError(f"Station {target.name} is not available")
    active = [p for p in source.members if not p.is_finished]
    if len(active) > player_limit(target.station_type):
        raise SessionRuleError(f"Station {target.name} cannot seat {len(active)} players")

    moved = target.model_copy(
        update={
            "status": source.status,
            "start_time": source.start_time,
            "end_time": source.end_time,
            "remaining_time_on_pause": source.remaining_time_on_pause,
            "package_name": source.package_name,
            "members": list(source.members),
            "current_bill": list(source.current_bill),
            "discount": source.discount,
        }
    )
    return reset_station(source), moved


def save_bill(station: StationSchema, items: Sequence[BillItemSchema], discount: float) -> StationSchema:
    _require_status(station, OCCUPIED, "edit the bill")
    return station.model_copy(update={"current_bill": list(items), "discount": max(0.0, discount)})
