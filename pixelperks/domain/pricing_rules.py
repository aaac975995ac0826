"""Package pricing rules: capacity grouping, itemized lines, double-charge checks.

A package sized for `player_capacity` players is billed once per capacity
instance, however many of its slots are used.
"""

import math
import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from pixelperks.models.schema_models import (
    BillItemSchema,
    GamingPackageSchema,
    LineKind,
    SessionParticipantSchema,
    StationSchema,
    StationType,
)

WALK_IN_ORDER = "Walk-in Order"
MIXED_SESSION = "Mixed Session"
OFF_STATION_RECHARGE = "OFF-STATION RECHARGE"

TIME_PREFIX = "Time: "
RECHARGE_PREFIX = "Recharge: "
BUY_RECHARGE_PREFIX = "Buy Recharge: "

SESSION_RESERVED_KINDS = (
    LineKind.session_package,
    LineKind.time_extension,
    LineKind.recharge_usage,
    LineKind.recharge_purchase,
)

DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

_PARENTHESIZED = re.compile(r"\(([^)]*)\)")
_PACKAGE_PREFIX = re.compile(r"^(recharge: |buy recharge: )", re.IGNORECASE)


# ==== capacity grouping ====
def group_by_capacity(players: Sequence, capacity: int) -> List[list]:
    """Split players, in order, into ceil(N / capacity) billed instances."""
    capacity = max(1, capacity or 1)
    return [list(players[i:i + capacity]) for i in range(0, len(players), capacity)]


def instance_count(player_count: int, capacity: int) -> int:
    return math.ceil(max(0, player_count) / max(1, capacity or 1))


def _names(chunk: Iterable[SessionParticipantSchema]) -> str:
    return ", ".join(p.name for p in chunk)


# ==== itemized lines ====
def session_package_items(
    participants: Sequence[SessionParticipantSchema],
    packages: Dict[str, GamingPackageSchema],
    now: datetime,
) -> List[BillItemSchema]:
    """Lines for walk-in and new-purchase participants at session start.

    Participants paying from an existing recharge produce no line.
    """
    groups: Dict[tuple, List[SessionParticipantSchema]] = {}
    for participant in participants:
        if participant.recharge_id is not None or participant.package_id is None:
            continue
        key = (participant.package_id, participant.is_new_recharge)
        groups.setdefault(key, []).append(participant)

    items = []
    for (package_id, is_new_recharge), group in groups.items():
        package = packages.get(package_id)
        if package is None:
            raise ValueError(f"Unknown package: {package_id}")
        for chunk in group_by_capacity(group, package.player_capacity):
            if is_new_recharge:
                name = f"{BUY_RECHARGE_PREFIX}{package.name} ({_names(chunk)})"
                kind = LineKind.recharge_purchase
            else:
                name = f"{package.name} ({_names(chunk)})"
                kind = LineKind.session_package
            items.append(
                BillItemSchema(
                    item_id=package_id,
                    name=name,
                    unit_price=package.price,
                    quantity=1,
                    kind=kind,
                    added_at=now,
                )
            )
    return items


def time_extension_items(
    package: GamingPackageSchema,
    targets: Sequence[SessionParticipantSchema],
    now: datetime,
) -> List[BillItemSchema]:
    return [
        BillItemSchema(
            item_id=str(package.package_id),
            name=f"{TIME_PREFIX}{package.name} ({_names(chunk)})",
            unit_price=package.price,
            quantity=1,
            kind=LineKind.time_extension,
            added_at=now,
        )
        for chunk in group_by_capacity(list(targets), package.player_capacity)
    ]


def join_item(
    participant: SessionParticipantSchema,
    package: Optional[GamingPackageSchema],
    now: datetime,
) -> Optional[BillItemSchema]:
    """Line for a participant joining a running session, if they pay at the counter."""
    if package is None or participant.recharge_id is not None:
        return None
    if participant.is_new_recharge:
        name = f"{BUY_RECHARGE_PREFIX}{package.name} ({participant.name})"
        kind = LineKind.recharge_purchase
    else:
        name = f"{package.name} ({participant.name})"
        kind = LineKind.session_package
    return BillItemSchema(
        item_id=str(package.package_id),
        name=name,
        unit_price=package.price,
        quantity=1,
        kind=kind,
        added_at=now,
    )


# ==== initial package ====
def strip_package_prefix(package_name: str) -> str:
    return _PACKAGE_PREFIX.sub("", package_name.strip()).strip()


def find_package(package_name: str, packages: Iterable[GamingPackageSchema]) -> Optional[GamingPackageSchema]:
    wanted = strip_package_prefix(package_name).lower()
    for package in packages:
        if package.name.strip().lower() == wanted:
            return package
    return None


def _embedded_names(line_name: str) -> set:
    names = set()
    for group in _PARENTHESIZED.findall(line_name):
        names.update(n.strip().lower() for n in group.split(",") if n.strip())
    return names


def is_already_itemized(station: StationSchema, items: Sequence[BillItemSchema]) -> bool:
    member_names = {m.name.strip().lower() for m in station.members}
    package_name = (station.package_name or "").strip().lower()
    for item in items:
        if item.kind in SESSION_RESERVED_KINDS:
            return True
        if member_names & _embedded_names(item.name):
            return True
        if item.name.strip().lower() == package_name:
            return True
    return False


def initial_package_price(
    station: StationSchema,
    items: Sequence[BillItemSchema],
    packages: Iterable[GamingPackageSchema],
) -> float:
    """Price of the session's starting package, charged once unless already on the bill."""
    package_name = station.package_name
    if not package_name or package_name in (WALK_IN_ORDER, MIXED_SESSION):
        return 0.0
    if package_name.startswith(RECHARGE_PREFIX):
        return 0.0
    if is_already_itemized(station, items):
        return 0.0
    package = find_package(package_name, packages)
    if package is None:
        return 0.0
    return package.price * instance_count(max(1, len(station.members)), package.player_capacity)


# ==== availability ====
def _within_window(start: Optional[str], end: Optional[str], now: datetime) -> bool:
    if not start or not end:
        return True
    current = now.strftime("%H:%M")
    if start <= end:
        return start <= current <= end
    # window spans midnight
    return current >= start or current <= end


def is_package_available(package: GamingPackageSchema, station_type: StationType, now: datetime) -> bool:
    if package.is_add_time_package or package.is_recharge_pack:
        return False
    if (station_type == StationType.table) != package.is_board_game_pass:
        return False
    if package.available_days and DAY_NAMES[now.weekday()] not in package.available_days:
        return False
    return _within_window(package.start_time, package.end_time, now)


def walk_in_packages(
    packages: Iterable[GamingPackageSchema],
    station_type: StationType,
    now: datetime,
) -> List[GamingPackageSchema]:
    """Packages offered at the counter right now, priority offers first."""
    available = [p for p in packages if is_package_available(p, station_type, now)]
    return sorted(available, key=lambda p: not p.is_priority_offer)
