"""Prepaid time balances ("recharges") owned by a member.

Balances are depleted either from one named pack or from the pool of all
active packs, soonest-expiring first.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from pydantic import BaseModel

from pixelperks.models.schema_models import (
    POOL_RECHARGE_ID,
    GamingPackageSchema,
    MemberRechargeSchema,
    MemberSchema,
)


class RechargeDebit(BaseModel):
    """Seconds to take from a member's balance when a participant stops or checks out."""

    member_id: str
    seconds: int
    recharge_id: Optional[str] = None
    purchase_package_id: Optional[str] = None

    @property
    def is_pool(self) -> bool:
        return self.recharge_id == POOL_RECHARGE_ID


def is_active(recharge: MemberRechargeSchema, now: datetime) -> bool:
    return recharge.expiry_date > now and recharge.remaining_duration > 0


def active_recharges(member: MemberSchema, now: datetime) -> List[MemberRechargeSchema]:
    """Active packs sorted by expiry, soonest first."""
    active = [r for r in member.recharges if is_active(r, now)]
    return sorted(active, key=lambda r: r.expiry_date)


def active_balance(member: MemberSchema, now: datetime) -> int:
    return sum(r.remaining_duration for r in member.recharges if is_active(r, now))


def consume_specific(member: MemberSchema, recharge_id: str, seconds: int) -> Tuple[MemberSchema, bool]:
    """Take seconds from one pack, floored at zero.

    Returns the updated member and whether the pack was found. A missing
    pack leaves the member untouched.
    """
    seconds = max(0, seconds)
    found = False
    recharges = []
    for recharge in member.recharges:
        if recharge.recharge_id == recharge_id:
            found = True
            recharge = recharge.model_copy(
                update={"remaining_duration": max(0, recharge.remaining_duration - seconds)}
            )
        recharges.append(recharge)
    return member.model_copy(update={"recharges": recharges}), found


def consume_pool(member: MemberSchema, seconds: int, now: datetime) -> Tuple[MemberSchema, int]:
    """Take seconds from the pool, draining the soonest-expiring packs first.

    Expired and empty packs are never touched. The member's pack order is
    preserved. Returns the updated member and the seconds actually deducted.
    """
    left = max(0, seconds)
    deductions = {}
    for recharge in active_recharges(member, now):
        if left <= 0:
            break
        deduct = min(recharge.remaining_duration, left)
        deductions[recharge.recharge_id] = deduct
        left -= deduct

    recharges = [
        r.model_copy(update={"remaining_duration": r.remaining_duration - deductions[r.recharge_id]})
        if r.recharge_id in deductions
        else r
        for r in member.recharges
    ]
    return member.model_copy(update={"recharges": recharges}), max(0, seconds) - left


def purchase(
    member: MemberSchema,
    package: GamingPackageSchema,
    now: datetime,
    recharge_id: str,
) -> Tuple[MemberSchema, MemberRechargeSchema]:
    """Append a freshly bought pack and count its price towards total spend."""
    recharge = MemberRechargeSchema(
        recharge_id=recharge_id,
        package_id=str(package.package_id),
        package_name=package.name,
        total_duration=package.duration,
        remaining_duration=package.duration,
        purchase_date=now,
        expiry_date=now + timedelta(days=package.validity),
        price_paid=package.price,
    )
    updated = member.model_copy(
        update={
            "recharges": [*member.recharges, recharge],
            "total_spent": member.total_spent + package.price,
        }
    )
    return updated, recharge


def apply_debit(
    member: MemberSchema,
    debit: RechargeDebit,
    now: datetime,
    new_recharge_id: str,
    package: Optional[GamingPackageSchema] = None,
) -> Tuple[MemberSchema, bool]:
    """Apply a debit as one step: buy first when requested, then consume.

    Returns the updated member and whether the targeted balance existed.
    """
    if debit.purchase_package_id is not None:
        if package is None:
            return member, False
        member, recharge = purchase(member, package, now, new_recharge_id)
        return consume_specific(member, recharge.recharge_id, debit.seconds)
    if debit.is_pool:
        member, _ = consume_pool(member, debit.seconds, now)
        return member, True
    return consume_specific(member, debit.recharge_id, debit.seconds)
