"""Checkout arithmetic: subtotals, payment reconciliation, fair share, XP.

Rule of thumb:
- OK: totals, validation, reward math on schema copies.
- Not OK: writing bills or members; the settlement service does that.
"""

import math
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from pixelperks.domain import time_model
from pixelperks.domain.pricing_rules import initial_package_price
from pixelperks.domain.recharge_ledger import RechargeDebit
from pixelperks.models.schema_models import (
    BillItemSchema,
    DebtType,
    GamingPackageSchema,
    LineKind,
    MemberSchema,
    MemberTier,
    PaymentMethod,
    SettingsSchema,
    StationSchema,
)

TIER_MULTIPLIERS = {
    MemberTier.red: 1.0,
    MemberTier.green: 1.5,
    MemberTier.gold: 2.0,
}

SPLIT_TOLERANCE = 0.1
ZERO_TOLERANCE = 0.01

TIME_KINDS = (LineKind.time_extension, LineKind.recharge_usage, LineKind.recharge_purchase)


class SettlementError(ValueError):
    """Checkout cannot go ahead with the given amounts."""


class SettlementTotals(BaseModel):
    food_subtotal: float
    time_subtotal: float
    initial_package_price: float
    discount: float
    total: float


class DebtDraft(BaseModel):
    debt_type: DebtType
    amount: float
    contact_name: str
    contact_phone: Optional[str] = None
    member_id: Optional[str] = None


class PaymentBreakdown(BaseModel):
    method: PaymentMethod
    cash_amount: float = 0.0
    upi_amount: float = 0.0
    debt: Optional[DebtDraft] = None


class RewardGrant(BaseModel):
    member: MemberSchema
    amount: float
    xp_gained: int
    leveled_up: bool


# ==== totals ====
def split_subtotals(items: Iterable[BillItemSchema]) -> Tuple[float, float]:
    """Return (food_subtotal, time_subtotal)."""
    food = 0.0
    timed = 0.0
    for item in items:
        if item.kind in TIME_KINDS:
            timed += item.line_total
        else:
            food += item.line_total
    return food, timed


def compute_totals(
    station: StationSchema,
    items: Sequence[BillItemSchema],
    discount: float,
    packages: Iterable[GamingPackageSchema],
) -> SettlementTotals:
    food, timed = split_subtotals(items)
    initial = initial_package_price(station, items, packages)
    applied_discount = min(max(0.0, discount), food)
    total = max(0.0, food + timed + initial - applied_discount)
    return SettlementTotals(
        food_subtotal=food,
        time_subtotal=timed,
        initial_package_price=initial,
        discount=applied_discount,
        total=total,
    )


# ==== payment ====
def _debtor(station: StationSchema) -> Tuple[Optional[str], Optional[str]]:
    """(member_id, name) of the first non-guest participant."""
    for participant in station.members:
        if not participant.is_guest:
            return participant.participant_id, participant.name
    return None, None


def validate_payment(
    station: StationSchema,
    total: float,
    method: PaymentMethod,
    cash_amount: float = 0.0,
    upi_amount: float = 0.0,
    paid_now: float = 0.0,
    contact_name: Optional[str] = None,
    contact_phone: Optional[str] = None,
) -> PaymentBreakdown:
    """Reconcile the collected amounts against the bill total.

    Raises:
        SettlementError: the amounts do not settle the bill
    """
    if method == PaymentMethod.cash:
        return PaymentBreakdown(method=method, cash_amount=total)
    if method == PaymentMethod.upi:
        return PaymentBreakdown(method=method, upi_amount=total)
    if method == PaymentMethod.recharge:
        if total > ZERO_TOLERANCE:
            raise SettlementError(f"Recharge settlement needs a zero total, got {total:.2f}")
        return PaymentBreakdown(method=method)
    if method == PaymentMethod.split:
        if cash_amount < 0 or upi_amount < 0:
            raise SettlementError("Split amounts cannot be negative")
        if abs(cash_amount + upi_amount - total) > SPLIT_TOLERANCE:
            raise SettlementError(
                f"Split amounts {cash_amount + upi_amount:.2f} do not match total {total:.2f}"
            )
        return PaymentBreakdown(method=method, cash_amount=cash_amount, upi_amount=upi_amount)

    # pending
    if paid_now < 0:
        raise SettlementError("Paid amount cannot be negative")
    member_id, member_name = _debtor(station)
    name = contact_name or member_name
    diff = total - paid_now
    debt = None
    if abs(diff) > ZERO_TOLERANCE:
        if not name:
            raise SettlementError("A contact name is needed to record a pending payment")
        debt = DebtDraft(
            debt_type=DebtType.receivable if diff > 0 else DebtType.payable,
            amount=abs(diff),
            contact_name=name,
            contact_phone=contact_phone,
            member_id=member_id,
        )
    return PaymentBreakdown(method=method, cash_amount=paid_now, debt=debt)


# ==== recharge debits ====
def plan_recharge_debits(station: StationSchema, now: datetime) -> List[RechargeDebit]:
    """Balance debits owed by participants still playing at checkout."""
    debits = []
    for participant in station.members:
        if participant.is_guest or participant.is_finished:
            continue
        seconds = time_model.played_seconds(participant, now)
        if participant.is_new_recharge and participant.package_id:
            debits.append(
                RechargeDebit(
                    member_id=participant.participant_id,
                    seconds=seconds,
                    purchase_package_id=participant.package_id,
                )
            )
        elif participant.recharge_id:
            debits.append(
                RechargeDebit(
                    member_id=participant.participant_id,
                    seconds=seconds,
                    recharge_id=participant.recharge_id,
                )
            )
    return debits


# ==== rewards ====
def bill_share(total: float, participant_count: int) -> float:
    """Per-head share of the bill; guests count towards the head count."""
    if participant_count <= 0:
        return 0.0
    return total / participant_count


def grant_rewards(member: MemberSchema, share: float, settings: SettingsSchema) -> RewardGrant:
    base_xp = math.floor(share * settings.xp_per_rupee)
    final_xp = math.floor(base_xp * TIER_MULTIPLIERS[member.tier])
    new_xp = member.xp + final_xp

    level = member.level
    points = member.points
    leveled_up = False
    if new_xp >= level * settings.xp_per_level and level < settings.max_levels:
        level += 1
        points += settings.points_per_level_up
        leveled_up = True

    updated = member.model_copy(
        update={
            "xp": new_xp,
            "level": level,
            "points": points,
            "total_spent": member.total_spent + share,
        }
    )
    return RewardGrant(member=updated, amount=share, xp_gained=final_xp, leveled_up=leveled_up)


def revert_rewards(member: MemberSchema, amount: float, xp_gained: int) -> MemberSchema:
    """Undo the spend and XP of one voided bill; level and points stay."""
    return member.model_copy(
        update={
            "total_spent": max(0.0, member.total_spent - amount),
            "xp": max(0, member.xp - xp_gained),
        }
    )
