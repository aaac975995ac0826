from datetime import timedelta

import pytest

from pixelperks.domain import settlement_rules
from pixelperks.domain.settlement_rules import SettlementError
from pixelperks.models.schema_models import (
    BillItemSchema,
    DebtType,
    MemberTier,
    ParticipantStatus,
    PaymentMethod,
    SettingsSchema,
)


def _item(name, price, quantity=1, **extra):
    return BillItemSchema(item_id=name, name=name, unit_price=price, quantity=quantity, **extra)


def test_split_subtotals_by_line_kind():
    items = [
        _item("Cold Coffee", 90.0, 2),
        _item("Solo Hour (Alice)", 100.0),
        _item("Time: Extra 30 (Alice)", 60.0),
        _item("Buy Recharge: 5 Hour Pack (Bob)", 500.0),
        _item("Recharge: 10 Hour Pack", 0.0),
    ]
    assert settlement_rules.split_subtotals(items) == (280.0, 560.0)


def test_compute_totals_clamps_discount_to_food(make_station, make_participant, make_package):
    station = make_station(package_name="Solo Hour", members=[make_participant()])
    items = [_item("Fries", 100.0), _item("Time: Solo Hour (Alice)", 100.0)]

    totals = settlement_rules.compute_totals(station, items, 500.0, [make_package("Solo Hour")])

    assert totals.discount == 100.0
    assert totals.initial_package_price == 0
    assert totals.total == 100.0


def test_compute_totals_adds_initial_package(make_station, make_participant, make_package):
    station = make_station(package_name="Solo Hour", members=[make_participant()])
    totals = settlement_rules.compute_totals(station, [_item("Fries", 80.0)], 30.0, [make_package("Solo Hour", price=100.0)])
    assert totals.initial_package_price == 100.0
    assert totals.total == 150.0


def test_cash_and_upi_record_full_amount(make_station):
    station = make_station()
    assert settlement_rules.validate_payment(station, 250.0, PaymentMethod.cash).cash_amount == 250.0
    assert settlement_rules.validate_payment(station, 250.0, PaymentMethod.upi).upi_amount == 250.0


def test_split_within_tolerance_is_accepted(make_station):
    payment = settlement_rules.validate_payment(
        make_station(), 500.0, PaymentMethod.split, cash_amount=300.0, upi_amount=199.95
    )
    assert payment.cash_amount == 300.0
    assert payment.upi_amount == 199.95


def test_split_mismatch_is_rejected(make_station):
    with pytest.raises(SettlementError):
        settlement_rules.validate_payment(make_station(), 500.0, PaymentMethod.split, cash_amount=300.0, upi_amount=150.0)


def test_recharge_payment_needs_zero_total(make_station):
    assert settlement_rules.validate_payment(make_station(), 0.0, PaymentMethod.recharge).cash_amount == 0
    with pytest.raises(SettlementError):
        settlement_rules.validate_payment(make_station(), 10.0, PaymentMethod.recharge)


def test_pending_shortfall_becomes_receivable(make_station, make_participant):
    station = make_station(members=[make_participant("guest-1", "Gus"), make_participant("m-1", "Alice")])
    payment = settlement_rules.validate_payment(
        station, 500.0, PaymentMethod.pending, paid_now=200.0, contact_phone="98765"
    )
    assert payment.cash_amount == 200.0
    assert payment.debt.debt_type == DebtType.receivable
    assert payment.debt.amount == 300.0
    assert payment.debt.member_id == "m-1"
    assert payment.debt.contact_name == "Alice"


def test_pending_overpayment_becomes_payable(make_station, make_participant):
    station = make_station(members=[make_participant("m-1", "Alice")])
    payment = settlement_rules.validate_payment(
        station, 300.0, PaymentMethod.pending, paid_now=500.0, contact_name="Alice's Dad"
    )
    assert payment.debt.debt_type == DebtType.payable
    assert payment.debt.amount == 200.0
    assert payment.debt.contact_name == "Alice's Dad"


def test_pending_for_guests_needs_contact(make_station, make_participant):
    station = make_station(members=[make_participant("guest-1", "Gus")])
    with pytest.raises(SettlementError):
        settlement_rules.validate_payment(station, 300.0, PaymentMethod.pending, paid_now=100.0)
    settled = settlement_rules.validate_payment(station, 300.0, PaymentMethod.pending, paid_now=300.0)
    assert settled.debt is None


def test_plan_recharge_debits(make_station, make_participant, now):
    station = make_station(
        members=[
            make_participant("m-1", "Alice", recharge_id="pool"),
            make_participant("m-2", "Bob", recharge_id="r-9"),
            make_participant("m-3", "Cat", is_new_recharge=True, package_id="pkg"),
            make_participant("m-4", "Dan", recharge_id="pool", status=ParticipantStatus.finished),
            make_participant("guest-1", "Gus", recharge_id="pool"),
            make_participant("m-5", "Eve"),
        ]
    )
    debits = settlement_rules.plan_recharge_debits(station, now + timedelta(minutes=30))

    assert [(d.member_id, d.recharge_id, d.purchase_package_id, d.seconds) for d in debits] == [
        ("m-1", "pool", None, 1800),
        ("m-2", "r-9", None, 1800),
        ("m-3", None, "pkg", 1800),
    ]


def test_fair_share_counts_guests():
    assert settlement_rules.bill_share(300.0, 3) == 100.0
    assert settlement_rules.bill_share(300.0, 0) == 0.0


def test_gold_member_crosses_level_boundary(make_member):
    member = make_member(tier=MemberTier.gold, xp=950, level=1, points=20, total_spent=1000.0)
    settings = SettingsSchema(xp_per_rupee=1, xp_per_level=1000, points_per_level_up=100)

    grant = settlement_rules.grant_rewards(member, 60.0, settings)

    assert grant.xp_gained == 120
    assert grant.member.xp == 1070
    assert grant.member.level == 2
    assert grant.member.points == 120
    assert grant.member.total_spent == 1060.0
    assert grant.leveled_up


def test_green_member_xp_is_floored(make_member):
    member = make_member(tier=MemberTier.green)
    grant = settlement_rules.grant_rewards(member, 33.7, SettingsSchema())
    # floor(33.7) = 33, floor(33 * 1.5) = 49
    assert grant.xp_gained == 49
    assert grant.member.level == 1
    assert not grant.leveled_up


def test_max_level_is_not_exceeded(make_member):
    member = make_member(tier=MemberTier.red, xp=9990, level=10)
    grant = settlement_rules.grant_rewards(member, 100.0, SettingsSchema())
    assert grant.member.level == 10
    assert grant.member.points == 0


def test_revert_rewards_floors_at_zero(make_member):
    member = make_member(xp=50, total_spent=20.0, level=3, points=200)
    reverted = settlement_rules.revert_rewards(member, 100.0, 80)
    assert reverted.xp == 0
    assert reverted.total_spent == 0.0
    assert reverted.level == 3
    assert reverted.points == 200
