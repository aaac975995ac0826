from datetime import timedelta

from pixelperks.domain import recharge_ledger
from pixelperks.domain.recharge_ledger import RechargeDebit


def _remaining(member):
    return {r.recharge_id: r.remaining_duration for r in member.recharges}


def test_active_balance_ignores_expired_and_empty(make_member, make_recharge, now):
    member = make_member(
        recharges=[
            make_recharge("a", remaining=600),
            make_recharge("b", remaining=1200, days_left=-1),
            make_recharge("c", remaining=0),
            make_recharge("d", remaining=300),
        ]
    )
    assert recharge_ledger.active_balance(member, now) == 900


def test_consume_pool_drains_soonest_expiring_first(make_member, make_recharge, now):
    member = make_member(
        recharges=[
            make_recharge("late", remaining=1200, days_left=5),
            make_recharge("soon", remaining=600, days_left=1),
        ]
    )
    updated, deducted = recharge_ledger.consume_pool(member, 900, now)

    assert deducted == 900
    assert _remaining(updated) == {"late": 900, "soon": 0}
    assert [r.recharge_id for r in updated.recharges] == ["late", "soon"]


def test_consume_pool_stops_when_balance_runs_out(make_member, make_recharge, now):
    member = make_member(
        recharges=[
            make_recharge("a", remaining=100),
            make_recharge("expired", remaining=5000, days_left=-2),
        ]
    )
    updated, deducted = recharge_ledger.consume_pool(member, 400, now)

    assert deducted == 100
    assert _remaining(updated) == {"a": 0, "expired": 5000}


def test_consume_specific_floors_at_zero(make_member, make_recharge):
    member = make_member(recharges=[make_recharge("a", remaining=100)])
    updated, found = recharge_ledger.consume_specific(member, "a", 500)
    assert found
    assert _remaining(updated) == {"a": 0}


def test_consume_specific_missing_pack_is_a_no_op(make_member, make_recharge):
    member = make_member(recharges=[make_recharge("a", remaining=100)])
    updated, found = recharge_ledger.consume_specific(member, "gone", 50)
    assert not found
    assert updated == member


def test_purchase_appends_pack_and_adds_spend(make_member, make_package, now):
    member = make_member(total_spent=50.0)
    package = make_package("10 Hour Pack", duration=36000, price=900.0, validity=60, is_recharge_pack=True)

    updated, recharge = recharge_ledger.purchase(member, package, now, "new")

    assert updated.total_spent == 950.0
    assert updated.recharges == [recharge]
    assert recharge.remaining_duration == recharge.total_duration == 36000
    assert recharge.expiry_date == now + timedelta(days=60)
    assert recharge.price_paid == 900.0


def test_apply_debit_buys_then_consumes(make_member, make_package, now):
    member = make_member()
    package = make_package("5 Hour Pack", duration=18000, price=500.0, is_recharge_pack=True)
    debit = RechargeDebit(member_id=str(member.member_id), seconds=1200, purchase_package_id=str(package.package_id))

    updated, found = recharge_ledger.apply_debit(member, debit, now, "fresh", package)

    assert found
    assert _remaining(updated) == {"fresh": 18000 - 1200}
    assert updated.total_spent == 500.0


def test_apply_debit_from_pool(make_member, make_recharge, now):
    member = make_member(recharges=[make_recharge("a", remaining=1000)])
    debit = RechargeDebit(member_id=str(member.member_id), seconds=400, recharge_id="pool")

    updated, found = recharge_ledger.apply_debit(member, debit, now, "unused")

    assert found
    assert _remaining(updated) == {"a": 600}
