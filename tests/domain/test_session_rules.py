from datetime import timedelta

import pytest

from pixelperks.domain import session_rules, time_model
from pixelperks.domain.session_rules import SessionRuleError
from pixelperks.models.schema_models import (
    BillItemSchema,
    ParticipantStatus,
    SessionParticipantSchema,
    StationStatus,
    StationType,
)


def _planned(participant_id, name, seconds=None, **extra):
    return SessionParticipantSchema(participant_id=participant_id, name=name, allotted_seconds=seconds, **extra)


@pytest.fixture
def live_station(make_station, now):
    station = make_station()
    players = [_planned("a", "Alice", 3600), _planned("b", "Bob", 1800)]
    return session_rules.start_session(station, players, "Solo Hour", [], now)


def _member(station, participant_id):
    return next(p for p in station.members if p.participant_id == participant_id)


def test_start_session_sets_times_and_label(make_station, now):
    station = session_rules.start_session(make_station(), [_planned("a", "Alice", 3600)], "Solo Hour", [], now)

    assert station.status == StationStatus.in_use
    assert station.start_time == now
    assert station.end_time == now + timedelta(seconds=3600)
    assert station.package_name == "Solo Hour"
    assert _member(station, "a").status == ParticipantStatus.active


def test_start_session_with_several_players_is_mixed(live_station, now):
    assert live_station.package_name == "Mixed Session"
    assert live_station.end_time == now + timedelta(seconds=3600)


def test_zero_duration_means_no_timer(make_station, now):
    station = session_rules.start_session(make_station(), [_planned("a", "Alice", 0)], None, [], now)
    assert _member(station, "a").end_time is None
    assert station.end_time is None


def test_start_session_preconditions(make_station, live_station, now):
    with pytest.raises(SessionRuleError):
        session_rules.start_session(live_station, [_planned("c", "Cat", 60)], None, [], now)
    with pytest.raises(SessionRuleError):
        session_rules.start_session(make_station(), [], None, [], now)
    with pytest.raises(SessionRuleError):
        five = [_planned(str(i), f"P{i}", 60) for i in range(5)]
        session_rules.start_session(make_station(), five, None, [], now)
    with pytest.raises(SessionRuleError):
        session_rules.start_session(make_station(), [_planned("a", "A", 60), _planned("a", "A", 60)], None, [], now)


def test_table_allows_eight_players(make_station, now):
    eight = [_planned(str(i), f"P{i}", 60) for i in range(8)]
    station = session_rules.start_session(make_station(StationType.table), eight, None, [], now)
    assert len(station.members) == 8


def test_walk_in_order_has_no_timers(make_station, now):
    station = session_rules.start_walk_in_order(make_station(), [_planned("g", "Guest", 3600)], now)
    assert station.package_name == "Walk-in Order"
    assert station.start_time is None and station.end_time is None
    assert not _member(station, "g").has_timer


def test_join_session_extends_station_end(live_station, now):
    item = BillItemSchema(item_id="p", name="Solo Hour (Cat)", unit_price=100.0)
    joined_at = now + timedelta(minutes=10)
    station = session_rules.join_session(live_station, _planned("c", "Cat", 7200), item, joined_at)

    assert _member(station, "c").end_time == joined_at + timedelta(seconds=7200)
    assert station.end_time == joined_at + timedelta(seconds=7200)
    assert station.current_bill == [item]


def test_join_paused_station_freezes_newcomer(live_station, now):
    paused = session_rules.toggle_station_timer(live_station, now)
    station = session_rules.join_session(paused, _planned("c", "Cat", 600), None, now)

    cat = _member(station, "c")
    assert cat.status == ParticipantStatus.paused
    assert cat.remaining_time_on_pause == 600
    assert cat.end_time is None


def test_join_rejects_duplicates_and_idle_station(live_station, make_station, now):
    with pytest.raises(SessionRuleError):
        session_rules.join_session(live_station, _planned("a", "Alice", 60), None, now)
    with pytest.raises(SessionRuleError):
        session_rules.join_session(make_station(), _planned("c", "Cat", 60), None, now)


def test_stop_participant_debits_played_time(make_station, now):
    players = [_planned("m-1", "Alice", 3600, recharge_id="pool"), _planned("guest-1", "Gus", 3600)]
    station = session_rules.start_session(make_station(), players, None, [], now)
    stopped_at = now + timedelta(minutes=20)

    outcome = session_rules.stop_participant(station, "m-1", stopped_at)

    assert outcome.played_seconds == 1200
    assert outcome.debit.recharge_id == "pool"
    assert outcome.debit.seconds == 1200
    alice = _member(outcome.station, "m-1")
    assert alice.status == ParticipantStatus.finished
    assert alice.end_time == stopped_at
    assert not outcome.checkout_required

    last = session_rules.stop_participant(outcome.station, "guest-1", stopped_at)
    assert last.debit is None
    assert last.checkout_required
    assert last.station.end_time is None


def test_stop_new_purchase_produces_purchase_debit(make_station, now):
    player = _planned("m-1", "Alice", 3600, is_new_recharge=True, package_id="pkg-1")
    station = session_rules.start_session(make_station(), [player], None, [], now)

    outcome = session_rules.stop_participant(station, "m-1", now + timedelta(seconds=90))

    assert outcome.debit.purchase_package_id == "pkg-1"
    assert outcome.debit.seconds == 90


def test_stop_while_paused_uses_frozen_remaining(live_station, now):
    paused = session_rules.toggle_station_timer(live_station, now + timedelta(seconds=600))
    outcome = session_rules.stop_participant(paused, "a", now + timedelta(hours=3))
    assert outcome.played_seconds == 600


def test_stop_finished_player_is_rejected(live_station, now):
    outcome = session_rules.stop_participant(live_station, "a", now)
    with pytest.raises(SessionRuleError):
        session_rules.stop_participant(outcome.station, "a", now)
    with pytest.raises(SessionRuleError):
        session_rules.stop_participant(live_station, "nobody", now)


def test_station_pause_and_resume_conserve_time(live_station, now):
    paused_at = now + timedelta(seconds=300)
    paused = session_rules.toggle_station_timer(live_station, paused_at)

    assert paused.status == StationStatus.paused
    assert paused.end_time is None
    assert paused.remaining_time_on_pause == 3300
    assert [p.remaining_time_on_pause for p in paused.members] == [3300, 1500]

    resumed_at = paused_at + timedelta(hours=1)
    resumed = session_rules.toggle_station_timer(paused, resumed_at)
    assert resumed.status == StationStatus.in_use
    assert resumed.remaining_time_on_pause is None
    assert [time_model.remaining(p, resumed_at) for p in resumed.members] == [3300, 1500]
    assert resumed.end_time == resumed_at + timedelta(seconds=3300)


def test_toggle_idle_station_is_rejected(make_station, now):
    with pytest.raises(SessionRuleError):
        session_rules.toggle_station_timer(make_station(), now)


def test_toggle_player_timer(live_station, now):
    paused = session_rules.toggle_player_timer(live_station, "a", now + timedelta(seconds=60))
    assert _member(paused, "a").remaining_time_on_pause == 3540
    assert paused.end_time == now + timedelta(seconds=1800)

    resumed = session_rules.toggle_player_timer(paused, "a", now + timedelta(seconds=600))
    assert time_model.remaining(_member(resumed, "a"), now + timedelta(seconds=600)) == 3540


def test_toggle_player_rejected_while_station_paused(live_station, now):
    paused = session_rules.toggle_station_timer(live_station, now)
    with pytest.raises(SessionRuleError):
        session_rules.toggle_player_timer(paused, "a", now)


def test_toggle_player_without_timer_is_rejected(make_station, now):
    station = session_rules.start_walk_in_order(make_station(), [_planned("g", "Guest")], now)
    with pytest.raises(SessionRuleError):
        session_rules.toggle_player_timer(station, "g", now)


def test_add_time_running_and_paused(live_station, now):
    extended = session_rules.add_time(live_station, ["b"], 600, [], now)
    assert _member(extended, "b").end_time == now + timedelta(seconds=2400)
    assert _member(extended, "b").allotted_seconds == 2400

    paused = session_rules.toggle_player_timer(live_station, "b", now)
    extended = session_rules.add_time(paused, ["b"], 600, [], now)
    assert _member(extended, "b").remaining_time_on_pause == 2400


def test_add_time_restarts_finished_player_from_now(live_station, now):
    stopped = session_rules.stop_participant(live_station, "b", now + timedelta(seconds=100)).station
    later = now + timedelta(hours=2)

    revived = session_rules.add_time(stopped, ["b"], 900, [], later)

    bob = _member(revived, "b")
    assert bob.status == ParticipantStatus.active
    assert bob.start_time == later
    assert bob.end_time == later + timedelta(seconds=900)
    assert time_model.played_seconds(bob, later) == 0


def test_add_time_on_paused_station_revives_frozen(live_station, now):
    stopped = session_rules.stop_participant(live_station, "b", now).station
    paused = session_rules.toggle_station_timer(stopped, now)

    revived = session_rules.add_time(paused, ["b"], 900, [], now + timedelta(minutes=5))

    bob = _member(revived, "b")
    assert bob.status == ParticipantStatus.paused
    assert bob.remaining_time_on_pause == 900
    assert revived.remaining_time_on_pause == 3600


def test_add_time_appends_items_and_validates(live_station, now):
    item = BillItemSchema(item_id="t", name="Time: Extra 30 (Alice)", unit_price=60.0)
    extended = session_rules.add_time(live_station, ["a"], 1800, [item], now)
    assert extended.current_bill == [item]
    with pytest.raises(SessionRuleError):
        session_rules.add_time(live_station, [], 1800, [], now)
    with pytest.raises(SessionRuleError):
        session_rules.add_time(live_station, ["a"], 0, [], now)


def test_reduce_time_is_floored_at_zero(live_station, now):
    reduced = session_rules.reduce_time(live_station, ["b"], 600, now)
    assert _member(reduced, "b").end_time == now + timedelta(seconds=1200)

    drained = session_rules.reduce_time(live_station, ["b"], 99999, now)
    bob = _member(drained, "b")
    assert time_model.remaining(bob, now) == 0
    assert bob.end_time == now
    assert time_model.played_seconds(bob, now) == 0

    paused = session_rules.toggle_station_timer(live_station, now)
    reduced = session_rules.reduce_time(paused, ["a", "b"], 2000, now)
    assert [p.remaining_time_on_pause for p in reduced.members] == [1600, 0]
    assert reduced.remaining_time_on_pause == 1600


def test_move_session(live_station, make_station):
    target = make_station(name="PS5-2")
    source, moved = session_rules.move_session(live_station, target)

    assert source.status == StationStatus.available
    assert source.members == [] and source.end_time is None
    assert moved.station_id == target.station_id
    assert moved.members == live_station.members
    assert moved.end_time == live_station.end_time


def test_move_session_preconditions(live_station, make_station, now):
    with pytest.raises(SessionRuleError):
        session_rules.move_session(live_station, live_station)
    busy = session_rules.start_session(make_station(name="PS5-3"), [_planned("z", "Zed", 60)], None, [], now)
    with pytest.raises(SessionRuleError):
        session_rules.move_session(live_station, busy)
    crowd = session_rules.start_session(
        make_station(StationType.table, name="Table-1"),
        [_planned(str(i), f"P{i}", 60) for i in range(6)],
        None,
        [],
        now,
    )
    with pytest.raises(SessionRuleError):
        session_rules.move_session(crowd, make_station(name="PS5-4"))


def test_save_bill_floors_discount(live_station):
    item = BillItemSchema(item_id="f", name="Fries", unit_price=80.0, quantity=2)
    station = session_rules.save_bill(live_station, [item], -5)
    assert station.current_bill == [item]
    assert station.discount == 0.0


def test_purchase_is_delivered_even_without_play(make_station, now):
    player = _planned("m-1", "Alice", 3600, is_new_recharge=True, package_id="pkg-1")
    station = session_rules.start_session(make_station(), [player], None, [], now)

    outcome = session_rules.stop_participant(station, "m-1", now)

    assert outcome.debit.purchase_package_id == "pkg-1"
    assert outcome.debit.seconds == 0


def test_adopted_pack_is_debited_after_more_time(make_station, now):
    player = _planned("m-1", "Alice", 3600, is_new_recharge=True, package_id="pkg-1")
    station = session_rules.start_session(make_station(), [player], None, [], now)
    stopped = session_rules.stop_participant(station, "m-1", now + timedelta(minutes=20)).station

    adopted = session_rules.adopt_recharge(stopped, "m-1", "r-new")
    alice = _member(adopted, "m-1")
    assert alice.recharge_id == "r-new"
    assert not alice.is_new_recharge

    revived = session_rules.add_time(adopted, ["m-1"], 1800, [], now + timedelta(minutes=21))
    outcome = session_rules.stop_participant(revived, "m-1", now + timedelta(minutes=31))

    assert outcome.debit.purchase_package_id is None
    assert outcome.debit.recharge_id == "r-new"
    assert outcome.debit.seconds == 600


def test_group_on_one_package_keeps_its_label(make_station, now):
    same = [_planned("a", "Ann", 3600, package_id="duo"), _planned("b", "Ben", 3600, package_id="duo")]
    assert session_rules.start_session(make_station(), same, "Duo Pack", [], now).package_name == "Duo Pack"

    mixed = [_planned("a", "Ann", 3600, package_id="duo"), _planned("b", "Ben", 3600, package_id="solo")]
    assert session_rules.start_session(make_station(), mixed, "Duo Pack", [], now).package_name == "Mixed Session"

    pooled = [_planned("a", "Ann", 3600, package_id="duo"), _planned("m", "Mia", 3600, package_id="duo", recharge_id="pool")]
    assert session_rules.start_session(make_station(), pooled, "Duo Pack", [], now).package_name == "Mixed Session"
