from conftest import ALICE, FEE, INTERVAL
from vrf_lottery.lottery.event_manager import ALL_EVENTS, EventLog
from vrf_lottery.lottery.models import DRAW_REQUESTED, LOTTERY_ENTERED, LotteryEvent


def make_event(event_type, round_id=1):
    return LotteryEvent(event_type=event_type, round_id=round_id, message=event_type, event_time=10)


def test_feed_is_bounded_and_filterable():
    log = EventLog(feed_capacity=3)
    for round_id in range(5):
        log.record(make_event(LOTTERY_ENTERED, round_id))
    log.record(make_event(DRAW_REQUESTED))

    assert [e.round_id for e in log.get_live_feed()] == [3, 4, 1]
    assert len(log.get_live_feed(event_type=LOTTERY_ENTERED)) == 2
    assert len(log.get_live_feed(limit=1)) == 1


def test_listeners_receive_events_and_failures_are_contained():
    log = EventLog()
    seen = []

    def broken(event):
        raise RuntimeError("listener bug")

    log.add_listener(LOTTERY_ENTERED, broken)
    log.add_listener(LOTTERY_ENTERED, lambda event: seen.append(("typed", event.event_type)))
    log.add_listener(ALL_EVENTS, lambda event: seen.append(("all", event.event_type)))

    log.record(make_event(LOTTERY_ENTERED))
    log.record(make_event(DRAW_REQUESTED))

    assert seen == [("typed", LOTTERY_ENTERED), ("all", LOTTERY_ENTERED), ("all", DRAW_REQUESTED)]


def test_engine_events_carry_audit_details(engine, clock):
    engine.enter(ALICE, FEE)
    clock.advance(INTERVAL)
    request_id = engine.start_drawing()

    entered, requested = engine.events.get_live_feed()
    assert entered.details == {"player": ALICE, "amount": FEE, "pot": FEE}
    assert requested.details["request_id"] == request_id
    assert requested.get_item_id() == f"1-{clock.now}-{DRAW_REQUESTED}"
