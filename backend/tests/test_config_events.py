import json
from decimal import Decimal

import pytest

from armada.clock import LogicalClock
from armada.config import ProtocolConfig, load_game_params
from armada.events import EventBus, StakeProposed, WinnerDeclared


def test_game_params_file(tmp_path):
    path = tmp_path / "bs-config.json"
    path.write_text(json.dumps({"gameParam": {"boardSize": 8, "numberOfShips": 10}}))

    assert load_game_params(str(path)) == {"board_size": 8, "ship_target": 10}


def test_unreadable_game_params_fall_back(tmp_path):
    params = load_game_params(str(tmp_path / "missing.json"))
    assert params == {"board_size": ProtocolConfig.BOARD_SIZE, "ship_target": ProtocolConfig.SHIP_TARGET}


def test_clock_is_monotonic():
    clock = LogicalClock(start=3)
    assert clock.tick() == 4
    assert clock.advance(5) == 9
    with pytest.raises(ValueError):
        clock.advance(-1)


def test_event_serialization():
    event = WinnerDeclared(match_id=3, winner="alice", loser="bob", cause="timeout", payout=Decimal("10"))
    assert event.to_dict() == {
        "event": "winner_declared",
        "match_id": 3,
        "winner": "alice",
        "loser": "bob",
        "cause": "timeout",
        "payout": "10",
        "detail": "",
    }


def test_bus_isolates_failing_subscribers():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(received.append)
    bus.publish(StakeProposed(match_id=1, proposer="alice", amount=Decimal("2")))

    assert len(received) == 1
    assert bus.for_match(1) == received
    assert bus.for_match(2) == []


def test_capture_collects_only_inside_block():
    bus = EventBus()
    bus.publish(StakeProposed(match_id=1, proposer="alice", amount=Decimal("1")))
    with bus.capture() as events:
        bus.publish(StakeProposed(match_id=1, proposer="bob", amount=Decimal("2")))
    bus.publish(StakeProposed(match_id=1, proposer="alice", amount=Decimal("3")))

    assert [e.proposer for e in events] == ["bob"]
