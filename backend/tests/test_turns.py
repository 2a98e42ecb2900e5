import pytest

from armada.errors import InvalidArgumentError, InvalidPhaseError, NotAuthorizedError
from armada.events import AttackDeclared, ProofResult
from armada.match_state import Match, MatchPhase

from conftest import SHIP_CELLS, WATER_CELLS


def test_only_turn_holder_attacks(coordinator, started_match):
    with pytest.raises(NotAuthorizedError):
        coordinator.declare_attack(started_match, "bob", 0, 0)
    with pytest.raises(NotAuthorizedError):
        coordinator.declare_attack(started_match, "mallory", 0, 0)


def test_turn_passes_on_declaration(coordinator, started_match):
    events = coordinator.declare_attack(started_match, "alice", 7, 7)

    assert isinstance(events[-1], AttackDeclared)
    view = coordinator.get_match(started_match)
    assert view["turn_holder"] == "bob"
    assert view["phase"] == MatchPhase.IN_PROGRESS.value
    assert view["pending_attacks"] == {"bob": [7, 7]}

    # The attacker never regains the turn until the opponent attacks
    with pytest.raises(NotAuthorizedError):
        coordinator.declare_attack(started_match, "alice", 6, 6)


def test_defender_may_attack_before_proving(coordinator, started_match, alice, bob, answer):
    coordinator.declare_attack(started_match, "alice", 7, 7)
    coordinator.declare_attack(started_match, "bob", 6, 6)

    # alice holds the turn again, but bob still owes the first proof
    with pytest.raises(InvalidPhaseError):
        coordinator.declare_attack(started_match, "alice", 5, 5)

    answer(started_match, bob, 7, 7)
    answer(started_match, alice, 6, 6)
    coordinator.declare_attack(started_match, "alice", 5, 5)
    assert coordinator.get_match(started_match)["turn_holder"] == "bob"


def test_attack_coordinates_validated(coordinator, started_match):
    with pytest.raises(InvalidArgumentError):
        coordinator.declare_attack(started_match, "alice", 8, 0)
    with pytest.raises(InvalidArgumentError):
        coordinator.declare_attack(started_match, "alice", 0, -1)
    assert coordinator.get_match(started_match)["turn_holder"] == "alice"


def test_attacker_may_strike_while_owing_a_proof(coordinator, started_match, bob, answer):
    coordinator.declare_attack(started_match, "alice", 5, 5)
    answer(started_match, bob, 5, 5)
    coordinator.declare_attack(started_match, "bob", 5, 5)

    # alice owes the proof for (5, 5) yet holds the turn
    coordinator.declare_attack(started_match, "alice", 6, 6)
    assert coordinator.get_match(started_match)["pending_attacks"] == {"alice": [5, 5], "bob": [6, 6]}


def test_revealed_cell_cannot_be_attacked_twice(coordinator, started_match, alice, bob, answer):
    coordinator.declare_attack(started_match, "alice", 5, 5)
    answer(started_match, bob, 5, 5)
    coordinator.declare_attack(started_match, "bob", 5, 5)
    answer(started_match, alice, 5, 5)

    with pytest.raises(InvalidArgumentError):
        coordinator.declare_attack(started_match, "alice", 5, 5)


def test_proof_without_pending_attack(coordinator, started_match, bob, answer):
    with pytest.raises(InvalidPhaseError):
        answer(started_match, bob, 0, 0)


def test_claimed_value_must_be_binary(coordinator, started_match, bob):
    coordinator.declare_attack(started_match, "alice", 0, 0)
    proof = bob.answer_attack(0, 0)
    with pytest.raises(InvalidArgumentError):
        coordinator.submit_proof(started_match, "bob", 2, proof.leaf, proof.siblings, proof.salt)
    # The attack is still pending after the rejected call
    assert coordinator.get_match(started_match)["pending_attacks"] == {"bob": [0, 0]}


def test_hit_and_miss_bookkeeping(coordinator, started_match, alice, bob, answer):
    coordinator.declare_attack(started_match, "alice", *SHIP_CELLS[0])
    hit = answer(started_match, bob, *SHIP_CELLS[0])[0]
    coordinator.declare_attack(started_match, "bob", *WATER_CELLS[0])
    miss = answer(started_match, alice, *WATER_CELLS[0])[0]

    assert isinstance(hit, ProofResult) and hit.valid and hit.result == 1
    assert hit.ships_remaining == 9
    assert miss.valid and miss.result == 0
    assert miss.ships_remaining == 10

    view = coordinator.get_match(started_match)
    assert view["ships_remaining_b"] == 9
    assert view["ships_remaining_a"] == 10


def test_ship_counter_never_negative():
    match = Match(match_id=0, player_a="alice", board_size=2, ship_target=1, player_b="bob")
    assert match.sink_ship_cell("bob") == 0
    assert match.sink_ship_cell("bob") == 0
    assert match.ships_remaining_b == 0
    assert match.ships_remaining_a == 1
