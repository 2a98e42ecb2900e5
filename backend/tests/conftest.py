import os
import sys
from decimal import Decimal

import pytest

# Ensure the backend root (containing the `armada` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from armada.clock import LogicalClock  # noqa: E402
from armada.engine import MatchCoordinator  # noqa: E402
from armada.escrow import EscrowLedger  # noqa: E402
from armada.player import FleetCommander  # noqa: E402


STAKE = Decimal("5")
WINDOW = 5

# 8x8, 10 ship cells: a 5-cell ship on row 0 and another on row 3
SHIP_CELLS = [(0, c) for c in range(5)] + [(3, c) for c in range(2, 7)]

# Water cells on the 8x8 board used for filler attacks
WATER_CELLS = [(r, c) for r in range(5, 8) for c in range(8)]


def make_board(size=8, ships=SHIP_CELLS):
    board = [[0] * size for _ in range(size)]
    for row, col in ships:
        board[row][col] = 1
    return board


@pytest.fixture()
def escrow():
    return EscrowLedger()


@pytest.fixture()
def clock():
    return LogicalClock()


@pytest.fixture()
def coordinator(escrow, clock):
    return MatchCoordinator(escrow=escrow, clock=clock, accusation_window=WINDOW)


@pytest.fixture()
def alice():
    return FleetCommander("alice", make_board())


@pytest.fixture()
def bob():
    return FleetCommander("bob", make_board())


@pytest.fixture()
def funded_match(coordinator):
    """Match 8x8 / 10 ships with the stake agreed and both deposits held."""
    match_id = coordinator.create_match("alice", board_size=8, ship_target=10)
    coordinator.join_match(match_id, "bob")
    coordinator.propose_stake(match_id, "alice", STAKE)
    coordinator.accept_stake(match_id, "bob")
    coordinator.deposit_stake(match_id, "alice", STAKE)
    coordinator.deposit_stake(match_id, "bob", STAKE)
    return match_id


@pytest.fixture()
def started_match(coordinator, funded_match, alice, bob):
    coordinator.register_commitment(funded_match, "alice", alice.root)
    coordinator.register_commitment(funded_match, "bob", bob.root)
    return funded_match


@pytest.fixture()
def answer(coordinator):
    """Submit the defender's proof for (row, col); `claimed_value` overrides the honest value."""
    def _answer(match_id, fleet, row, col, claimed_value=None):
        proof = fleet.answer_attack(row, col)
        value = proof.value if claimed_value is None else claimed_value
        return coordinator.submit_proof(
            match_id, fleet.player_id, value, proof.leaf, proof.siblings, proof.salt
        )
    return _answer
