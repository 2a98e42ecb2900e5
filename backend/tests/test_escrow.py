from decimal import Decimal

import pytest

from armada.errors import EscrowError
from armada.escrow import Escrow, EscrowLedger


def test_hold_and_payout_balance():
    ledger = EscrowLedger()
    ledger.hold(1, "alice", Decimal("5"))
    ledger.hold(1, "bob", Decimal("5"))
    assert ledger.held(1) == Decimal("10")

    ledger.payout(1, "alice", Decimal("10"))

    assert ledger.held(1) == Decimal("0")
    assert [e.kind for e in ledger.entries] == ["HOLD", "HOLD", "PAYOUT"]
    assert ledger.get_summary()["matches_with_funds"] == 0


def test_payout_cannot_exceed_held_funds():
    ledger = EscrowLedger()
    ledger.hold(1, "alice", Decimal("5"))
    with pytest.raises(EscrowError):
        ledger.payout(1, "alice", Decimal("10"))
    with pytest.raises(EscrowError):
        ledger.payout(2, "alice", Decimal("1"))
    assert ledger.held(1) == Decimal("5")


def test_hold_must_be_positive():
    ledger = EscrowLedger()
    with pytest.raises(EscrowError):
        ledger.hold(1, "alice", Decimal("0"))


def test_hash_chain_verifies():
    ledger = EscrowLedger()
    ledger.hold(1, "alice", Decimal("5"))
    ledger.hold(1, "bob", Decimal("5"))
    ledger.payout(1, "bob", Decimal("10"))

    report = ledger.verify_all_entries()
    assert report["integrity_status"] == "OK"
    assert report["total_entries_verified"] == 3


def test_tampered_entry_is_reported():
    ledger = EscrowLedger()
    ledger.hold(1, "alice", Decimal("5"))
    ledger.hold(1, "bob", Decimal("5"))
    ledger.entries[0].amount = Decimal("50")

    report = ledger.verify_all_entries()
    assert report["integrity_status"] == "ALERT"
    assert report["broken_entries"] == [ledger.entries[0].entry_id]
    assert report["drift"] == {"1": "45"}


def test_escrow_interface_is_abstract():
    with pytest.raises(TypeError):
        Escrow()

    class HoldOnly(Escrow):
        def hold(self, match_id, player, amount):
            pass

    with pytest.raises(TypeError):
        HoldOnly()
