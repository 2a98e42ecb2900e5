import pytest
from fastapi.testclient import TestClient

from armada.api import get_coordinator
from armada.main import app

from conftest import SHIP_CELLS


@pytest.fixture()
def client(coordinator):
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    yield TestClient(app)
    app.dependency_overrides.clear()


def _as(player):
    return {"X-Player-Id": player}


def _start(client, alice, bob):
    res = client.post("/api/v1/matches", json={"board_size": 8, "ship_target": 10}, headers=_as("alice"))
    assert res.status_code == 200
    match_id = res.json()["match_id"]

    assert client.post(f"/api/v1/matches/{match_id}/join", headers=_as("bob")).status_code == 200
    assert client.post(f"/api/v1/matches/{match_id}/stake/propose", json={"amount": "5"}, headers=_as("alice")).status_code == 200
    assert client.post(f"/api/v1/matches/{match_id}/stake/accept", headers=_as("bob")).status_code == 200
    for player in ("alice", "bob"):
        res = client.post(f"/api/v1/matches/{match_id}/stake/deposit", json={"amount": "5"}, headers=_as(player))
        assert res.status_code == 200
    client.post(f"/api/v1/matches/{match_id}/commitment", json={"root": alice.root}, headers=_as("alice"))
    res = client.post(f"/api/v1/matches/{match_id}/commitment", json={"root": bob.root}, headers=_as("bob"))
    assert res.json()["events"][-1]["event"] == "match_started"
    return match_id


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"
    assert res.headers["X-Content-Type-Options"] == "nosniff"


def test_status(client):
    data = client.get("/api/v1/status").json()
    assert data["server"] == "online"
    assert "joinable_matches" in data
    assert "escrow" in data


def test_open_matches_and_join_any(client):
    client.post("/api/v1/matches", json={"board_size": 8, "ship_target": 10}, headers=_as("alice"))
    open_matches = client.get("/api/v1/matches/open").json()["matches"]
    assert [m["creator"] for m in open_matches] == ["alice"]

    res = client.post("/api/v1/matches/join-any", headers=_as("bob"))
    assert res.status_code == 200
    assert res.json()["events"][0]["event"] == "players_joined"
    assert client.get("/api/v1/matches/open").json()["matches"] == []


def test_attack_and_proof_over_http(client, coordinator, alice, bob):
    match_id = _start(client, alice, bob)
    row, col = SHIP_CELLS[0]

    res = client.post(f"/api/v1/matches/{match_id}/attack", json={"row": row, "col": col}, headers=_as("alice"))
    assert res.json()["events"][-1]["event"] == "attack_declared"

    proof = bob.answer_attack(row, col).to_dict()
    res = client.post(f"/api/v1/matches/{match_id}/proof", json=proof, headers=_as("bob"))
    assert res.status_code == 200
    result = res.json()["events"][0]
    assert result["event"] == "proof_result"
    assert result["valid"] is True
    assert result["ships_remaining"] == 9

    view = client.get(f"/api/v1/matches/{match_id}").json()
    assert view["ships_remaining_b"] == 9
    assert view["turn_holder"] == "bob"


def test_forged_proof_over_http_finishes_match(client, escrow, alice, bob):
    match_id = _start(client, alice, bob)
    row, col = SHIP_CELLS[0]
    client.post(f"/api/v1/matches/{match_id}/attack", json={"row": row, "col": col}, headers=_as("alice"))

    proof = bob.answer_attack(row, col).to_dict()
    proof["claimed_value"] = 0
    events = client.post(f"/api/v1/matches/{match_id}/proof", json=proof, headers=_as("bob")).json()["events"]

    assert events[-1]["event"] == "winner_declared"
    assert events[-1]["cause"] == "cheater detected (proof mismatch)"
    assert events[-1]["payout"] == "10"
    assert client.get(f"/api/v1/matches/{match_id}").status_code == 404


def test_mutating_requests_advance_clock(client, coordinator):
    before = coordinator.clock.now()
    client.post("/api/v1/matches", json={}, headers=_as("alice"))
    assert coordinator.clock.now() == before + 1


def test_domain_errors_are_mapped(client, alice, bob):
    match_id = _start(client, alice, bob)

    res = client.post(f"/api/v1/matches/{match_id}/attack", json={"row": 0, "col": 0}, headers=_as("bob"))
    assert res.status_code == 403
    assert res.json()["code"] == "NOT_AUTHORIZED"

    res = client.post(f"/api/v1/matches/{match_id}/accuse", headers=_as("alice"))
    assert res.status_code == 409
    assert res.json()["code"] == "INVALID_PHASE"

    res = client.post(f"/api/v1/matches/{match_id}/attack", json={"row": 9, "col": 0}, headers=_as("alice"))
    assert res.status_code == 422
    assert res.json()["code"] == "INVALID_ARGUMENT"

    assert client.get("/api/v1/matches/999").status_code == 404


def test_player_header_required(client):
    res = client.post("/api/v1/matches", json={})
    assert res.status_code == 422


def test_rejected_requests_do_not_advance_clock(client, coordinator, alice, bob):
    match_id = _start(client, alice, bob)
    before = coordinator.clock.now()

    for _ in range(3):
        res = client.post(f"/api/v1/matches/{match_id}/attack", json={"row": 0, "col": 0}, headers=_as("bob"))
        assert res.status_code == 403
    assert coordinator.clock.now() == before


def test_malformed_digest_over_http(client, alice, bob):
    match_id = _start(client, alice, bob)
    row, col = SHIP_CELLS[0]
    client.post(f"/api/v1/matches/{match_id}/attack", json={"row": row, "col": col}, headers=_as("alice"))

    proof = bob.answer_attack(row, col).to_dict()
    proof["sibling_path"][0] = "-" + "a" * 63
    res = client.post(f"/api/v1/matches/{match_id}/proof", json=proof, headers=_as("bob"))
    assert res.status_code == 422
    assert res.json()["code"] == "INVALID_ARGUMENT"
