"""
=============================================================================
ARMADA - API REST de Partidas
=============================================================================
Adaptador HTTP delgado sobre MatchCoordinator. El jugador se identifica con
el header X-Player-Id. Cada petición que muta estado es una "transacción":
avanza el reloj lógico un bloque antes de ejecutarse.
=============================================================================
"""

from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field

from .engine import MatchCoordinator, match_coordinator
from .events import MatchEvent
from .websocket_handler import broadcast_events


router = APIRouter(prefix="/matches", tags=["Matches"])


def get_coordinator() -> MatchCoordinator:
    return match_coordinator


async def get_player_id(x_player_id: str = Header(..., alias="X-Player-Id", min_length=1)) -> str:
    return x_player_id


# =============================================================================
# SCHEMAS
# =============================================================================

class CreateMatchRequest(BaseModel):
    board_size: Optional[int] = Field(None, ge=1)
    ship_target: Optional[int] = Field(None, ge=1)


class StakeRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)


class CommitmentRequest(BaseModel):
    root: str


class AttackRequest(BaseModel):
    row: int = Field(..., ge=0)
    col: int = Field(..., ge=0)


class ProofRequest(BaseModel):
    claimed_value: int
    claimed_leaf: str
    sibling_path: List[str]
    salt: Union[int, str]


class AuditRequest(BaseModel):
    cells: List[int]


def _execute(coordinator: MatchCoordinator, operation: Callable, *args) -> Tuple[Any, List[MatchEvent]]:
    """
    Ejecuta una operación como transacción y captura sus eventos.

    Solo una operación aceptada produce un bloque: una petición rechazada no
    acerca el plazo de ninguna acusación.
    """
    with coordinator.events.capture() as events:
        result = operation(*args)
    coordinator.clock.tick()
    return result, events


def _response(events: List[MatchEvent], **extra) -> Dict[str, Any]:
    return {**extra, "events": [e.to_dict() for e in events]}


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("")
async def create_match(
    request: CreateMatchRequest,
    player_id: str = Depends(get_player_id),
    coordinator: MatchCoordinator = Depends(get_coordinator)
):
    match_id, events = _execute(
        coordinator, coordinator.create_match, player_id, request.board_size, request.ship_target
    )
    await broadcast_events(events)
    return _response(events, match_id=match_id)


@router.get("/open")
async def list_open_matches(coordinator: MatchCoordinator = Depends(get_coordinator)):
    return {"matches": coordinator.open_matches()}


@router.post("/join-any")
async def join_any_open_match(
    player_id: str = Depends(get_player_id),
    coordinator: MatchCoordinator = Depends(get_coordinator)
):
    match_id, events = _execute(coordinator, coordinator.join_any_open_match, player_id)
    await broadcast_events(events)
    return _response(events, match_id=match_id)


@router.get("/{match_id}")
async def get_match(match_id: int, coordinator: MatchCoordinator = Depends(get_coordinator)):
    return coordinator.get_match(match_id)


@router.post("/{match_id}/join")
async def join_match(
    match_id: int,
    player_id: str = Depends(get_player_id),
    coordinator: MatchCoordinator = Depends(get_coordinator)
):
    _, events = _execute(coordinator, coordinator.join_match, match_id, player_id)
    await broadcast_events(events)
    return _response(events, match_id=match_id)


@router.post("/{match_id}/stake/propose")
async def propose_stake(
    match_id: int,
    request: StakeRequest,
    player_id: str = Depends(get_player_id),
    coordinator: MatchCoordinator = Depends(get_coordinator)
):
    _, events = _execute(coordinator, coordinator.propose_stake, match_id, player_id, request.amount)
    await broadcast_events(events)
    return _response(events)


@router.post("/{match_id}/stake/accept")
async def accept_stake(
    match_id: int,
    player_id: str = Depends(get_player_id),
    coordinator: MatchCoordinator = Depends(get_coordinator)
):
    _, events = _execute(coordinator, coordinator.accept_stake, match_id, player_id)
    await broadcast_events(events)
    return _response(events)


@router.post("/{match_id}/stake/deposit")
async def deposit_stake(
    match_id: int,
    request: StakeRequest,
    player_id: str = Depends(get_player_id),
    coordinator: MatchCoordinator = Depends(get_coordinator)
):
    _, events = _execute(coordinator, coordinator.deposit_stake, match_id, player_id, request.amount)
    await broadcast_events(events)
    return _response(events)


@router.post("/{match_id}/commitment")
async def register_commitment(
    match_id: int,
    request: CommitmentRequest,
    player_id: str = Depends(get_player_id),
    coordinator: MatchCoordinator = Depends(get_coordinator)
):
    _, events = _execute(coordinator, coordinator.register_commitment, match_id, player_id, request.root)
    await broadcast_events(events)
    return _response(events)


@router.post("/{match_id}/attack")
async def declare_attack(
    match_id: int,
    request: AttackRequest,
    player_id: str = Depends(get_player_id),
    coordinator: MatchCoordinator = Depends(get_coordinator)
):
    _, events = _execute(coordinator, coordinator.declare_attack, match_id, player_id, request.row, request.col)
    await broadcast_events(events)
    return _response(events)


@router.post("/{match_id}/proof")
async def submit_proof(
    match_id: int,
    request: ProofRequest,
    player_id: str = Depends(get_player_id),
    coordinator: MatchCoordinator = Depends(get_coordinator)
):
    _, events = _execute(
        coordinator,
        coordinator.submit_proof,
        match_id,
        player_id,
        request.claimed_value,
        request.claimed_leaf,
        request.sibling_path,
        request.salt,
    )
    await broadcast_events(events)
    return _response(events)


@router.post("/{match_id}/audit")
async def submit_full_board_for_audit(
    match_id: int,
    request: AuditRequest,
    player_id: str = Depends(get_player_id),
    coordinator: MatchCoordinator = Depends(get_coordinator)
):
    _, events = _execute(coordinator, coordinator.submit_full_board_for_audit, match_id, player_id, request.cells)
    await broadcast_events(events)
    return _response(events)


@router.post("/{match_id}/accuse")
async def accuse(
    match_id: int,
    player_id: str = Depends(get_player_id),
    coordinator: MatchCoordinator = Depends(get_coordinator)
):
    _, events = _execute(coordinator, coordinator.accuse, match_id, player_id)
    await broadcast_events(events)
    return _response(events)
