"""
=============================================================================
ARMADA - Flujo de Eventos del Protocolo
=============================================================================
Cada transición observable emite una variante tipada. Los consumidores
(Socket.IO, pruebas, UI) distinguen por tipo; el núcleo nunca depende de
ellos.
=============================================================================
"""

import logging
from collections import deque
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Callable, ClassVar, Deque, Dict, Iterator, List, Optional


logger = logging.getLogger(__name__)


# =============================================================================
# VARIANTES
# =============================================================================

@dataclass(frozen=True)
class MatchEvent:
    """Base de todos los eventos: siempre pertenecen a una partida."""
    event_type: ClassVar[str] = "event"
    match_id: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = str(value)
        data["event"] = self.event_type
        return data


@dataclass(frozen=True)
class MatchCreated(MatchEvent):
    event_type: ClassVar[str] = "match_created"
    creator: str
    board_size: int
    ship_target: int


@dataclass(frozen=True)
class PlayersJoined(MatchEvent):
    event_type: ClassVar[str] = "players_joined"
    player_a: str
    player_b: str
    board_size: int
    ship_target: int
    proposed_stake: Optional[Decimal] = None


@dataclass(frozen=True)
class StakeProposed(MatchEvent):
    event_type: ClassVar[str] = "stake_proposed"
    proposer: str
    amount: Decimal


@dataclass(frozen=True)
class StakeAccepted(MatchEvent):
    event_type: ClassVar[str] = "stake_accepted"
    acceptor: str
    amount: Decimal


@dataclass(frozen=True)
class StakeDeposited(MatchEvent):
    event_type: ClassVar[str] = "stake_deposited"
    player: str
    amount: Decimal
    fully_funded: bool


@dataclass(frozen=True)
class CommitmentRegistered(MatchEvent):
    event_type: ClassVar[str] = "commitment_registered"
    player: str
    root: str


@dataclass(frozen=True)
class MatchStarted(MatchEvent):
    event_type: ClassVar[str] = "match_started"
    player_a: str
    player_b: str
    turn_holder: str


@dataclass(frozen=True)
class AttackDeclared(MatchEvent):
    event_type: ClassVar[str] = "attack_declared"
    attacker: str
    defender: str
    row: int
    col: int


@dataclass(frozen=True)
class ProofResult(MatchEvent):
    event_type: ClassVar[str] = "proof_result"
    prover: str
    attacker: str
    row: int
    col: int
    result: int
    valid: bool
    ships_remaining: int


@dataclass(frozen=True)
class MatchFinished(MatchEvent):
    """Fin provisional por eliminación: falta la auditoría del tablero."""
    event_type: ClassVar[str] = "match_finished"
    provisional_winner: str
    provisional_loser: str


@dataclass(frozen=True)
class WinnerDeclared(MatchEvent):
    event_type: ClassVar[str] = "winner_declared"
    winner: str
    loser: str
    cause: str
    payout: Decimal
    detail: str = ""


@dataclass(frozen=True)
class AccusationRaised(MatchEvent):
    event_type: ClassVar[str] = "accusation_raised"
    accuser: str
    accused: str
    deadline: int


@dataclass(frozen=True)
class AccusationCleared(MatchEvent):
    event_type: ClassVar[str] = "accusation_cleared"
    accused: str
    cleared_by: str


# =============================================================================
# BUS DE EVENTOS
# =============================================================================

class EventBus:
    """
    Distribuye eventos a los suscriptores y guarda un historial acotado.

    Un suscriptor que falla se registra en el log y no interrumpe la
    entrega al resto.
    """

    def __init__(self, history_size: int = 1000):
        self._subscribers: List[Callable[[MatchEvent], None]] = []
        self.history: Deque[MatchEvent] = deque(maxlen=history_size)

    def subscribe(self, callback: Callable[[MatchEvent], None]):
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[MatchEvent], None]):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self, event: MatchEvent):
        self.history.append(event)
        logger.debug(f"[EVENT] {event.event_type} match={event.match_id}")
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(f"[EVENT] Subscriber failed on {event.event_type}")

    def for_match(self, match_id: int) -> List[MatchEvent]:
        """Eventos del historial pertenecientes a una partida."""
        return [e for e in self.history if e.match_id == match_id]

    @contextmanager
    def capture(self) -> Iterator[List[MatchEvent]]:
        """Recolecta los eventos publicados dentro del bloque."""
        collected: List[MatchEvent] = []
        callback = collected.append
        self.subscribe(callback)
        try:
            yield collected
        finally:
            self.unsubscribe(callback)
