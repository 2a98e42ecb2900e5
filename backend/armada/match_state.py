"""
=============================================================================
ARMADA - Estado Autoritativo de la Partida
=============================================================================
Registro por partida: jugadores, tablero, stake, compromisos, contadores de
barcos, turno y acusación vigente.

Ciclo de vida (FSM):
    JOINABLE -> PAIRED -> STAKE_AGREED -> STARTED -> IN_PROGRESS -> FINISHED

Invariantes:
- Los compromisos, una vez registrados, no cambian
- Los contadores de barcos nunca aumentan ni bajan de cero
- Un jugador no puede ocupar ambos roles
=============================================================================
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from .errors import InvalidPhaseError, NotAuthorizedError


class MatchPhase(Enum):
    """Estados de la máquina de estados de la partida."""
    JOINABLE = "JOINABLE"          # Esperando oponente
    PAIRED = "PAIRED"              # Dos jugadores, negociando stake
    STAKE_AGREED = "STAKE_AGREED"  # Stake fijo: depósitos y compromisos
    STARTED = "STARTED"            # Ambos compromisos registrados
    IN_PROGRESS = "IN_PROGRESS"    # Al menos un ataque declarado
    FINISHED = "FINISHED"          # Terminal (posible auditoría pendiente)


class FinishCause(Enum):
    """Causa legible de cada camino de finalización."""
    ALL_SHIPS_SUNK = "all ships sunk"
    PROOF_MISMATCH = "cheater detected (proof mismatch)"
    BOARD_AUDIT = "cheater detected (board audit)"
    TIMEOUT = "timeout"


@dataclass
class Accusation:
    """Acusación de inactividad: como máximo una por partida."""
    accuser: str
    accused: str
    deadline: int

    def expired(self, now: int) -> bool:
        return now >= self.deadline

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accuser": self.accuser,
            "accused": self.accused,
            "deadline": self.deadline,
        }


@dataclass
class Outcome:
    """Resultado final de la partida."""
    winner: str
    loser: str
    cause: FinishCause
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "winner": self.winner,
            "loser": self.loser,
            "cause": self.cause.value,
            "detail": self.detail,
        }


@dataclass
class Match:
    """Registro autoritativo de una partida."""
    match_id: int
    player_a: str
    board_size: int
    ship_target: int
    player_b: Optional[str] = None

    phase: MatchPhase = MatchPhase.JOINABLE

    # Negociación de stake en dos fases
    proposed_stake: Optional[Decimal] = None
    stake_proposer: Optional[str] = None
    stake: Optional[Decimal] = None
    deposits: Dict[str, Decimal] = field(default_factory=dict)

    # Compromisos Merkle
    commitment_a: Optional[str] = None
    commitment_b: Optional[str] = None

    # Contadores de barcos
    ships_remaining_a: int = -1
    ships_remaining_b: int = -1

    # Turnos
    turn_holder: Optional[str] = None
    pending_attacks: Dict[str, Tuple[int, int]] = field(default_factory=dict)
    revealed: Dict[str, Set[int]] = field(default_factory=dict)

    # Arbitraje
    accusation: Optional[Accusation] = None
    provisional_winner: Optional[str] = None
    provisional_loser: Optional[str] = None
    outcome: Optional[Outcome] = None

    created_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if self.ships_remaining_a < 0:
            self.ships_remaining_a = self.ship_target
        if self.ships_remaining_b < 0:
            self.ships_remaining_b = self.ship_target

    # -------------------------------------------------------------------------
    # JUGADORES
    # -------------------------------------------------------------------------

    @property
    def players(self) -> List[str]:
        return [p for p in (self.player_a, self.player_b) if p is not None]

    @property
    def joinable(self) -> bool:
        return self.phase == MatchPhase.JOINABLE and self.player_b is None

    def is_player(self, player: str) -> bool:
        return player is not None and player in (self.player_a, self.player_b)

    def require_player(self, player: str):
        if not self.is_player(player):
            raise NotAuthorizedError(
                "Caller is not a player of this match",
                context={"match_id": self.match_id, "caller": player}
            )

    def opponent_of(self, player: str) -> str:
        self.require_player(player)
        if self.player_b is None:
            raise InvalidPhaseError("Match has no opponent yet", context={"match_id": self.match_id})
        return self.player_b if player == self.player_a else self.player_a

    # -------------------------------------------------------------------------
    # COMPROMISOS Y CONTADORES
    # -------------------------------------------------------------------------

    def commitment_of(self, player: str) -> Optional[str]:
        self.require_player(player)
        return self.commitment_a if player == self.player_a else self.commitment_b

    def set_commitment(self, player: str, root: str):
        if self.commitment_of(player) is not None:
            raise InvalidPhaseError(
                "Commitment already registered",
                context={"match_id": self.match_id, "player": player}
            )
        if player == self.player_a:
            self.commitment_a = root
        else:
            self.commitment_b = root

    @property
    def both_committed(self) -> bool:
        return self.commitment_a is not None and self.commitment_b is not None

    def ships_remaining(self, player: str) -> int:
        self.require_player(player)
        return self.ships_remaining_a if player == self.player_a else self.ships_remaining_b

    def sink_ship_cell(self, player: str) -> int:
        """Descuenta una celda de barco; el contador no baja de cero."""
        remaining = max(0, self.ships_remaining(player) - 1)
        if player == self.player_a:
            self.ships_remaining_a = remaining
        else:
            self.ships_remaining_b = remaining
        return remaining

    # -------------------------------------------------------------------------
    # FONDOS Y FASES
    # -------------------------------------------------------------------------

    @property
    def fully_funded(self) -> bool:
        return (
            self.stake is not None
            and self.player_b is not None
            and all(p in self.deposits for p in self.players)
        )

    @property
    def pot(self) -> Decimal:
        return sum(self.deposits.values(), Decimal("0"))

    @property
    def pending_audit(self) -> bool:
        return (
            self.phase == MatchPhase.FINISHED
            and self.outcome is None
            and self.provisional_loser is not None
        )

    @property
    def in_play(self) -> bool:
        return self.phase in (MatchPhase.STARTED, MatchPhase.IN_PROGRESS)

    def owes_action(self, player: str) -> bool:
        """
        Indica si `player` es quien debe actuar ahora: registrar su
        compromiso, atacar, entregar una prueba o revelar su tablero.

        El dueño del turno no debe atacar mientras el oponente le adeude una
        prueba: ese ataque sería rechazado.
        """
        if self.phase == MatchPhase.STAKE_AGREED:
            return self.fully_funded and self.commitment_of(player) is None
        if self.in_play:
            if player in self.pending_attacks:
                return True
            return self.turn_holder == player and self.opponent_of(player) not in self.pending_attacks
        if self.pending_audit:
            return self.provisional_loser == player
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_id": self.match_id,
            "phase": self.phase.value,
            "player_a": self.player_a,
            "player_b": self.player_b,
            "board_size": self.board_size,
            "ship_target": self.ship_target,
            "proposed_stake": str(self.proposed_stake) if self.proposed_stake is not None else None,
            "stake_proposer": self.stake_proposer,
            "stake": str(self.stake) if self.stake is not None else None,
            "deposits": {p: str(a) for p, a in self.deposits.items()},
            "commitment_a": self.commitment_a,
            "commitment_b": self.commitment_b,
            "ships_remaining_a": self.ships_remaining_a,
            "ships_remaining_b": self.ships_remaining_b,
            "turn_holder": self.turn_holder,
            "pending_attacks": {p: list(c) for p, c in self.pending_attacks.items()},
            "accusation": self.accusation.to_dict() if self.accusation else None,
            "provisional_winner": self.provisional_winner,
            "provisional_loser": self.provisional_loser,
            "outcome": self.outcome.to_dict() if self.outcome else None,
        }
