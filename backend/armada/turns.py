"""
=============================================================================
ARMADA - Árbitro de Turnos
=============================================================================
Ciclo ataque / prueba:

    STARTED -> {turno de ataque, prueba pendiente del defensor} -> FINISHED

- El turno pasa al oponente en cuanto se declara el ataque (no al llegar la
  prueba): el defensor puede atacar antes de entregar su prueba.
- Los contadores de barcos solo cambian con pruebas verificadas.
- Una prueba inválida termina la partida: el que la envió pierde.
=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .errors import InvalidArgumentError, InvalidPhaseError, NotAuthorizedError
from .events import (
    AccusationCleared,
    AttackDeclared,
    MatchEvent,
    MatchFinished,
    MatchStarted,
    ProofResult,
)
from .match_state import FinishCause, Match, MatchPhase, Outcome
from .verifier import ProofVerifier, proof_verifier


logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """Eventos producidos por una acción y, si la hubo, la decisión final."""
    events: List[MatchEvent] = field(default_factory=list)
    outcome: Optional[Outcome] = None


class TurnArbiter:
    """Máquina de estados de turnos y contabilidad de aciertos."""

    def __init__(self, verifier: Optional[ProofVerifier] = None):
        self.verifier = verifier or proof_verifier

    def start(self, match: Match) -> MatchStarted:
        """Inicia la partida cuando ambos compromisos están registrados."""
        if not match.both_committed:
            raise InvalidPhaseError("Both commitments are required to start", context={"match_id": match.match_id})

        match.phase = MatchPhase.STARTED
        match.turn_holder = match.player_a
        match.revealed = {p: set() for p in match.players}

        logger.info(f"[MATCH] Match {match.match_id} started, {match.turn_holder} attacks first")
        return MatchStarted(
            match_id=match.match_id,
            player_a=match.player_a,
            player_b=match.player_b,
            turn_holder=match.turn_holder,
        )

    # -------------------------------------------------------------------------
    # ATAQUE
    # -------------------------------------------------------------------------

    def declare_attack(self, match: Match, attacker: str, row: int, col: int) -> TurnResult:
        """
        Declara un ataque sobre una celda no revelada del oponente.

        El turno pasa de inmediato al defensor y cualquier acusación vigente
        queda anulada.
        """
        match.require_player(attacker)
        if not match.in_play:
            raise InvalidPhaseError(
                "Match is not in play",
                context={"match_id": match.match_id, "phase": match.phase.value}
            )
        if attacker != match.turn_holder:
            raise NotAuthorizedError("Not your turn", context={"match_id": match.match_id, "turn_holder": match.turn_holder})
        if not (0 <= row < match.board_size and 0 <= col < match.board_size):
            raise InvalidArgumentError(
                "Coordinate outside the board",
                context={"row": row, "col": col, "board_size": match.board_size}
            )

        defender = match.opponent_of(attacker)
        if defender in match.pending_attacks:
            raise InvalidPhaseError(
                "Opponent still owes a proof for the previous attack",
                context={"match_id": match.match_id, "pending": list(match.pending_attacks[defender])}
            )
        index = row * match.board_size + col
        if index in match.revealed.get(defender, set()):
            raise InvalidArgumentError("Cell already revealed", context={"row": row, "col": col})

        result = TurnResult()
        match.pending_attacks[defender] = (row, col)
        match.turn_holder = defender
        match.phase = MatchPhase.IN_PROGRESS

        if match.accusation is not None:
            result.events.append(AccusationCleared(
                match_id=match.match_id,
                accused=match.accusation.accused,
                cleared_by=attacker,
            ))
            match.accusation = None

        result.events.append(AttackDeclared(
            match_id=match.match_id,
            attacker=attacker,
            defender=defender,
            row=row,
            col=col,
        ))
        logger.debug(f"[MATCH] {match.match_id}: {attacker} attacks {defender} at ({row}, {col})")
        return result

    # -------------------------------------------------------------------------
    # PRUEBA
    # -------------------------------------------------------------------------

    def submit_proof(
        self,
        match: Match,
        prover: str,
        claimed_value: int,
        claimed_leaf: str,
        sibling_path: Sequence[str],
        salt: int
    ) -> TurnResult:
        """
        Verifica la prueba del defensor para la celda atacada.

        Prueba válida: se revela la celda y, si es barco, se descuenta.
        Prueba inválida: fin inmediato, el prover pierde (sin reintento).
        """
        match.require_player(prover)
        if not match.in_play:
            raise InvalidPhaseError(
                "Match is not in play",
                context={"match_id": match.match_id, "phase": match.phase.value}
            )
        if prover not in match.pending_attacks:
            raise InvalidPhaseError("No attack is awaiting your proof", context={"match_id": match.match_id})
        if claimed_value not in (0, 1):
            raise InvalidArgumentError("Claimed value must be 0 (miss) or 1 (hit)", context={"claimed_value": claimed_value})

        row, col = match.pending_attacks[prover]
        attacker = match.opponent_of(prover)
        index = row * match.board_size + col

        valid = self.verifier.verify(
            claimed_value,
            claimed_leaf,
            sibling_path,
            match.commitment_of(prover),
            salt=salt,
            index=index,
            leaf_count=match.board_size ** 2,
        )

        result = TurnResult()
        del match.pending_attacks[prover]

        if not valid:
            outcome = Outcome(
                winner=attacker,
                loser=prover,
                cause=FinishCause.PROOF_MISMATCH,
                detail=f"invalid proof for cell ({row}, {col})",
            )
            match.phase = MatchPhase.FINISHED
            match.outcome = outcome
            match.pending_attacks.clear()
            match.accusation = None
            logger.warning(f"[PROOF] Match {match.match_id}: invalid proof from {prover} at ({row}, {col})")
            result.events.append(ProofResult(
                match_id=match.match_id,
                prover=prover,
                attacker=attacker,
                row=row,
                col=col,
                result=claimed_value,
                valid=False,
                ships_remaining=match.ships_remaining(prover),
            ))
            result.outcome = outcome
            return result

        match.revealed.setdefault(prover, set()).add(index)
        remaining = match.ships_remaining(prover)
        if claimed_value == 1:
            remaining = match.sink_ship_cell(prover)

        result.events.append(ProofResult(
            match_id=match.match_id,
            prover=prover,
            attacker=attacker,
            row=row,
            col=col,
            result=claimed_value,
            valid=True,
            ships_remaining=remaining,
        ))

        if remaining == 0:
            result.events.append(self._eliminate(match, winner=attacker, loser=prover))
        return result

    def _eliminate(self, match: Match, winner: str, loser: str) -> MatchFinished:
        """Fin por eliminación: queda pendiente la auditoría del perdedor."""
        match.phase = MatchPhase.FINISHED
        match.provisional_winner = winner
        match.provisional_loser = loser
        match.pending_attacks.clear()
        match.turn_holder = None
        match.accusation = None

        logger.info(f"[MATCH] Match {match.match_id}: all ships of {loser} sunk, audit pending")
        return MatchFinished(
            match_id=match.match_id,
            provisional_winner=winner,
            provisional_loser=loser,
        )
