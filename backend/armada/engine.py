"""
=============================================================================
ARMADA - Coordinador de Partidas
=============================================================================
Punto de entrada de todas las operaciones del protocolo:

    create -> join -> propose/accept stake -> deposit -> commit
           -> attack / proof ... -> (audit | proof mismatch | timeout)
           -> payout del pozo al ganador

Reglas de concurrencia:
- Un lock por partida serializa todas sus transiciones
- El registro (partidas activas + abiertas) tiene su propio lock; el orden de
  adquisición es siempre partida -> registro
- El pago del fideicomiso ocurre después de fijar el resultado y retirar la
  partida del registro
=============================================================================
"""

import logging
import threading
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .accusation import AccusationArbiter
from .audit import EndgameAuditor
from .clock import LogicalClock
from .config import ProtocolConfig, load_game_params
from .errors import (
    EscrowError,
    InvalidArgumentError,
    InvalidPhaseError,
    MatchNotFoundError,
    NotAuthorizedError,
)
from .escrow import Escrow, EscrowLedger
from .events import (
    AccusationCleared,
    CommitmentRegistered,
    EventBus,
    MatchCreated,
    MatchEvent,
    PlayersJoined,
    StakeAccepted,
    StakeDeposited,
    StakeProposed,
    WinnerDeclared,
)
from .match_state import Match, MatchPhase, Outcome
from .merkle import normalize_digest
from .turns import TurnArbiter
from .verifier import ProofVerifier


logger = logging.getLogger(__name__)


def _to_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidArgumentError("Amount is not a number", context={"amount": value})
    if not amount.is_finite() or amount <= 0:
        raise InvalidArgumentError("Amount must be positive", context={"amount": str(value)})
    return amount


def _to_salt(value: Any) -> int:
    try:
        salt = int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError("Salt must be an integer", context={"salt": value})
    if salt < 0:
        raise InvalidArgumentError("Salt cannot be negative", context={"salt": value})
    return salt


class MatchCoordinator:
    """
    Gestiona el registro de partidas y orquesta los árbitros.

    Las operaciones que mutan estado retornan la lista de eventos emitidos
    (también publicados en el EventBus). Crear y unirse retornan el ID.
    """

    def __init__(
        self,
        escrow: Optional[Escrow] = None,
        clock: Optional[LogicalClock] = None,
        event_bus: Optional[EventBus] = None,
        verifier: Optional[ProofVerifier] = None,
        accusation_window: Optional[int] = None,
        max_board_size: Optional[int] = None
    ):
        self.escrow = escrow or EscrowLedger()
        self.clock = clock or LogicalClock()
        self.events = event_bus or EventBus()
        self.turns = TurnArbiter(verifier)
        self.auditor = EndgameAuditor()
        self.accusations = AccusationArbiter(accusation_window)
        self.max_board_size = max_board_size or ProtocolConfig.MAX_BOARD_SIZE
        self.defaults = load_game_params()

        self.active_matches: Dict[int, Match] = {}
        self.joinable_ids: List[int] = []
        self.finished_count = 0
        self._match_locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._next_id = 0

    # -------------------------------------------------------------------------
    # REGISTRO
    # -------------------------------------------------------------------------

    @property
    def joinable_count(self) -> int:
        return len(self.joinable_ids)

    def _lookup(self, match_id: int) -> Match:
        match = self.active_matches.get(match_id)
        if match is None:
            raise MatchNotFoundError("Match does not exist", context={"match_id": match_id})
        return match

    @contextmanager
    def _locked(self, match_id: int) -> Iterator[Match]:
        """Adquiere el lock de la partida y la entrega ya validada."""
        with self._registry_lock:
            lock = self._match_locks.get(match_id)
        if lock is None:
            raise MatchNotFoundError("Match does not exist", context={"match_id": match_id})
        with lock:
            # La partida pudo liquidarse mientras se esperaba el lock
            yield self._lookup(match_id)

    def _publish(self, events: Sequence[MatchEvent]) -> List[MatchEvent]:
        for event in events:
            self.events.publish(event)
        return list(events)

    # -------------------------------------------------------------------------
    # CREACIÓN Y EMPAREJAMIENTO
    # -------------------------------------------------------------------------

    def create_match(
        self,
        creator: str,
        board_size: Optional[int] = None,
        ship_target: Optional[int] = None
    ) -> int:
        """Crea una partida abierta; el creador será player_a y atacará primero."""
        if not creator:
            raise InvalidArgumentError("Creator identity is required")
        board_size = self.defaults["board_size"] if board_size is None else board_size
        ship_target = self.defaults["ship_target"] if ship_target is None else ship_target

        if not 1 <= board_size <= self.max_board_size:
            raise InvalidArgumentError(
                "Board size out of range",
                context={"board_size": board_size, "max": self.max_board_size}
            )
        if not 1 <= ship_target <= board_size ** 2:
            raise InvalidArgumentError(
                "Ship target must fit on the board",
                context={"ship_target": ship_target, "cells": board_size ** 2}
            )

        with self._registry_lock:
            match_id = self._next_id
            self._next_id += 1
            self.active_matches[match_id] = Match(
                match_id=match_id,
                player_a=creator,
                board_size=board_size,
                ship_target=ship_target,
            )
            self._match_locks[match_id] = threading.Lock()
            self.joinable_ids.append(match_id)

        logger.info(f"[MATCH] {creator} created match {match_id} ({board_size}x{board_size}, {ship_target} ships)")
        self._publish([MatchCreated(
            match_id=match_id,
            creator=creator,
            board_size=board_size,
            ship_target=ship_target,
        )])
        return match_id

    def join_match(self, match_id: int, caller: str) -> int:
        if not caller:
            raise InvalidArgumentError("Player identity is required")
        with self._locked(match_id) as match:
            if not match.joinable:
                raise InvalidPhaseError("Match is not open", context={"match_id": match_id})
            if caller == match.player_a:
                raise NotAuthorizedError("Cannot join your own match", context={"match_id": match_id})

            match.player_b = caller
            match.phase = MatchPhase.PAIRED
            with self._registry_lock:
                self.joinable_ids.remove(match_id)

            logger.info(f"[MATCH] {caller} joined match {match_id} against {match.player_a}")
            self._publish([PlayersJoined(
                match_id=match_id,
                player_a=match.player_a,
                player_b=caller,
                board_size=match.board_size,
                ship_target=match.ship_target,
                proposed_stake=match.proposed_stake,
            )])
        return match_id

    def join_any_open_match(self, caller: str) -> int:
        """Se une a la partida abierta más antigua que no sea propia."""
        while True:
            with self._registry_lock:
                candidates = [
                    mid for mid in self.joinable_ids
                    if self.active_matches[mid].player_a != caller
                ]
            if not candidates:
                raise MatchNotFoundError("No open match available, create a new one")
            try:
                return self.join_match(candidates[0], caller)
            except (InvalidPhaseError, MatchNotFoundError):
                # Otro jugador la tomó entre la búsqueda y el lock
                continue

    # -------------------------------------------------------------------------
    # STAKE
    # -------------------------------------------------------------------------

    def propose_stake(self, match_id: int, caller: str, amount: Any) -> List[MatchEvent]:
        """Propone (o contrapropone) el monto de la apuesta."""
        amount = _to_amount(amount)
        with self._locked(match_id) as match:
            match.require_player(caller)
            if match.phase not in (MatchPhase.JOINABLE, MatchPhase.PAIRED):
                raise InvalidPhaseError(
                    "Stake can no longer be negotiated",
                    context={"match_id": match_id, "phase": match.phase.value}
                )
            match.proposed_stake = amount
            match.stake_proposer = caller
            logger.info(f"[STAKE] {caller} proposes {amount} in match {match_id}")
            return self._publish([StakeProposed(match_id=match_id, proposer=caller, amount=amount)])

    def accept_stake(self, match_id: int, caller: str) -> List[MatchEvent]:
        with self._locked(match_id) as match:
            match.require_player(caller)
            if match.phase != MatchPhase.PAIRED or match.proposed_stake is None:
                raise InvalidPhaseError("No stake proposal to accept", context={"match_id": match_id})
            if caller == match.stake_proposer:
                raise NotAuthorizedError("Cannot accept your own proposal", context={"match_id": match_id})

            match.stake = match.proposed_stake
            match.phase = MatchPhase.STAKE_AGREED
            logger.info(f"[STAKE] Match {match_id} stake fixed at {match.stake}")
            return self._publish([StakeAccepted(match_id=match_id, acceptor=caller, amount=match.stake)])

    def deposit_stake(self, match_id: int, caller: str, amount: Any) -> List[MatchEvent]:
        """Deposita el stake acordado en el fideicomiso (una vez por jugador)."""
        amount = _to_amount(amount)
        with self._locked(match_id) as match:
            match.require_player(caller)
            if match.phase != MatchPhase.STAKE_AGREED:
                raise InvalidPhaseError("Stake is not agreed yet", context={"match_id": match_id})
            if caller in match.deposits:
                raise EscrowError("Stake already deposited", context={"match_id": match_id, "player": caller})
            if amount != match.stake:
                raise InvalidArgumentError(
                    "Deposit must equal the agreed stake",
                    context={"amount": str(amount), "stake": str(match.stake)}
                )

            self.escrow.hold(match_id, caller, amount)
            match.deposits[caller] = amount
            return self._publish([StakeDeposited(
                match_id=match_id,
                player=caller,
                amount=amount,
                fully_funded=match.fully_funded,
            )])

    # -------------------------------------------------------------------------
    # COMPROMISOS Y JUEGO
    # -------------------------------------------------------------------------

    def register_commitment(self, match_id: int, caller: str, root: str) -> List[MatchEvent]:
        """Registra la raíz Merkle del tablero; con ambas, la partida inicia."""
        root = normalize_digest(root)
        with self._locked(match_id) as match:
            match.require_player(caller)
            if match.phase != MatchPhase.STAKE_AGREED:
                raise InvalidPhaseError(
                    "Commitments are registered after the stake is agreed",
                    context={"match_id": match_id, "phase": match.phase.value}
                )
            if not match.fully_funded:
                raise InvalidPhaseError("Both stakes must be deposited first", context={"match_id": match_id})

            match.set_commitment(caller, root)
            events: List[MatchEvent] = [CommitmentRegistered(match_id=match_id, player=caller, root=root)]
            logger.info(f"[MATCH] {caller} committed board {root[:12]}... in match {match_id}")

            if match.accusation is not None and match.accusation.accused == caller:
                events.append(AccusationCleared(match_id=match_id, accused=caller, cleared_by=caller))
                match.accusation = None

            if match.both_committed:
                events.append(self.turns.start(match))
            return self._publish(events)

    def declare_attack(self, match_id: int, caller: str, row: int, col: int) -> List[MatchEvent]:
        with self._locked(match_id) as match:
            result = self.turns.declare_attack(match, caller, row, col)
            return self._publish(result.events)

    def submit_proof(
        self,
        match_id: int,
        caller: str,
        claimed_value: int,
        claimed_leaf: str,
        sibling_path: Sequence[str],
        salt: Any
    ) -> List[MatchEvent]:
        """Entrega la prueba de la celda atacada. Una prueba inválida termina la partida."""
        claimed_leaf = normalize_digest(claimed_leaf)
        sibling_path = [normalize_digest(s) for s in sibling_path]
        salt = _to_salt(salt)

        with self._locked(match_id) as match:
            result = self.turns.submit_proof(match, caller, claimed_value, claimed_leaf, sibling_path, salt)
            events = list(result.events)
            if result.outcome is not None:
                events.append(self._settle(match, result.outcome))
            return self._publish(events)

    def submit_full_board_for_audit(self, match_id: int, caller: str, cells: Sequence[Any]) -> List[MatchEvent]:
        with self._locked(match_id) as match:
            outcome = self.auditor.settle(match, caller, cells)
            return self._publish([self._settle(match, outcome)])

    def accuse(self, match_id: int, caller: str) -> List[MatchEvent]:
        """Acusa al oponente de inactividad o ejecuta una acusación vencida."""
        with self._locked(match_id) as match:
            result = self.accusations.accuse(match, caller, self.clock.now())
            events = list(result.events)
            if result.outcome is not None:
                events.append(self._settle(match, result.outcome))
            return self._publish(events)

    # -------------------------------------------------------------------------
    # LIQUIDACIÓN
    # -------------------------------------------------------------------------

    def _settle(self, match: Match, outcome: Outcome) -> WinnerDeclared:
        """
        Cierra la partida: la retira del registro y paga el pozo.

        Se llama con el lock de la partida tomado y el resultado ya fijado.
        """
        payout = match.stake * ProtocolConfig.POT_MULTIPLIER
        if match.pot != payout:
            raise EscrowError(
                "Pot does not match twice the stake",
                context={"match_id": match.match_id, "pot": str(match.pot), "expected": str(payout)}
            )

        with self._registry_lock:
            self.active_matches.pop(match.match_id, None)
            self._match_locks.pop(match.match_id, None)
            self.finished_count += 1

        self.escrow.payout(match.match_id, outcome.winner, payout)
        logger.info(
            f"[MATCH] Match {match.match_id} won by {outcome.winner} "
            f"({outcome.cause.value}), payout {payout}"
        )
        return WinnerDeclared(
            match_id=match.match_id,
            winner=outcome.winner,
            loser=outcome.loser,
            cause=outcome.cause.value,
            payout=payout,
            detail=outcome.detail,
        )

    # -------------------------------------------------------------------------
    # CONSULTAS
    # -------------------------------------------------------------------------

    def get_match(self, match_id: int) -> Dict[str, Any]:
        with self._locked(match_id) as match:
            data = match.to_dict()
            if match.accusation is not None:
                data["accusation"]["blocks_left"] = max(0, match.accusation.deadline - self.clock.now())
            return data

    def open_matches(self) -> List[Dict[str, Any]]:
        with self._registry_lock:
            return [
                {
                    "match_id": mid,
                    "creator": self.active_matches[mid].player_a,
                    "board_size": self.active_matches[mid].board_size,
                    "ship_target": self.active_matches[mid].ship_target,
                    "proposed_stake": (
                        str(self.active_matches[mid].proposed_stake)
                        if self.active_matches[mid].proposed_stake is not None else None
                    ),
                }
                for mid in self.joinable_ids
            ]

    def status(self) -> Dict[str, Any]:
        with self._registry_lock:
            phases: Dict[str, int] = {}
            for match in self.active_matches.values():
                phases[match.phase.value] = phases.get(match.phase.value, 0) + 1
            return {
                "active_matches": len(self.active_matches),
                "joinable_matches": len(self.joinable_ids),
                "finished_matches": self.finished_count,
                "phases": phases,
                "clock": self.clock.now(),
            }


match_coordinator = MatchCoordinator()
