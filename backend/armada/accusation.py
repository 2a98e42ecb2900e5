"""
=============================================================================
ARMADA - Árbitro de Acusaciones (AFK / Timeout)
=============================================================================
Un jugador puede acusar a su oponente de no responder. La acusación fija un
plazo en bloques del reloj lógico:

- Antes del plazo: una nueva llamada solo re-notifica; el plazo NO se
  extiende y la llamada se rechaza con AccusationPendingError.
- En o después del plazo: el acusador gana por "timeout".
- Cualquier ataque declarado anula la acusación (prueba de vida).
- Si el acusado ya no debe nada (p. ej. registró su compromiso), la
  acusación caduca y el acusador debe acusar de nuevo.
=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .config import ProtocolConfig
from .errors import AccusationPendingError, InvalidPhaseError, NotAuthorizedError
from .events import AccusationCleared, AccusationRaised, MatchEvent
from .match_state import Accusation, FinishCause, Match, MatchPhase, Outcome


logger = logging.getLogger(__name__)


@dataclass
class AccusationResult:
    events: List[MatchEvent] = field(default_factory=list)
    outcome: Optional[Outcome] = None


class AccusationArbiter:
    """Gestiona la única acusación vigente de cada partida."""

    def __init__(self, window: Optional[int] = None):
        self.window = window if window is not None else ProtocolConfig.ACCUSATION_WINDOW
        if self.window <= 0:
            raise ValueError("Accusation window must be positive")

    def accuse(self, match: Match, accuser: str, now: int) -> AccusationResult:
        """
        Acusa al oponente o ejecuta una acusación vencida.

        Raises:
            NotAuthorizedError: si el acusado intenta acusar de vuelta
            AccusationPendingError: si la acusación vigente no ha vencido
            InvalidPhaseError: si no hay fondos en juego o el oponente no debe nada
        """
        match.require_player(accuser)
        if match.outcome is not None:
            raise InvalidPhaseError("Match already settled", context={"match_id": match.match_id})
        if not match.fully_funded:
            raise InvalidPhaseError(
                "Accusations require both stakes deposited",
                context={"match_id": match.match_id, "phase": match.phase.value}
            )

        events: List[MatchEvent] = []
        pending = match.accusation
        if pending is not None and not match.owes_action(pending.accused):
            # El acusado ya actuó por otra vía: la acusación caduca
            logger.info(f"[ACCUSE] Match {match.match_id}: accusation against {pending.accused} lapsed")
            events.append(AccusationCleared(
                match_id=match.match_id,
                accused=pending.accused,
                cleared_by=pending.accused,
            ))
            match.accusation = None
            pending = None

        if pending is not None:
            if pending.accused == accuser:
                raise NotAuthorizedError(
                    "Accused player cannot accuse; act to clear the accusation",
                    context={"match_id": match.match_id, "deadline": pending.deadline}
                )
            if not pending.expired(now):
                logger.info(
                    f"[ACCUSE] Match {match.match_id}: {pending.accused} reminded, "
                    f"{pending.deadline - now} blocks left"
                )
                raise AccusationPendingError(
                    "Accusation already pending",
                    context={
                        "match_id": match.match_id,
                        "accused": pending.accused,
                        "deadline": pending.deadline,
                        "now": now,
                    }
                )
            return self._forfeit(match, pending, now)

        accused = match.opponent_of(accuser)
        if not match.owes_action(accused):
            raise InvalidPhaseError(
                "Opponent owes no action",
                context={"match_id": match.match_id, "accused": accused}
            )

        deadline = now + self.window
        match.accusation = Accusation(accuser=accuser, accused=accused, deadline=deadline)
        logger.info(f"[ACCUSE] Match {match.match_id}: {accuser} accuses {accused}, deadline {deadline}")

        events.append(AccusationRaised(
            match_id=match.match_id,
            accuser=accuser,
            accused=accused,
            deadline=deadline,
        ))
        return AccusationResult(events=events)

    def _forfeit(self, match: Match, pending: Accusation, now: int) -> AccusationResult:
        outcome = Outcome(
            winner=pending.accuser,
            loser=pending.accused,
            cause=FinishCause.TIMEOUT,
            detail=f"no response by block {pending.deadline}",
        )
        match.phase = MatchPhase.FINISHED
        match.outcome = outcome
        match.accusation = None
        match.pending_attacks.clear()
        match.turn_holder = None

        logger.warning(f"[ACCUSE] Match {match.match_id}: {pending.accused} forfeits at block {now}")
        return AccusationResult(outcome=outcome)
