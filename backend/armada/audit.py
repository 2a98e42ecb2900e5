"""
=============================================================================
ARMADA - Auditoría de Fin de Partida
=============================================================================
Cuando un jugador se queda sin barcos, debe revelar su tablero completo.
Así se detecta el tablero con menos barcos de los exigidos: un jugador que
nunca colocó barcos "gana" cada prueba de agua y solo la auditoría lo expone.

Etiquetas de celda que el cliente puede enviar:
    EMPTY=0  SHIP=1  MISS=2  HIT=3  SUNK=4
Se colapsan a {0, 1}: HIT y SUNK cuentan como barco, MISS como agua.
=============================================================================
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Sequence

from .errors import InvalidArgumentError, InvalidPhaseError, NotAuthorizedError
from .match_state import FinishCause, Match, Outcome


logger = logging.getLogger(__name__)


class CellTag(IntEnum):
    """Etiquetas de celda del tablero del cliente."""
    EMPTY = 0
    SHIP = 1
    MISS = 2
    HIT = 3
    SUNK = 4


SHIP_TAGS = frozenset({CellTag.SHIP, CellTag.HIT, CellTag.SUNK})


def collapse_cell(tag: int) -> int:
    """Colapsa una etiqueta de cliente a 0 (agua) o 1 (barco)."""
    try:
        cell = CellTag(int(tag))
    except (TypeError, ValueError):
        raise InvalidArgumentError("Unknown cell tag", context={"tag": tag})
    return 1 if cell in SHIP_TAGS else 0


def collapse_board(cells: Sequence[Any]) -> List[int]:
    """Colapsa un tablero (plano o por filas) a una lista plana de {0, 1}."""
    if cells and isinstance(cells[0], (list, tuple)):
        cells = [cell for row in cells for cell in row]
    return [collapse_cell(tag) for tag in cells]


@dataclass
class AuditReport:
    """Resultado de revisar un tablero revelado."""
    passed: bool
    expected_cells: int
    received_cells: int
    ship_cells: int
    ship_target: int
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "expected_cells": self.expected_cells,
            "received_cells": self.received_cells,
            "ship_cells": self.ship_cells,
            "ship_target": self.ship_target,
            "detail": self.detail,
        }


class EndgameAuditor:
    """Confirma o invierte el resultado provisional de una eliminación."""

    def inspect(self, match: Match, cells: Sequence[Any]) -> AuditReport:
        """Revisa tamaño y número de barcos, sin tocar la partida."""
        flat = collapse_board(cells)
        expected = match.board_size ** 2
        ship_cells = sum(flat)

        detail = ""
        if len(flat) != expected:
            detail = "board size mismatch"
        elif ship_cells < match.ship_target:
            detail = "ship count below target"

        return AuditReport(
            passed=not detail,
            expected_cells=expected,
            received_cells=len(flat),
            ship_cells=ship_cells,
            ship_target=match.ship_target,
            detail=detail,
        )

    def settle(self, match: Match, submitter: str, cells: Sequence[Any]) -> Outcome:
        """
        Audita el tablero del perdedor provisional y fija el resultado final.

        Raises:
            InvalidPhaseError: si no hay auditoría pendiente
            NotAuthorizedError: si quien envía no es el perdedor provisional
            InvalidArgumentError: si alguna etiqueta es desconocida
        """
        match.require_player(submitter)
        if not match.pending_audit:
            raise InvalidPhaseError("No board audit is pending", context={"match_id": match.match_id})
        if submitter != match.provisional_loser:
            raise NotAuthorizedError(
                "Only the provisional loser reveals the board",
                context={"match_id": match.match_id, "provisional_loser": match.provisional_loser}
            )

        report = self.inspect(match, cells)

        if report.passed:
            outcome = Outcome(
                winner=match.provisional_winner,
                loser=match.provisional_loser,
                cause=FinishCause.ALL_SHIPS_SUNK,
            )
        else:
            outcome = Outcome(
                winner=match.provisional_winner,
                loser=match.provisional_loser,
                cause=FinishCause.BOARD_AUDIT,
                detail=report.detail,
            )
            logger.warning(
                f"[AUDIT] Match {match.match_id}: {submitter} failed audit ({report.detail}, "
                f"{report.ship_cells}/{report.ship_target} ship cells, "
                f"{report.received_cells}/{report.expected_cells} cells)"
            )

        match.outcome = outcome
        return outcome


endgame_auditor = EndgameAuditor()
