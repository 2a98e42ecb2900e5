"""
=============================================================================
ARMADA - Lado del Jugador
=============================================================================
El dueño del tablero guarda celdas y sales en secreto, publica solo la raíz,
responde cada ataque con una prueba y, al perder, revela el tablero.
=============================================================================
"""

import logging
from typing import Any, List, Optional, Sequence, Union

from .audit import CellTag, collapse_board
from .merkle import BoardCommitment, CellProof, build_commitment


logger = logging.getLogger(__name__)


class FleetCommander:
    """Tablero secreto de un jugador y su compromiso."""

    def __init__(
        self,
        player_id: str,
        board: Sequence[Any],
        salts: Optional[Union[int, Sequence[int]]] = None
    ):
        self.player_id = player_id
        self.commitment: BoardCommitment = build_commitment(board, salts)
        # Vista del cliente: las celdas atacadas se marcan HIT o MISS
        self.grid: List[int] = list(self.commitment.cells)

    @property
    def root(self) -> str:
        return self.commitment.root

    @property
    def board_size(self) -> int:
        return self.commitment.board_size

    @property
    def ship_cells(self) -> int:
        return sum(self.commitment.cells)

    def answer_attack(self, row: int, col: int) -> CellProof:
        """Prueba honesta para la celda atacada; marca la celda en la vista."""
        proof = self.commitment.proof(row, col)
        index = self.commitment.flat_index(row, col)
        self.grid[index] = CellTag.HIT if proof.value == 1 else CellTag.MISS
        logger.debug(f"[PLAYER] {self.player_id} answers ({row}, {col}) -> {proof.value}")
        return proof

    def reveal_board(self) -> List[int]:
        """Tablero completo para la auditoría, ya colapsado a {0, 1}."""
        return collapse_board(self.grid)
