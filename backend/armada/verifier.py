"""
=============================================================================
ARMADA - Verificador de Pruebas Merkle
=============================================================================
Recalcula la raíz a partir de una hoja declarada y su ruta de hermanos, y la
compara con la raíz registrada por el jugador al inicio de la partida.

Un resultado negativo NO es un error transitorio: es evidencia concluyente
de que el jugador mintió (en su compromiso o en el resultado declarado).
=============================================================================
"""

import logging
from typing import Optional, Sequence

from .merkle import combine, hash_leaf, tree_depth


logger = logging.getLogger(__name__)


class ProofVerifier:
    """
    Verificación de pruebas de inclusión con el combinador XOR.

    Como H(a XOR b) == H(b XOR a), el plegado no necesita distinguir
    izquierda y derecha. La posición se liga con:
    - la profundidad esperada para `leaf_count` hojas, y
    - la regla de auto-duplicado en los niveles donde el nodo queda solo.
    El valor declarado se liga a la hoja con la sal de la celda.
    """

    @staticmethod
    def fold(leaf: str, sibling_path: Sequence[str]) -> str:
        """Pliega la ruta sobre la hoja, de hoja a raíz."""
        node = leaf
        for sibling in sibling_path:
            node = combine(node, sibling)
        return node

    def verify(
        self,
        claimed_value: int,
        claimed_leaf: str,
        sibling_path: Sequence[str],
        expected_root: str,
        salt: Optional[int] = None,
        index: Optional[int] = None,
        leaf_count: Optional[int] = None
    ) -> bool:
        """
        Verifica una prueba contra la raíz registrada.

        Args:
            claimed_value: Valor declarado de la celda (0 agua, 1 barco)
            claimed_leaf: Hoja declarada H(valor + sal)
            sibling_path: Hermanos de hoja a raíz
            expected_root: Raíz registrada en el compromiso
            salt: Sal de la celda; si se entrega, la hoja debe abrirse con ella
            index: Índice aplanado (fila * tamaño + columna) de la celda atacada
            leaf_count: Número total de hojas del tablero

        Returns:
            True solo si la raíz recalculada coincide con la registrada
        """
        if salt is not None and hash_leaf(claimed_value, salt) != claimed_leaf:
            logger.debug("[PROOF] Leaf does not open to the claimed value")
            return False

        if index is not None and leaf_count is not None:
            return self._verify_positional(claimed_leaf, sibling_path, expected_root, index, leaf_count)

        return self.fold(claimed_leaf, sibling_path) == expected_root

    def _verify_positional(
        self,
        claimed_leaf: str,
        sibling_path: Sequence[str],
        expected_root: str,
        index: int,
        leaf_count: int
    ) -> bool:
        if not 0 <= index < leaf_count:
            return False
        if len(sibling_path) != tree_depth(leaf_count):
            logger.debug(
                f"[PROOF] Path length {len(sibling_path)} != depth {tree_depth(leaf_count)}"
            )
            return False

        node = claimed_leaf
        width = leaf_count
        for sibling in sibling_path:
            # Nodo solitario al final de un nivel impar: su hermano es él mismo
            if index ^ 1 >= width and sibling != node:
                return False
            node = combine(node, sibling)
            index //= 2
            width = (width + 1) // 2

        return node == expected_root


proof_verifier = ProofVerifier()
