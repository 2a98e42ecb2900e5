"""
=============================================================================
ARMADA - Compromiso Merkle del Tablero
=============================================================================
Cada jugador compromete su tablero completo con una raíz Merkle antes de la
partida. Durante el juego revela celdas individuales con una prueba de
inclusión, sin exponer el resto del tablero.

Reglas de construcción (deben reproducirse bit a bit):
- Hoja:  H(str(valor) + str(sal))  (UTF-8, una sal secreta por celda)
- Padre: H(izquierdo XOR derecho)  (no concatenación)
- Nivel impar: el último nodo se empareja consigo mismo
- H = SHA-256, digests como hex con prefijo 0x (32 bytes)

El combinador XOR es conmutativo: la ruta de hermanos no fija la posición de
la hoja. El verificador liga la coordenada por otros medios (ver verifier).
=============================================================================
"""

import hashlib
import math
import re
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .config import ProtocolConfig
from .errors import InvalidArgumentError


DIGEST_SIZE = 32
DIGEST_HEX_LENGTH = DIGEST_SIZE * 2
HEX_DIGEST = re.compile(r"[0-9a-fA-F]{%d}" % DIGEST_HEX_LENGTH)


# =============================================================================
# PRIMITIVAS DE HASH
# =============================================================================

def hash_bytes(data: bytes) -> str:
    """SHA-256 de bytes arbitrarios, como hex con prefijo 0x."""
    return "0x" + hashlib.sha256(data).hexdigest()


def normalize_digest(value: str) -> str:
    """
    Normaliza un digest a '0x' + 64 hex en minúsculas.

    Raises:
        InvalidArgumentError: si no es un digest de 32 bytes
    """
    if not isinstance(value, str):
        raise InvalidArgumentError("Digest must be a hex string", context={"digest": value})
    raw = value[2:] if value[:2].lower() == "0x" else value
    if len(raw) != DIGEST_HEX_LENGTH:
        raise InvalidArgumentError(
            "Digest must be 32 bytes",
            context={"digest": value, "length": len(raw) // 2}
        )
    if not HEX_DIGEST.fullmatch(raw):
        raise InvalidArgumentError("Digest is not hexadecimal", context={"digest": value})
    return "0x" + raw.lower()


def hash_leaf(value: int, salt: int) -> str:
    """Hoja de una celda: H(str(valor) + str(sal))."""
    return hash_bytes(f"{value}{salt}".encode("utf-8"))


def xor_digests(left: str, right: str) -> bytes:
    """XOR de dos digests de 32 bytes."""
    return (int(left, 16) ^ int(right, 16)).to_bytes(DIGEST_SIZE, "big")


def combine(left: str, right: str) -> str:
    """Nodo padre: H(izquierdo XOR derecho)."""
    return hash_bytes(xor_digests(left, right))


def generate_salts(count: int, bits: Optional[int] = None) -> List[int]:
    """Genera una sal secreta independiente por celda."""
    bits = bits or ProtocolConfig.SALT_BITS
    return [secrets.randbits(bits) for _ in range(count)]


def tree_depth(leaf_count: int) -> int:
    """Número de niveles por encima de las hojas (longitud de toda prueba)."""
    depth = 0
    while leaf_count > 1:
        leaf_count = (leaf_count + 1) // 2
        depth += 1
    return depth


# =============================================================================
# ÁRBOL MERKLE
# =============================================================================

@dataclass(frozen=True)
class MerkleTree:
    """
    Instantánea inmutable de un árbol Merkle.

    levels[0] son las hojas y levels[-1] contiene solo la raíz. Cada
    compromiso es dueño de su propio árbol: no existe estado global.
    """
    levels: Tuple[Tuple[str, ...], ...]

    @classmethod
    def from_leaves(cls, leaves: Sequence[str]) -> 'MerkleTree':
        if not leaves:
            raise InvalidArgumentError("Cannot build a Merkle tree without leaves")

        current = tuple(leaves)
        levels = [current]
        while len(current) > 1:
            parents = []
            for i in range(0, len(current), 2):
                left = current[i]
                right = current[i + 1] if i + 1 < len(current) else left
                parents.append(combine(left, right))
            current = tuple(parents)
            levels.append(current)
        return cls(levels=tuple(levels))

    @property
    def root(self) -> str:
        return self.levels[-1][0]

    @property
    def leaves(self) -> Tuple[str, ...]:
        return self.levels[0]

    @property
    def leaf_count(self) -> int:
        return len(self.levels[0])

    @property
    def depth(self) -> int:
        return len(self.levels) - 1

    def proof(self, index: int) -> List[str]:
        """
        Ruta de hermanos desde la hoja hasta la raíz.

        Un nodo sin hermano (último de un nivel impar) recibe su propio
        digest como hermano.
        """
        if index < 0 or index >= self.leaf_count:
            raise InvalidArgumentError(
                "Leaf index out of range",
                context={"index": index, "leaf_count": self.leaf_count}
            )

        siblings = []
        for level in self.levels[:-1]:
            sibling_index = index ^ 1
            if sibling_index >= len(level):
                sibling_index = index
            siblings.append(level[sibling_index])
            index //= 2
        return siblings


def build_tree(cells: Sequence[int], salts: Union[int, Sequence[int]]) -> MerkleTree:
    """
    Construye el árbol sobre celdas ya aplanadas.

    `salts` puede ser una sal por celda o un único entero reutilizado en
    todas las celdas (aceptable solo en pruebas: valores {0,1} con una sal
    débil son atacables por diccionario).
    """
    if isinstance(salts, int):
        salts = [salts] * len(cells)
    if len(salts) != len(cells):
        raise InvalidArgumentError(
            "One salt per cell is required",
            context={"cells": len(cells), "salts": len(salts)}
        )
    leaves = [hash_leaf(value, salt) for value, salt in zip(cells, salts)]
    return MerkleTree.from_leaves(leaves)


# =============================================================================
# COMPROMISO DE TABLERO
# =============================================================================

@dataclass(frozen=True)
class CellProof:
    """Apertura de una celda: valor, sal, hoja y ruta de hermanos."""
    row: int
    col: int
    value: int
    salt: int
    leaf: str
    siblings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "col": self.col,
            "claimed_value": self.value,
            "salt": str(self.salt),
            "claimed_leaf": self.leaf,
            "sibling_path": list(self.siblings),
        }


@dataclass(frozen=True)
class BoardCommitment:
    """
    Compromiso de un tablero cuadrado, en manos de su dueño.

    Guarda celdas y sales (secretas hasta que se abre cada celda) junto con
    el árbol, para responder pruebas sin recomputar nada.
    """
    board_size: int
    cells: Tuple[int, ...]
    salts: Tuple[int, ...]
    tree: MerkleTree

    @property
    def root(self) -> str:
        return self.tree.root

    def flat_index(self, row: int, col: int) -> int:
        if not (0 <= row < self.board_size and 0 <= col < self.board_size):
            raise InvalidArgumentError(
                "Coordinate outside the board",
                context={"row": row, "col": col, "board_size": self.board_size}
            )
        return row * self.board_size + col

    def proof(self, row: int, col: int) -> CellProof:
        index = self.flat_index(row, col)
        return CellProof(
            row=row,
            col=col,
            value=self.cells[index],
            salt=self.salts[index],
            leaf=self.tree.leaves[index],
            siblings=self.tree.proof(index),
        )


def flatten_board(board: Sequence[Any]) -> Tuple[int, List[int]]:
    """
    Aplana un tablero (lista de filas o lista plana cuadrada).

    Returns:
        (board_size, celdas aplanadas en orden fila-mayor)
    """
    if board and isinstance(board[0], (list, tuple)):
        size = len(board)
        if any(len(row) != size for row in board):
            raise InvalidArgumentError("Board must be square", context={"rows": size})
        return size, [int(cell) for row in board for cell in row]

    size = math.isqrt(len(board))
    if size == 0 or size * size != len(board):
        raise InvalidArgumentError("Flat board length must be a perfect square", context={"cells": len(board)})
    return size, [int(cell) for cell in board]


def build_commitment(
    board: Sequence[Any],
    salts: Optional[Union[int, Sequence[int]]] = None
) -> BoardCommitment:
    """
    Compromete un tablero completo.

    Sin `salts` se genera una sal secreta de 128 bits por celda.
    """
    size, cells = flatten_board(board)
    if salts is None:
        salts = generate_salts(len(cells))
    elif isinstance(salts, int):
        salts = [salts] * len(cells)

    tree = build_tree(cells, salts)
    return BoardCommitment(
        board_size=size,
        cells=tuple(cells),
        salts=tuple(salts),
        tree=tree,
    )
