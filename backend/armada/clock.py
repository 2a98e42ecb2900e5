"""
=============================================================================
ARMADA - Reloj Lógico
=============================================================================
Contador monótono de "bloques". Los plazos de acusación se miden en bloques,
no en segundos: cualquier sustrato que ordene las transacciones sirve.
=============================================================================
"""

import threading


class LogicalClock:
    """Reloj lógico monótono (altura de bloque)."""

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError("Clock cannot start below zero")
        self._height = start
        self._lock = threading.Lock()

    def now(self) -> int:
        """Altura actual."""
        return self._height

    def tick(self) -> int:
        """Avanza un bloque y retorna la nueva altura."""
        return self.advance(1)

    def advance(self, blocks: int) -> int:
        """Avanza `blocks` bloques. El reloj nunca retrocede."""
        if blocks < 0:
            raise ValueError("Logical clock cannot go backwards")
        with self._lock:
            self._height += blocks
            return self._height
