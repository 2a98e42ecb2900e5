"""
=============================================================================
ARMADA - Jerarquía de Errores
=============================================================================
Errores de precondición del protocolo. Ninguno de ellos modifica el estado
de la partida: el llamador debe corregir la entrada y reintentar.

La conducta tramposa (prueba inválida, auditoría fallida) NO se reporta con
excepciones: termina la partida con una causa registrada.
=============================================================================
"""

from typing import Any, Dict, Optional


class ArmadaError(Exception):
    """
    Error base del protocolo.

    Attributes:
        code: Código legible por máquina
        message: Descripción legible
        context: Datos adicionales para depuración
    """
    code: str = "ARMADA_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"[{self.code}] {self.message} ({ctx})"
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class MatchNotFoundError(ArmadaError):
    """ID de partida inexistente o partida ya liquidada."""
    code = "MATCH_NOT_FOUND"
    http_status = 404


class NotAuthorizedError(ArmadaError):
    """El llamador no puede ejecutar la operación (no es su turno, no es jugador...)."""
    code = "NOT_AUTHORIZED"
    http_status = 403


class InvalidPhaseError(ArmadaError):
    """La operación no corresponde a la fase actual de la partida."""
    code = "INVALID_PHASE"
    http_status = 409


class InvalidArgumentError(ArmadaError):
    """Argumento fuera de rango o mal formado."""
    code = "INVALID_ARGUMENT"
    http_status = 422


class AccusationPendingError(ArmadaError):
    """Ya existe una acusación vigente cuyo plazo no ha vencido."""
    code = "ACCUSATION_PENDING"
    http_status = 409


class EscrowError(ArmadaError):
    """Uso inválido del fideicomiso (pago sin fondos, depósito duplicado)."""
    code = "ESCROW_ERROR"
    http_status = 409
