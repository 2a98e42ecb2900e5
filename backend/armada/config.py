"""
=============================================================================
ARMADA - Configuración del Protocolo
=============================================================================
Parámetros de la partida y del arbitraje. Los valores por defecto pueden
sobrescribirse con variables de entorno o con un archivo JSON de parámetros
de juego (formato heredado: {"gameParam": {"boardSize", "numberOfShips"}}).
=============================================================================
"""

import json
import logging
import os
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    """Lee un entero del entorno; si el valor es inválido usa el default."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[CONFIG] {name}={raw!r} no es un entero, usando {default}")
        return default


class ProtocolConfig:
    """Constantes del protocolo de batalla naval verificable."""

    # Tablero: 10x10 con 17 celdas de barco
    BOARD_SIZE = _env_int('ARMADA_BOARD_SIZE', 10)
    SHIP_TARGET = _env_int('ARMADA_SHIP_TARGET', 17)
    MAX_BOARD_SIZE = _env_int('ARMADA_MAX_BOARD_SIZE', 32)

    # Ventana de acusación en bloques del reloj lógico
    ACCUSATION_WINDOW = _env_int('ARMADA_ACCUSATION_WINDOW', 5)

    # Bits de entropía por sal de celda
    SALT_BITS = _env_int('ARMADA_SALT_BITS', 128)

    # Multiplicador del pozo: cada jugador aporta un stake
    POT_MULTIPLIER = 2

    LOG_LEVEL = os.environ.get('ARMADA_LOG_LEVEL', 'INFO')
    GAME_PARAMS_FILE = os.environ.get('ARMADA_GAME_PARAMS')


def load_game_params(path: Optional[str] = None) -> Dict[str, int]:
    """
    Carga los parámetros de juego desde un archivo JSON.

    Si el archivo no existe o no se puede leer, retorna los valores por
    defecto de ProtocolConfig.
    """
    params = {
        "board_size": ProtocolConfig.BOARD_SIZE,
        "ship_target": ProtocolConfig.SHIP_TARGET,
    }
    path = path or ProtocolConfig.GAME_PARAMS_FILE
    if not path:
        return params

    try:
        with open(path, encoding="utf-8") as fh:
            data: Dict[str, Any] = json.load(fh)
    except (OSError, ValueError) as e:
        logger.warning(
            f"[CONFIG] No se pudo cargar {path} ({e}); usando boardSize={params['board_size']} "
            f"numberOfShips={params['ship_target']}"
        )
        return params

    game_param = data.get("gameParam", {})
    if "boardSize" in game_param:
        params["board_size"] = int(game_param["boardSize"])
    if "numberOfShips" in game_param:
        params["ship_target"] = int(game_param["numberOfShips"])
    return params


def configure_logging(level: Optional[str] = None):
    """Configura el logging raíz del servicio."""
    logging.basicConfig(
        level=(level or ProtocolConfig.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
