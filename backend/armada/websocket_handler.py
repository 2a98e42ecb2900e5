"""
=============================================================================
ARMADA - Servidor WebSocket (Socket.IO)
=============================================================================
Canal de notificaciones en tiempo real. Las acciones del juego entran por
HTTP; aquí los clientes se suscriben a la sala de una partida y reciben cada
evento que el coordinador emite.

Eventos Cliente -> Servidor:
- watch_match: Suscribirse a una partida (recibe un snapshot)
- leave_match: Dejar de recibir eventos

Eventos Servidor -> Cliente:
- connected, match_snapshot, error
- Uno por cada variante de MatchEvent (players_joined, attack_declared,
  proof_result, winner_declared, ...)
=============================================================================
"""

import logging
import time
from typing import Iterable

import socketio

from .engine import match_coordinator
from .errors import ArmadaError, InvalidArgumentError
from .events import MatchEvent


logger = logging.getLogger(__name__)


class SocketConfig:
    """Configuración de Socket.IO."""
    HEARTBEAT_INTERVAL = 25
    HEARTBEAT_TIMEOUT = 60


sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins='*',
    ping_timeout=SocketConfig.HEARTBEAT_TIMEOUT,
    ping_interval=SocketConfig.HEARTBEAT_INTERVAL
)


def room_name(match_id: int) -> str:
    return f"match_{match_id}"


def _match_id_from(data) -> int:
    try:
        return int(data['match_id'])
    except (KeyError, TypeError, ValueError):
        raise InvalidArgumentError("match_id is required", context={"data": data})


# =============================================================================
# HANDLERS DE EVENTOS
# =============================================================================

@sio.event
async def connect(sid: str, environ: dict, auth: dict = None):
    logger.info(f"[WS] Nueva conexión: {sid}")
    await sio.emit('connected', {
        'sid': sid,
        'message': 'Conectado a Armada',
        'server_time': time.time()
    }, room=sid)


@sio.event
async def disconnect(sid: str):
    logger.info(f"[WS] Desconexión: {sid}")


@sio.event
async def watch_match(sid: str, data: dict):
    """Suscribe el socket a la sala de la partida y envía su estado actual."""
    try:
        match_id = _match_id_from(data)
        snapshot = match_coordinator.get_match(match_id)
    except ArmadaError as e:
        await sio.emit('error', e.to_dict(), room=sid)
        return

    await sio.enter_room(sid, room_name(match_id))
    await sio.emit('match_snapshot', snapshot, room=sid)


@sio.event
async def leave_match(sid: str, data: dict):
    try:
        match_id = _match_id_from(data)
    except ArmadaError as e:
        await sio.emit('error', e.to_dict(), room=sid)
        return
    await sio.leave_room(sid, room_name(match_id))


async def broadcast_events(events: Iterable[MatchEvent]):
    """Reenvía los eventos del coordinador a la sala de cada partida."""
    for event in events:
        await sio.emit(event.event_type, event.to_dict(), room=room_name(event.match_id))


# =============================================================================
# APLICACIÓN ASGI
# =============================================================================

def create_socket_app(other_asgi_app=None):
    """Envuelve la app HTTP: Socket.IO atiende /socket.io y delega el resto."""
    return socketio.ASGIApp(sio, other_asgi_app=other_asgi_app)
