"""
=============================================================================
ARMADA - Punto de Entrada Principal (FastAPI + Socket.IO)
=============================================================================
Servidor del protocolo de batalla naval verificable con apuesta en
fideicomiso.

Integra:
- FastAPI para la API REST de partidas
- Socket.IO para notificar los eventos de cada partida
- Middleware de seguridad y CORS
=============================================================================
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import router as matches_router
from .config import ProtocolConfig, configure_logging
from .engine import match_coordinator
from .errors import ArmadaError
from .websocket_handler import create_socket_app


logger = logging.getLogger(__name__)


# =============================================================================
# LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gestiona el ciclo de vida de la aplicación."""
    configure_logging()
    logger.info("[ARMADA] Iniciando servidor...")
    logger.info(
        f"[ARMADA] Tablero {ProtocolConfig.BOARD_SIZE}x{ProtocolConfig.BOARD_SIZE}, "
        f"{ProtocolConfig.SHIP_TARGET} barcos, ventana de acusación {ProtocolConfig.ACCUSATION_WINDOW} bloques"
    )
    yield
    logger.info("[ARMADA] Cerrando servidor...")


# =============================================================================
# APLICACIÓN FASTAPI
# =============================================================================

app = FastAPI(
    title="Armada API",
    description="""
    ## Batalla naval con tableros comprometidos por Merkle

    ### Características:
    - **Compromiso**: cada tablero se fija con una raíz Merkle antes de jugar
    - **Prueba por disparo**: cada respuesta se verifica contra la raíz
    - **Auditoría final**: el perdedor revela su tablero completo
    - **Acusaciones**: un jugador inactivo pierde por timeout

    ### Estados de Partida (FSM):
    1. JOINABLE → PAIRED → STAKE_AGREED → STARTED → IN_PROGRESS → FINISHED
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# =============================================================================
# MIDDLEWARE
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Agrega headers de seguridad a las respuestas."""
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.exception_handler(ArmadaError)
async def armada_error_handler(request: Request, exc: ArmadaError):
    """Errores de precondición: la partida no cambió, el cliente corrige y reintenta."""
    logger.info(f"[API] {request.method} {request.url.path} -> {exc}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# =============================================================================
# ENDPOINTS - HEALTH & STATUS
# =============================================================================

@app.get("/health")
async def health_check():
    """Endpoint de health check para Docker y load balancers."""
    return {
        "status": "healthy",
        "service": "armada-backend",
        "version": "0.1.0",
        "timestamp": time.time()
    }


@app.get("/")
async def root():
    return {
        "message": "Bienvenido a Armada API",
        "docs": "/docs",
        "health": "/health",
        "websocket": "/socket.io",
        "version": "0.1.0"
    }


@app.get("/api/v1/status")
async def server_status():
    """Estado del registro de partidas y del fideicomiso."""
    return {
        "server": "online",
        **match_coordinator.status(),
        "escrow": match_coordinator.escrow.get_summary(),
        "timestamp": time.time()
    }


@app.get("/api/v1/escrow/verify")
async def verify_escrow():
    """Verifica la cadena de hashes del libro del fideicomiso."""
    return match_coordinator.escrow.verify_all_entries()


app.include_router(matches_router, prefix="/api/v1")


# =============================================================================
# MONTAR SOCKET.IO
# =============================================================================

# Socket.IO envuelve a FastAPI para que los upgrades WebSocket funcionen
combined_app = create_socket_app(app)
