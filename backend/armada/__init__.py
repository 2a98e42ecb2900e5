"""
Armada - batalla naval verificable con compromisos Merkle y apuesta en
fideicomiso.
"""

from .engine import MatchCoordinator, match_coordinator
from .errors import ArmadaError
from .merkle import build_commitment, build_tree
from .player import FleetCommander
from .verifier import ProofVerifier, proof_verifier

__version__ = "0.1.0"

__all__ = [
    "ArmadaError",
    "FleetCommander",
    "MatchCoordinator",
    "ProofVerifier",
    "build_commitment",
    "build_tree",
    "match_coordinator",
    "proof_verifier",
]
