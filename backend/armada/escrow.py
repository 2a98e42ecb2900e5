"""
=============================================================================
ARMADA - Fideicomiso (Escrow) de Apuestas
=============================================================================
Capacidad externa que retiene el stake de cada jugador y paga el pozo al
ganador. El núcleo solo llama a hold() y payout(); el movimiento real de
fondos pertenece al sustrato (ledger, contrato, billetera).

EscrowLedger es la implementación en memoria: cada movimiento queda en un
libro encadenado por hashes para auditoría posterior.
=============================================================================
"""

import hashlib
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List

from .errors import EscrowError


logger = logging.getLogger(__name__)


class Escrow(ABC):
    """Interfaz de fideicomiso consumida por el coordinador."""

    @abstractmethod
    def hold(self, match_id: int, player: str, amount: Decimal):
        """Retiene el stake de un jugador."""

    @abstractmethod
    def payout(self, match_id: int, recipient: str, amount: Decimal):
        """Paga el pozo al ganador."""

    @abstractmethod
    def held(self, match_id: int) -> Decimal:
        """Monto retenido para la partida."""


@dataclass
class EscrowEntry:
    """Movimiento del libro: HOLD (entrada de stake) o PAYOUT (premio)."""
    entry_id: str
    match_id: int
    kind: str
    party: str
    amount: Decimal
    timestamp: float
    previous_hash: str = ""
    entry_hash: str = ""

    def compute_entry_hash(self) -> str:
        """Hash de la entrada, encadenado con la anterior."""
        data = {
            "entry_id": self.entry_id,
            "match_id": self.match_id,
            "kind": self.kind,
            "party": self.party,
            "amount": str(self.amount),
            "timestamp": self.timestamp,
            "previous_hash": self.previous_hash,
        }
        return hashlib.sha256(json.dumps(data, sort_keys=True).encode()).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "match_id": self.match_id,
            "kind": self.kind,
            "party": self.party,
            "amount": str(self.amount),
            "timestamp": self.timestamp,
            "entry_hash": self.entry_hash,
        }


class EscrowLedger(Escrow):
    """
    Fideicomiso en memoria con libro encadenado.

    Invariante: para cada partida, lo pagado nunca supera lo retenido.
    """

    def __init__(self):
        self.entries: List[EscrowEntry] = []
        self.balances: Dict[int, Decimal] = {}
        self._sequence = 0
        self._lock = threading.Lock()

    def hold(self, match_id: int, player: str, amount: Decimal):
        amount = Decimal(amount)
        if amount <= 0:
            raise EscrowError("Hold amount must be positive", context={"match_id": match_id, "amount": str(amount)})

        with self._lock:
            self._append(match_id, "HOLD", player, amount)
            self.balances[match_id] = self.balances.get(match_id, Decimal("0")) + amount

        logger.info(f"[ESCROW] Held {amount} from {player} for match {match_id}")

    def payout(self, match_id: int, recipient: str, amount: Decimal):
        amount = Decimal(amount)
        with self._lock:
            available = self.balances.get(match_id, Decimal("0"))
            if amount <= 0 or amount > available:
                raise EscrowError(
                    "Payout exceeds escrowed funds",
                    context={"match_id": match_id, "amount": str(amount), "held": str(available)}
                )
            self._append(match_id, "PAYOUT", recipient, amount)
            remaining = available - amount
            if remaining:
                self.balances[match_id] = remaining
            else:
                del self.balances[match_id]

        logger.info(f"[ESCROW] Paid {amount} to {recipient} for match {match_id}")

    def held(self, match_id: int) -> Decimal:
        return self.balances.get(match_id, Decimal("0"))

    def payouts_for(self, match_id: int) -> List[EscrowEntry]:
        return [e for e in self.entries if e.match_id == match_id and e.kind == "PAYOUT"]

    def _append(self, match_id: int, kind: str, party: str, amount: Decimal):
        self._sequence += 1
        entry = EscrowEntry(
            entry_id=f"ESC-{match_id}-{self._sequence}",
            match_id=match_id,
            kind=kind,
            party=party,
            amount=amount,
            timestamp=time.time(),
            previous_hash=self.entries[-1].entry_hash if self.entries else "",
        )
        entry.entry_hash = entry.compute_entry_hash()
        self.entries.append(entry)

    def verify_all_entries(self) -> Dict[str, Any]:
        """
        Verifica la cadena de hashes y recalcula los saldos retenidos.
        """
        calculated: Dict[int, Decimal] = {}
        broken_entries = []
        previous = ""

        for entry in self.entries:
            if entry.previous_hash != previous or entry.compute_entry_hash() != entry.entry_hash:
                broken_entries.append(entry.entry_id)
            previous = entry.entry_hash

            delta = entry.amount if entry.kind == "HOLD" else -entry.amount
            calculated[entry.match_id] = calculated.get(entry.match_id, Decimal("0")) + delta

        calculated = {k: v for k, v in calculated.items() if v}
        drift = {
            str(k): str(calculated.get(k, Decimal("0")) - self.balances.get(k, Decimal("0")))
            for k in set(calculated) | set(self.balances)
            if calculated.get(k, Decimal("0")) != self.balances.get(k, Decimal("0"))
        }

        return {
            "total_entries_verified": len(self.entries),
            "broken_entries": broken_entries,
            "drift": drift,
            "integrity_status": "OK" if not broken_entries and not drift else "ALERT",
        }

    def get_summary(self) -> Dict[str, Any]:
        return {
            "total_held": str(sum(self.balances.values(), Decimal("0"))),
            "matches_with_funds": len(self.balances),
            "total_entries": len(self.entries),
            "last_entry": self.entries[-1].entry_id if self.entries else None,
        }
