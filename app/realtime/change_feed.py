# app/realtime/change_feed.py
"""
Canal de cambios en proceso.

Se publica un evento por tabla después de cada commit exitoso. La entrega es
"al menos una vez" y sin carga útil garantizada más allá de "algo cambió":
los suscriptores siempre deben volver a consultar la fuente autoritativa.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
DEBTS = "debts"
MONTHLY_BALANCES = "monthly_balances"
PROFILES = "profiles"
TABLES = (TRANSACTIONS, DEBTS, MONTHLY_BALANCES, PROFILES)


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    action: str
    record_id: Optional[str] = None
    at: datetime = field(default_factory=datetime.utcnow)
    # Usuarios que pueden ver el registro; None = todos
    audience: Optional[FrozenSet[str]] = None

    def visible_to(self, user_id) -> bool:
        return self.audience is None or str(user_id) in self.audience

    def as_dict(self) -> dict:
        return {
            "table": self.table,
            "action": self.action,
            "record_id": self.record_id,
            "at": self.at.isoformat(),
        }


ChangeCallback = Callable[[ChangeEvent], None]
ErrorCallback = Callable[[Exception], None]


@dataclass
class _Listener:
    on_change: ChangeCallback
    on_error: Optional[ErrorCallback] = None


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: Dict[str, List[_Listener]] = {}

    def subscribe(
        self,
        table: str,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Callable[[], None]:
        if table not in TABLES:
            raise ValueError(f"Tabla desconocida: {table}")
        listener = _Listener(on_change, on_error)
        with self._lock:
            self._listeners.setdefault(table, []).append(listener)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(table, [])
                if listener in listeners:
                    listeners.remove(listener)

        return unsubscribe

    def publish(
        self,
        table: str,
        action: str,
        record_id: Optional[str] = None,
        audience: Optional[Iterable] = None,
    ) -> None:
        event = ChangeEvent(
            table=table,
            action=action,
            record_id=record_id,
            audience=frozenset(str(u) for u in audience) if audience is not None else None,
        )
        with self._lock:
            listeners = list(self._listeners.get(table, []))
        for listener in listeners:
            try:
                listener.on_change(event)
            except Exception:
                # Un suscriptor roto no puede tumbar la escritura que ya se confirmó
                logger.exception("Falló un suscriptor de %s", table)

    def drop(self, table: str, error: Exception) -> None:
        """Corta todas las suscripciones de una tabla avisando a cada una."""
        with self._lock:
            listeners = self._listeners.pop(table, [])
        for listener in listeners:
            if listener.on_error is not None:
                listener.on_error(error)

    def listener_count(self, table: str) -> int:
        with self._lock:
            return len(self._listeners.get(table, []))


change_feed = ChangeFeed()
