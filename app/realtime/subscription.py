# app/realtime/subscription.py
"""
Suscripciones con reintento acotado.

Cada suscripción pasa por los estados idle -> subscribed; ante una falla entra
en retrying(n) con espera exponencial (base * 2^(n-1), con tope) y, si se
agotan los intentos, queda en failed y se avisa que los datos pueden estar
desactualizados. Nunca se reintenta para siempre.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Callable, Dict, Optional, Protocol

from app.core.config import (
    REALTIME_BASE_DELAY_MS,
    REALTIME_DEBOUNCE_MS,
    REALTIME_MAX_DELAY_MS,
    REALTIME_MAX_RETRIES,
)
from app.core.exceptions import ReconciliationError
from app.realtime.debounce import Callback, Debouncer

logger = logging.getLogger(__name__)


class SubscriptionState(str, Enum):
    idle = "idle"
    subscribed = "subscribed"
    retrying = "retrying"
    failed = "failed"
    closed = "closed"


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = REALTIME_MAX_RETRIES
    base_delay: float = REALTIME_BASE_DELAY_MS / 1000
    max_delay: float = REALTIME_MAX_DELAY_MS / 1000

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)


class ChangeSource(Protocol):
    # Puede ser async: entonces la suscripción falla si no logra conectarse
    def subscribe(self, table: str, on_change, on_error=None) -> Callable[[], None]:
        ...


@dataclass
class Subscription:
    key: str
    table: str
    state: SubscriptionState = SubscriptionState.idle
    attempts: int = 0
    last_error: Optional[Exception] = None
    debouncer: Optional[Debouncer] = None
    _unsubscribe: Optional[Callable[[], None]] = field(default=None, repr=False)
    _task: Optional[asyncio.Task] = field(default=None, repr=False)


DegradedCallback = Callable[[str, ReconciliationError], None]


class SubscriptionManager:
    def __init__(
        self,
        source: ChangeSource,
        policy: Optional[RetryPolicy] = None,
        debounce_window: Optional[float] = None,
        on_degraded: Optional[DegradedCallback] = None,
    ):
        self._source = source
        self.policy = policy or RetryPolicy()
        self.debounce_window = REALTIME_DEBOUNCE_MS / 1000 if debounce_window is None else debounce_window
        self._on_degraded = on_degraded
        self._subscriptions: Dict[str, Subscription] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def degraded(self) -> bool:
        return any(s.state == SubscriptionState.failed for s in self._subscriptions.values())

    def get(self, key: str) -> Optional[Subscription]:
        return self._subscriptions.get(key)

    async def subscribe(self, key: str, table: str, on_change: Callback) -> Subscription:
        """Primer intento inmediato; los reintentos siguen en segundo plano."""
        self._loop = asyncio.get_running_loop()
        self.unsubscribe(key)

        sub = Subscription(key=key, table=table)
        sub.debouncer = Debouncer(self.debounce_window, on_change, self._loop)
        self._subscriptions[key] = sub
        await self._connect(sub)
        return sub

    async def _connect(self, sub: Subscription) -> None:
        if sub.state == SubscriptionState.closed:
            return
        try:
            unsubscribe = self._source.subscribe(
                sub.table,
                sub.debouncer.trigger,
                on_error=partial(self._on_drop, sub),
            )
            if inspect.isawaitable(unsubscribe):
                unsubscribe = await unsubscribe
        except (ReconciliationError, ConnectionError, OSError) as exc:
            self._on_failure(sub, exc)
            return

        if sub.state == SubscriptionState.closed:
            # Se cerró mientras se conectaba
            unsubscribe()
            return
        sub._unsubscribe = unsubscribe

        sub.state = SubscriptionState.subscribed
        sub.attempts = 0
        sub.last_error = None
        logger.info("Suscripción %s activa", sub.key)

    def _on_failure(self, sub: Subscription, error: Exception) -> None:
        sub.attempts += 1
        sub.last_error = error

        if sub.attempts > self.policy.max_retries:
            sub.state = SubscriptionState.failed
            logger.warning("Se agotaron los reintentos de %s; los datos pueden estar desactualizados", sub.key)
            if self._on_degraded is not None:
                signal = error if isinstance(error, ReconciliationError) else ReconciliationError(str(error))
                self._on_degraded(sub.key, signal)
            return

        delay = self.policy.delay_for(sub.attempts)
        sub.state = SubscriptionState.retrying
        logger.warning("Reintentando %s en %.2fs (intento %d)", sub.key, delay, sub.attempts)
        sub._task = self._loop.create_task(self._retry_after(sub, delay))

    async def _retry_after(self, sub: Subscription, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._connect(sub)

    def _on_drop(self, sub: Subscription, error: Exception) -> None:
        # Puede llegar desde otro hilo
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._handle_drop, sub, error)

    def _handle_drop(self, sub: Subscription, error: Exception) -> None:
        if sub.state == SubscriptionState.closed:
            return
        sub._unsubscribe = None
        logger.warning("Se cayó la suscripción %s: %s", sub.key, error)
        self._on_failure(sub, error)

    async def wait_settled(self, key: str) -> Optional[Subscription]:
        """Espera a que termine la cadena de reintentos en curso."""
        sub = self._subscriptions.get(key)
        while sub is not None:
            task = sub._task
            if task is None or task.done():
                break
            await asyncio.wait({task})
        return sub

    def unsubscribe(self, key: str) -> None:
        sub = self._subscriptions.pop(key, None)
        if sub is None:
            return
        sub.state = SubscriptionState.closed
        if sub._task is not None:
            sub._task.cancel()
        if sub.debouncer is not None:
            sub.debouncer.cancel()
        if sub._unsubscribe is not None:
            sub._unsubscribe()
            sub._unsubscribe = None

    async def close(self) -> None:
        for key in list(self._subscriptions):
            self.unsubscribe(key)
