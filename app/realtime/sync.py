import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.core.config import SYNC_STALE_AFTER_SECONDS
from app.core.exceptions import ReconciliationError
from app.realtime.change_feed import DEBTS, PROFILES, TRANSACTIONS
from app.realtime.subscription import ChangeSource, RetryPolicy, SubscriptionManager

logger = logging.getLogger(__name__)

TransactionsFetcher = Callable[[], Awaitable[List[Dict[str, Any]]]]
BalancesFetcher = Callable[[], Awaitable[Dict[str, float]]]


class TransactionSync:
    """
    Copia local de las transacciones y saldos de un usuario.

    Las mutaciones propias se aplican de inmediato (optimistas) y luego la
    respuesta autoritativa reemplaza todo el estado local, sin mezclar.
    """

    def __init__(
        self,
        user_id: str,
        fetch_transactions: TransactionsFetcher,
        fetch_balances: BalancesFetcher,
        source: ChangeSource,
        *,
        policy: Optional[RetryPolicy] = None,
        debounce_window: Optional[float] = None,
        stale_after: float = SYNC_STALE_AFTER_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.user_id = str(user_id)
        self._fetch_transactions = fetch_transactions
        self._fetch_balances = fetch_balances
        self._clock = clock
        self.stale_after = stale_after
        self.manager = SubscriptionManager(
            source, policy=policy, debounce_window=debounce_window, on_degraded=self._on_degraded
        )

        self.transactions: List[Dict[str, Any]] = []
        self.friend_balances: Dict[str, float] = {}
        self.last_synced_at: Optional[float] = None
        self.error: Optional[str] = None
        self.degraded = False
        self._running: Dict[str, bool] = {}
        self._rerun: Dict[str, bool] = {}

    # -- refresco autoritativo ------------------------------------------------

    async def _refresh(self, name: str, fetch, apply) -> None:
        # Si ya hay un refresco en curso se marca para repetir al terminar
        if self._running.get(name):
            self._rerun[name] = True
            return
        self._running[name] = True
        try:
            while True:
                self._rerun[name] = False
                try:
                    result = await fetch()
                except Exception as exc:
                    logger.warning("[Sync] Error al refrescar %s: %s", name, exc)
                    self.error = "No fue posible sincronizar. Intenta refrescar."
                    break
                apply(result)
                self.last_synced_at = self._clock()
                self.error = None
                if not self._rerun[name]:
                    break
        finally:
            self._running[name] = False

    async def refresh_transactions(self) -> None:
        await self._refresh(TRANSACTIONS, self._fetch_transactions, self._apply_transactions)

    async def refresh_balances(self) -> None:
        await self._refresh(DEBTS, self._fetch_balances, self._apply_balances)

    async def refresh_all(self) -> None:
        await self.refresh_transactions()
        await self.refresh_balances()

    def _apply_transactions(self, fetched: List[Dict[str, Any]]) -> None:
        self.transactions = list(fetched)

    def _apply_balances(self, balances: Dict[str, float]) -> None:
        self.friend_balances = dict(balances)

    # -- mutaciones optimistas ----------------------------------------------

    def add_optimistic(self, transaction: Dict[str, Any]) -> None:
        self.transactions = [transaction] + self.transactions

    def update_optimistic(self, transaction_id: str, updated: Dict[str, Any]) -> None:
        self.transactions = [updated if t["id"] == transaction_id else t for t in self.transactions]

    def remove_optimistic(self, transaction_id: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        self.transactions = [
            {**t, "deleted_at": now} if t["id"] == transaction_id else t
            for t in self.transactions
        ]

    @property
    def visible_transactions(self) -> List[Dict[str, Any]]:
        return [t for t in self.transactions if not t.get("deleted_at")]

    # -- ciclo de vida --------------------------------------------------------

    async def start(self) -> None:
        await self.refresh_all()
        await self.manager.subscribe(f"transactions:{self.user_id}", TRANSACTIONS, self.refresh_transactions)
        await self.manager.subscribe(f"debts:{self.user_id}", DEBTS, self.refresh_balances)
        await self.manager.subscribe("profiles", PROFILES, self.refresh_transactions)

    async def stop(self) -> None:
        await self.manager.close()

    def _on_degraded(self, key: str, error: ReconciliationError) -> None:
        self.degraded = True
        self.error = "Los datos pueden estar desactualizados."
        logger.warning("[Sync] %s sin suscripción: %s", key, error)

    def is_stale(self) -> bool:
        if self.degraded or self.last_synced_at is None:
            return True
        return self._clock() - self.last_synced_at > self.stale_after
