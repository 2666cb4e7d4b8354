# app/realtime/client.py
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from httpx_ws import aconnect_ws

from app.realtime.change_feed import TABLES

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class LedgerApiClient:
    """Cliente HTTP asíncrono contra la API del libro de cuentas."""

    def __init__(self, base_url: str, token: str, timeout: float = 10, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {token}"}
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def fetch_transactions(self, include_deleted: bool = True) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        async with self._client() as client:
            while True:
                r = await client.get(
                    "/transactions",
                    params={"page": page, "page_size": PAGE_SIZE, "includeDeleted": include_deleted},
                )
                r.raise_for_status()
                data = r.json()
                items.extend(data["items"])
                if page >= data["totalPages"]:
                    return items
                page += 1

    async def fetch_friend_balances(self) -> Dict[str, float]:
        async with self._client() as client:
            r = await client.get("/balances/friends")
            r.raise_for_status()
            return {b["friend_id"]: float(b["balance"]) for b in r.json()}

    async def fetch_monthly_balances(self) -> List[Dict[str, Any]]:
        async with self._client() as client:
            r = await client.get("/balances/monthly")
            r.raise_for_status()
            return r.json()

    async def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with self._client() as client:
            r = await client.post("/transactions", json=payload)
            r.raise_for_status()
            return r.json()

    async def update_transaction(self, transaction_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with self._client() as client:
            r = await client.put(f"/transactions/{transaction_id}", json=payload)
            r.raise_for_status()
            return r.json()

    async def delete_transaction(self, transaction_id: str) -> Dict[str, Any]:
        async with self._client() as client:
            r = await client.delete(f"/transactions/{transaction_id}")
            r.raise_for_status()
            return r.json()


class WebSocketChangeSource:
    """
    Canal de cambios remoto sobre `/realtime/ws`.

    Todas las tablas comparten una conexión. `subscribe` espera a que la
    conexión quede abierta y lanza ConnectionError si no lo logra; si la
    conexión se cae después, cada suscriptor recibe `on_error` y se descarta.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._listeners: Dict[str, List[Tuple[Callable, Optional[Callable]]]] = {}
        self._task: Optional[asyncio.Task] = None
        self._ready: Optional[asyncio.Future] = None
        self._cancelled: set = set()
        self.connections = 0

    @property
    def connected(self) -> bool:
        return (
            self._task is not None
            and not self._task.done()
            and self._ready is not None
            and self._ready.done()
            and self._ready.exception() is None
        )

    async def subscribe(self, table: str, on_change, on_error=None) -> Callable[[], None]:
        if table not in TABLES:
            raise ValueError(f"Tabla desconocida: {table}")
        await self._ensure_connected()

        listener = (on_change, on_error)
        self._listeners.setdefault(table, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(table, [])
            if listener in listeners:
                listeners.remove(listener)
            if not any(self._listeners.values()) and self._task is not None:
                self._task.cancel()
                self._cancelled.add(self._task)
                self._task = None

        return unsubscribe

    async def _ensure_connected(self) -> None:
        if self._task is None or self._task.done():
            loop = asyncio.get_running_loop()
            self._ready = loop.create_future()
            self._task = loop.create_task(self._run(self._ready))
        try:
            await asyncio.wait_for(asyncio.shield(self._ready), self._timeout)
        except asyncio.TimeoutError as exc:
            raise ConnectionError("No se pudo abrir el websocket de cambios a tiempo") from exc

    async def _run(self, ready: asyncio.Future) -> None:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, transport=self._transport) as client:
                async with aconnect_ws(f"/realtime/ws?token={self._token}", client) as ws:
                    self.connections += 1
                    ready.set_result(None)
                    while True:
                        self._dispatch(await ws.receive_json())
        except Exception as exc:
            error = ConnectionError(f"Websocket de cambios: {exc!r}")
            if not ready.done():
                ready.set_exception(error)
                return
            logger.warning("Se cayó el websocket de cambios: %r", exc)
            self._drop(error)
        finally:
            if not ready.done():
                ready.set_exception(ConnectionError("Websocket de cambios cerrado"))

    def _dispatch(self, event: Dict[str, Any]) -> None:
        for on_change, _ in list(self._listeners.get(event.get("table"), [])):
            on_change(event)

    def _drop(self, error: Exception) -> None:
        listeners, self._listeners = self._listeners, {}
        for entries in listeners.values():
            for _, on_error in entries:
                if on_error is not None:
                    on_error(error)

    async def aclose(self) -> None:
        self._listeners = {}
        tasks = set(self._cancelled)
        if self._task is not None:
            tasks.add(self._task)
        self._task = None
        self._cancelled.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
