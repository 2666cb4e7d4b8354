import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[None, Awaitable[None]]]


class Debouncer:
    """
    Agrupa ráfagas de avisos: cada `trigger()` reinicia el temporizador y el
    callback corre una sola vez cuando pasa `window` segundos sin avisos.

    `trigger()` se puede llamar desde cualquier hilo; el temporizador vive en
    el loop con el que se creó.
    """

    def __init__(self, window: float, callback: Callback, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.window = window
        self._callback = callback
        self._loop = loop or asyncio.get_running_loop()
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: set = set()
        self.pending = 0  # avisos acumulados desde el último disparo
        self.fired = 0

    def trigger(self, *_args) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._arm)

    def _arm(self) -> None:
        self.pending += 1
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._loop.call_later(self.window, self._fire)

    def _fire(self) -> None:
        self._handle = None
        coalesced, self.pending = self.pending, 0
        self.fired += 1
        logger.debug("Disparo agrupado de %d avisos", coalesced)
        result = self._callback()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.pending = 0
        for task in list(self._tasks):
            task.cancel()
