import asyncio
import logging
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from app.core.security import decode_user_id
from app.realtime.change_feed import TABLES, change_feed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime", tags=["realtime"])


@router.websocket("/ws")
async def changes_ws(websocket: WebSocket, token: str = Query(...)):
    """
    Reenvía los avisos del canal de cambios. Los avisos no llevan datos: el
    cliente debe volver a consultar la API. Cada usuario solo recibe los avisos
    de registros en los que participa.
    """
    user_id = decode_user_id(token)
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def forward(event):
        if not event.visible_to(user_id):
            return
        # Las escrituras publican desde el threadpool
        loop.call_soon_threadsafe(queue.put_nowait, event.as_dict())

    def dropped(error):
        # None cierra la conexión para que el cliente se vuelva a suscribir
        loop.call_soon_threadsafe(queue.put_nowait, None)

    unsubscribers = [change_feed.subscribe(table, forward, dropped) for table in TABLES]
    await websocket.accept()
    logger.info("Websocket de cambios abierto para %s", user_id)

    async def pump():
        while True:
            event = await queue.get()
            if event is None:
                logger.warning("Se cayó el canal de cambios; cerrando el websocket de %s", user_id)
                await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
                return
            await websocket.send_json(event)

    async def drain():
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("Websocket de cambios cerrado para %s", user_id)

    sender = asyncio.create_task(pump())
    receiver = asyncio.create_task(drain())
    try:
        await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()
        sender.cancel()
        receiver.cancel()
        results = await asyncio.gather(sender, receiver, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("Falló el websocket de cambios de %s: %r", user_id, result)
