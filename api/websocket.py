"""
WebSocket Endpoint：即時推送遊戲快照

連線時先送一次目前快照，之後轉送 SnapshotBroadcaster 的每一個快照。
Client 不需要送任何訊息；讀取迴圈只用來偵測斷線。
送出失敗或 client 斷線，任一邊結束就關閉整個連線。
"""
import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import logging

router = APIRouter(tags=["websocket"])
logger = logging.getLogger(__name__)


async def _forward_snapshots(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        snapshot = await queue.get()
        await websocket.send_json(snapshot.model_dump(mode="json"))


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        await websocket.receive_text()


@router.websocket("/ws")
async def game_updates(websocket: WebSocket):
    engine = websocket.app.state.engine
    broadcaster = engine.broadcaster

    await websocket.accept()
    queue = broadcaster.subscribe()
    logger.info(f"👤 Client connected. Total: {broadcaster.subscriber_count}")

    tasks = []
    try:
        await websocket.send_json(engine.get_snapshot().model_dump(mode="json"))
        tasks = [
            asyncio.create_task(_forward_snapshots(websocket, queue)),
            asyncio.create_task(_wait_for_disconnect(websocket)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.warning(f"WebSocket connection dropped: {error!r}")
    except WebSocketDisconnect:
        pass
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        broadcaster.unsubscribe(queue)
        logger.info(f"👤 Client disconnected. Total: {broadcaster.subscriber_count}")
