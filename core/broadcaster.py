"""
Broadcast Synchronizer：把快照推送給所有訂閱者

觸發時機（由 RoundEngine 呼叫 publish）：
- 每一張成功的投票
- 每一次階段轉換
- 倒數心跳（每 heartbeat_interval_seconds 秒）
- 管理員操作（設定獎金、標記付款）

publish() 是 fire-and-forget：
    不等待、不阻塞、不理會送達失敗；
    慢的訂閱者佇列滿了就丟掉最舊的快照
"""
import asyncio
from typing import Callable, Dict, List
import logging

from schemas import GameSnapshot

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[GameSnapshot], None]


class SnapshotBroadcaster:
    """快照廣播器"""

    def __init__(self, queue_size: int = 32):
        self._queue_size = queue_size
        self._subscribers: Dict[asyncio.Queue, SnapshotListener] = {}
        self._listeners: List[SnapshotListener] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        """
        訂閱快照（WebSocket 連線用）

        返回：
            有上限的 asyncio.Queue，呼叫者從中 await get()
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)

        def enqueue(snapshot: GameSnapshot) -> None:
            if queue.full():
                # 慢的訂閱者：丟掉最舊的，只保留最新狀態
                queue.get_nowait()
            queue.put_nowait(snapshot)

        self._subscribers[queue] = enqueue
        self.add_listener(enqueue)
        logger.info(f"Client subscribed. Total: {len(self._subscribers)}")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        listener = self._subscribers.pop(queue, None)
        if listener is not None:
            self.remove_listener(listener)
        logger.info(f"Client unsubscribed. Total: {len(self._subscribers)}")

    def add_listener(self, listener: SnapshotListener) -> None:
        """註冊同步 callback（on_snapshot），不可以阻塞"""
        self._listeners.append(listener)

    def remove_listener(self, listener: SnapshotListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, snapshot: GameSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                # 傳輸層的錯誤不影響 Engine
                logger.error(f"Snapshot listener {listener!r} failed: {e}", exc_info=True)

        logger.debug(
            f"Broadcast snapshot #{snapshot.sequence} to {len(self._subscribers)} subscribers"
        )
