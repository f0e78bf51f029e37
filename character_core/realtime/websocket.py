"""把 Starlette WebSocket 包装成会话管理器使用的 OutboundConnection。

音频处理线程的回调通过 run_coroutine_threadsafe 投递到连接所在的事件循环，
同一连接上的写入由 asyncio.Lock 串行化，单帧不会被其他写入打断。
"""

import asyncio
import logging
from concurrent.futures import Future
from typing import Optional, Union
from uuid import uuid4

from starlette.websockets import WebSocket

from character_core.infrastructure.logging.logger import log_event


class WebSocketConnection:
    def __init__(self, websocket: WebSocket, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.id = f"ws-{uuid4().hex}"
        self._websocket = websocket
        self._loop = loop or asyncio.get_running_loop()
        self._lock = asyncio.Lock()

    def send_text(self, text: str) -> None:
        self._submit(text)

    def send_bytes(self, data: bytes) -> None:
        self._submit(bytes(data))

    def _submit(self, payload: Union[str, bytes]) -> None:
        if self._loop.is_closed():
            return
        future = asyncio.run_coroutine_threadsafe(self._send(payload), self._loop)
        future.add_done_callback(self._report)

    async def _send(self, payload: Union[str, bytes]) -> None:
        async with self._lock:
            if isinstance(payload, bytes):
                await self._websocket.send_bytes(payload)
            else:
                await self._websocket.send_text(payload)

    def _report(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            log_event(logging.DEBUG, "WebSocket send failed", {"connection_id": self.id}, error=repr(exc))
