"""流式回复的投递路径。

适配器只提供一个按生成顺序产出片段的迭代器；本模块在后台线程中驱动它，
并通过 StreamSink 把片段交给调用方的回调，保证：

- 片段顺序与生成顺序一致；
- 每个流恰好一个终止事件（completed 或 failed）；
- 终止事件之后不会再投递任何片段，终止事件也不会抢在最后一个片段之前。

重试只覆盖"发起"阶段（拿到迭代器并取得第一个片段之前），
一旦有片段投递出去，后续任何异常都直接以 failed 终止，不会重放。
"""

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from character_core.agents.retry import RetryPolicy
from character_core.domain.exceptions import StreamCancelledError, StreamInitiationError
from character_core.domain.models import StreamEvent
from character_core.infrastructure.logging.logger import log_event, logger
from character_core.providers.base import ProviderClient

_END = object()


class StreamSink:
    """把 on_chunk / on_error / on_complete 回调包装成有约束的事件通道。

    所有投递都在同一把锁下串行执行，因此回调之间不会交错；
    进入终止状态后，chunk / fail / complete 都返回 False 并丢弃。
    锁可重入：回调内部调用 handle.cancel() 会在同一线程里直接进入 fail。
    """

    def __init__(
        self,
        on_chunk: Callable[[str], None],
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ):
        self._on_chunk = on_chunk
        self._on_error = on_error
        self._on_complete = on_complete
        self._lock = threading.RLock()
        self._terminal: Optional[StreamEvent] = None
        self._delivered = 0

    @classmethod
    def for_events(cls, emit: Callable[[StreamEvent], None]) -> "StreamSink":
        """以类型化 StreamEvent 的形式投递到单个 emit 回调。"""

        return cls(
            on_chunk=lambda text: emit(StreamEvent(kind="chunk", text=text)),
            on_error=lambda exc: emit(StreamEvent(kind="failed", error=exc)),
            on_complete=lambda: emit(StreamEvent(kind="completed")),
        )

    @property
    def closed(self) -> bool:
        return self._terminal is not None

    @property
    def terminal(self) -> Optional[StreamEvent]:
        return self._terminal

    @property
    def delivered(self) -> int:
        return self._delivered

    def chunk(self, text: str) -> bool:
        with self._lock:
            if self._terminal is not None:
                return False
            self._delivered += 1
            self._on_chunk(text)
            return True

    def fail(self, error: BaseException) -> bool:
        with self._lock:
            if self._terminal is not None:
                return False
            self._terminal = StreamEvent(kind="failed", error=error)
            if self._on_error is not None:
                self._on_error(error)
            return True

    def complete(self) -> bool:
        with self._lock:
            if self._terminal is not None:
                return False
            self._terminal = StreamEvent(kind="completed")
            if self._on_complete is not None:
                self._on_complete()
            return True


class StreamHandle:
    """交还给调用方的流句柄；调用方不需要等待流结束。"""

    def __init__(self, sink: StreamSink):
        self.sink = sink
        self._cancelled = threading.Event()
        self._finished = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """取消流：立即以 StreamCancelledError 终止，后台线程在下一个片段处停止读取。"""

        if self._cancelled.is_set():
            return
        self._cancelled.set()
        self.sink.fail(StreamCancelledError(code="STREAM_CANCELLED", message="Stream cancelled by consumer"))

    def done(self) -> bool:
        return self._finished.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._finished.wait(timeout)

    def _mark_finished(self) -> None:
        self._finished.set()


class StreamingDelivery:
    """在后台线程池中驱动适配器的流式迭代器。"""

    def __init__(self, policy: Optional[RetryPolicy] = None, executor: Optional[Executor] = None, workers: int = 8):
        self._policy = policy or RetryPolicy.from_settings()
        self._executor = executor or ThreadPoolExecutor(max_workers=workers, thread_name_prefix="reply-stream")

    def start(
        self,
        adapter: ProviderClient,
        prompt: str,
        sink: StreamSink,
        log_ctx: Optional[Dict[str, Any]] = None,
    ) -> StreamHandle:
        handle = StreamHandle(sink)
        self._executor.submit(self._drive, adapter, prompt, handle, dict(log_ctx or {}))
        return handle

    def shutdown(self, wait: bool = False) -> None:
        if isinstance(self._executor, ThreadPoolExecutor):
            self._executor.shutdown(wait=wait)

    def _drive(self, adapter: ProviderClient, prompt: str, handle: StreamHandle, log_ctx: Dict[str, Any]) -> None:
        try:
            self._run(adapter, prompt, handle, log_ctx)
        except Exception:
            # 只会来自调用方回调本身
            logger.exception("Stream callback raised", extra={"extra": log_ctx})
        finally:
            handle._mark_finished()

    def _run(self, adapter: ProviderClient, prompt: str, handle: StreamHandle, log_ctx: Dict[str, Any]) -> None:
        sink = handle.sink
        log_event(logging.INFO, "Stream started", log_ctx)
        try:
            stream, first = self._policy.call(self._open, adapter, prompt, log_ctx=log_ctx)
        except Exception as exc:
            log_event(logging.ERROR, "Stream initiation failed", log_ctx, error=repr(exc))
            sink.fail(
                StreamInitiationError(
                    code="STREAM_INIT_FAILED",
                    message=f"Stream could not be started: {exc}",
                    provider=getattr(adapter, "name", None),
                    cause=exc,
                )
            )
            return

        if first is _END:
            sink.complete()
            log_event(logging.INFO, "Stream completed", log_ctx, chunks=0)
            return

        try:
            if first and not sink.chunk(first):
                return
            for piece in stream:
                if handle.cancelled or sink.closed:
                    break
                if piece:
                    sink.chunk(piece)
        except Exception as exc:
            if sink.fail(exc):
                log_event(logging.ERROR, "Stream failed", log_ctx, chunks=sink.delivered, error=repr(exc))
            return
        finally:
            _close_stream(stream)

        if handle.cancelled:
            log_event(logging.INFO, "Stream cancelled", log_ctx, chunks=sink.delivered)
            return
        if sink.complete():
            log_event(logging.INFO, "Stream completed", log_ctx, chunks=sink.delivered)

    @staticmethod
    def _open(adapter: ProviderClient, prompt: str) -> Tuple[Iterator[str], Any]:
        produced = adapter.generate_stream(prompt)
        stream: Iterator[str] = iter(produced) if produced is not None else iter(())
        return stream, next(stream, _END)


def _close_stream(stream: Iterator[str]) -> None:
    close = getattr(stream, "close", None)
    if close is not None:
        close()
