"""实时音频会话管理器。

每个 WebSocket 连接对应一条 AudioSession 记录：

- 建立连接：创建会话（active=False，默认采样率）。
- 二进制帧：无论 active 与否，原样交给 AudioProcessor，并附带两个回调：
  识别文本 -> {"type":"transcript","text":...} 文本帧；合成音频 -> 原样二进制帧。
- 文本帧：解析为控制指令，修改同一连接的 active / sample_rate。
- 断开或传输错误：通知处理方并删除会话，无论触发几次都只执行一次。

回调可能来自其他线程；会话已删除时回调被静默丢弃。
"""

import json
import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

from character_core.config.settings import settings
from character_core.domain.exceptions import ControlMessageError, SessionNotFoundError
from character_core.domain.models import AudioSession
from character_core.infrastructure.logging.logger import log_event
from character_core.realtime.control import ControlMessage, parse_control
from character_core.realtime.processor import AudioCallback, AudioProcessor, TranscriptCallback
from character_core.realtime.session import SessionTable


class OutboundConnection(Protocol):
    """会话管理器回写数据所用的连接。

    send_text / send_bytes 必须线程安全，并且单帧写入是原子的；
    它们在会话表锁内被调用，只应排队而不应阻塞等待网络。
    """

    id: str

    def send_text(self, text: str) -> None:
        ...

    def send_bytes(self, data: bytes) -> None:
        ...


def transcript_frame(text: str) -> str:
    return json.dumps({"type": "transcript", "text": text}, ensure_ascii=False)


class AudioSessionManager:
    def __init__(
        self,
        processor: AudioProcessor,
        sessions: Optional[SessionTable] = None,
        default_sample_rate: Optional[int] = None,
    ):
        self._processor = processor
        self._sessions = sessions or SessionTable()
        self._default_sample_rate = default_sample_rate or getattr(settings, "audio_default_sample_rate", 16000)

    @property
    def sessions(self) -> SessionTable:
        return self._sessions

    # ---- 生命周期 ----

    def open(self, connection: OutboundConnection) -> AudioSession:
        session = self._sessions.create(connection.id, connection, sample_rate=self._default_sample_rate)
        log_event(logging.INFO, "Audio session opened", {"connection_id": connection.id})
        return session

    def close(self, connection_id: str, reason: str = "closed") -> bool:
        """关闭会话；重复调用（close 与传输错误同时发生）只生效一次。"""

        session = self._sessions.remove(connection_id)
        if session is None:
            return False
        try:
            self._processor.on_session_closed(connection_id)
        except Exception as exc:
            log_event(
                logging.WARNING,
                "Audio processor failed on session close",
                {"connection_id": connection_id},
                error=repr(exc),
            )
        log_event(logging.INFO, "Audio session closed", {"connection_id": connection_id}, reason=reason)
        return True

    def shutdown(self) -> None:
        """进程退出时关闭剩余会话并释放处理方的线程池。"""

        for connection_id in self._sessions.ids():
            self.close(connection_id, reason="shutdown")
        release = getattr(self._processor, "shutdown", None)
        if release is not None:
            release()

    @contextmanager
    def session(self, connection: OutboundConnection) -> Iterator[AudioSession]:
        """连接作用域：进入时创建会话，任何退出路径都会释放。"""

        session = self.open(connection)
        reason = "closed"
        try:
            yield session
        except Exception:
            reason = "transport_error"
            raise
        finally:
            self.close(connection.id, reason=reason)

    # ---- 入站帧 ----

    def handle_binary(self, connection_id: str, data: bytes) -> None:
        if connection_id not in self._sessions:
            log_event(logging.DEBUG, "Audio chunk for unknown session dropped", {"connection_id": connection_id})
            return
        try:
            self._processor.on_audio_chunk(
                connection_id,
                data,
                self._transcript_callback(connection_id),
                self._audio_callback(connection_id),
            )
        except Exception as exc:
            log_event(
                logging.WARNING,
                "Audio chunk dispatch failed",
                {"connection_id": connection_id},
                error=repr(exc),
            )

    def handle_text(self, connection_id: str, payload: str) -> Optional[ControlMessage]:
        """应用一条控制指令；非法指令记录日志后忽略，返回 None。"""

        log_ctx = {"connection_id": connection_id}
        try:
            message = parse_control(payload)
        except ControlMessageError as exc:
            log_event(logging.WARNING, "Control message rejected", log_ctx, error=exc.message)
            return None
        try:
            if message.kind == "start":
                self._sessions.update(connection_id, active=True)
            elif message.kind == "end":
                self._sessions.update(connection_id, active=False)
            else:
                self._sessions.update(connection_id, sample_rate=message.sample_rate)
        except SessionNotFoundError:
            return None
        log_event(logging.INFO, "Control directive applied", log_ctx, directive=message.kind)
        return message

    # ---- 出站回调 ----

    def _transcript_callback(self, connection_id: str) -> TranscriptCallback:
        def _on_transcript(text: str) -> None:
            frame = transcript_frame(text)
            self._deliver(connection_id, lambda conn: conn.send_text(frame))

        return _on_transcript

    def _audio_callback(self, connection_id: str) -> AudioCallback:
        def _on_audio(data: bytes) -> None:
            self._deliver(connection_id, lambda conn: conn.send_bytes(data))

        return _on_audio

    def _deliver(self, connection_id: str, send) -> None:
        try:
            self._sessions.deliver(connection_id, send)
        except SessionNotFoundError:
            log_event(logging.DEBUG, "Late callback for closed session dropped", {"connection_id": connection_id})
        except Exception as exc:
            log_event(
                logging.WARNING,
                "Outbound frame failed",
                {"connection_id": connection_id},
                error=repr(exc),
            )
