"""音频片段处理协作方（ASR / TTS）。

会话管理器把每个二进制音频片段原样交给 AudioProcessor，并附带两个回调：

- on_transcript(text): 识别出文本时调用，可以多次（部分识别结果）。
- on_audio(data): 合成出音频片段时调用，可以多次（边合成边发送）。

回调可以在任意线程、以任意相对顺序、异步触发；on_session_closed
之后对同一连接的回调由会话管理器丢弃。处理失败只记录日志，
不会向连接抛出异常。
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Protocol

from character_core.config.settings import settings
from character_core.infrastructure.logging.logger import log_event

TranscriptCallback = Callable[[str], None]
AudioCallback = Callable[[bytes], None]


class AudioProcessor(Protocol):
    def on_audio_chunk(
        self,
        connection_id: str,
        chunk: bytes,
        on_transcript: TranscriptCallback,
        on_audio: AudioCallback,
    ) -> None:
        ...

    def on_session_closed(self, connection_id: str) -> None:
        ...


class MockAudioProcessor:
    """演示用实现：把收到的字节当作 UTF-8 文本"识别"，再把识别文本回传为"音频"。

    真正部署时应替换为调用 ASR（whisper / 云厂商）和 TTS 服务的实现。
    """

    def __init__(self, workers: Optional[int] = None, max_chars: Optional[int] = None):
        self._executor = ThreadPoolExecutor(
            max_workers=workers or getattr(settings, "audio_workers", 4),
            thread_name_prefix="audio-chunk",
        )
        self._max_chars = max_chars or getattr(settings, "audio_transcript_max_chars", 200)

    def on_audio_chunk(
        self,
        connection_id: str,
        chunk: bytes,
        on_transcript: TranscriptCallback,
        on_audio: AudioCallback,
    ) -> None:
        self._executor.submit(self._process, connection_id, bytes(chunk), on_transcript, on_audio)

    def on_session_closed(self, connection_id: str) -> None:
        log_event(logging.INFO, "Audio processor released session", {"connection_id": connection_id})

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)

    def _process(
        self,
        connection_id: str,
        chunk: bytes,
        on_transcript: TranscriptCallback,
        on_audio: AudioCallback,
    ) -> None:
        try:
            fake_text = chunk.decode("utf-8", errors="replace")[: self._max_chars]
            transcript = "[ASR] " + fake_text
            on_transcript(transcript)
            on_audio(transcript.encode("utf-8"))
        except Exception as exc:
            # 单个片段失败不影响连接，只是不产生回调
            log_event(
                logging.WARNING,
                "Audio chunk processing failed",
                {"connection_id": connection_id},
                error=repr(exc),
            )
