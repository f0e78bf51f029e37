import json
import threading

import pytest

from character_core.domain.exceptions import SessionNotFoundError
from character_core.realtime.manager import AudioSessionManager, transcript_frame
from character_core.realtime.processor import MockAudioProcessor
from character_core.realtime.session import SessionTable


class FakeConnection:
    def __init__(self, id="conn-1"):
        self.id = id
        self.texts = []
        self.binaries = []

    def send_text(self, text):
        self.texts.append(text)

    def send_bytes(self, data):
        self.binaries.append(data)


class RecordingProcessor:
    """同步处理：立即回调一次识别文本和一次音频，并保留回调供之后调用。"""

    def __init__(self):
        self.chunks = []
        self.closed = []
        self.callbacks = []

    def on_audio_chunk(self, connection_id, chunk, on_transcript, on_audio):
        self.chunks.append((connection_id, chunk))
        self.callbacks.append((on_transcript, on_audio))
        on_transcript("[ASR] hi")
        on_audio(b"\x01\x02")

    def on_session_closed(self, connection_id):
        self.closed.append(connection_id)


def test_open_creates_inactive_session():
    manager = AudioSessionManager(RecordingProcessor(), default_sample_rate=16000)
    session = manager.open(FakeConnection())
    assert session.active is False
    assert session.sample_rate == 16000
    assert "conn-1" in manager.sessions


def test_control_directives_update_session():
    manager = AudioSessionManager(RecordingProcessor(), default_sample_rate=16000)
    manager.open(FakeConnection())

    manager.handle_text("conn-1", '{"type": "start"}')
    assert manager.sessions.get("conn-1").active is True
    manager.handle_text("conn-1", '{"type": "sampleRate", "value": 48000}')
    assert manager.sessions.get("conn-1").sample_rate == 48000
    manager.handle_text("conn-1", "end")
    assert manager.sessions.get("conn-1").active is False


def test_invalid_control_is_ignored():
    manager = AudioSessionManager(RecordingProcessor(), default_sample_rate=16000)
    manager.open(FakeConnection())
    manager.handle_text("conn-1", "start")

    assert manager.handle_text("conn-1", '{"type": "sampleRate", "value": "abc"}') is None
    session = manager.sessions.get("conn-1")
    assert session.active is True
    assert session.sample_rate == 16000


def test_sessions_are_isolated():
    manager = AudioSessionManager(RecordingProcessor())
    manager.open(FakeConnection("a"))
    manager.open(FakeConnection("b"))
    manager.handle_text("a", "start")
    assert manager.sessions.get("a").active is True
    assert manager.sessions.get("b").active is False


def test_binary_forwarded_regardless_of_active():
    processor = RecordingProcessor()
    conn = FakeConnection()
    manager = AudioSessionManager(processor)
    manager.open(conn)

    manager.handle_binary("conn-1", b"pcm-bytes")
    assert processor.chunks == [("conn-1", b"pcm-bytes")]
    assert [json.loads(t) for t in conn.texts] == [{"type": "transcript", "text": "[ASR] hi"}]
    assert conn.binaries == [b"\x01\x02"]


def test_binary_for_unknown_session_is_dropped():
    processor = RecordingProcessor()
    manager = AudioSessionManager(processor)
    manager.handle_binary("ghost", b"x")
    assert processor.chunks == []


def test_late_callbacks_after_close_are_dropped():
    processor = RecordingProcessor()
    conn = FakeConnection()
    manager = AudioSessionManager(processor)
    manager.open(conn)
    manager.handle_binary("conn-1", b"x")
    conn.texts.clear()
    conn.binaries.clear()

    manager.close("conn-1")
    on_transcript, on_audio = processor.callbacks[0]
    on_transcript("late text")
    on_audio(b"late audio")
    assert conn.texts == []
    assert conn.binaries == []


def test_close_is_idempotent():
    processor = RecordingProcessor()
    manager = AudioSessionManager(processor)
    manager.open(FakeConnection())

    assert manager.close("conn-1", reason="closed") is True
    assert manager.close("conn-1", reason="transport_error") is False
    assert processor.closed == ["conn-1"]
    with pytest.raises(SessionNotFoundError):
        manager.sessions.get("conn-1")


def test_session_scope_releases_on_error():
    processor = RecordingProcessor()
    manager = AudioSessionManager(processor)

    with pytest.raises(RuntimeError):
        with manager.session(FakeConnection()):
            raise RuntimeError("socket broke")
    assert len(manager.sessions) == 0
    assert processor.closed == ["conn-1"]


def test_transcript_frame_escapes_text():
    text = 'he said "hi"\n\tback\r\\slash 你好'
    assert json.loads(transcript_frame(text)) == {"type": "transcript", "text": text}


def test_session_table_rejects_duplicates():
    table = SessionTable()
    table.create("a", object())
    with pytest.raises(ValueError):
        table.create("a", object())
    assert table.remove("a") is not None
    assert table.remove("a") is None


def test_mock_processor_echoes_transcript():
    processor = MockAudioProcessor(workers=1, max_chars=5)
    got = {}
    done = threading.Event()

    def on_audio(data):
        got["audio"] = data
        done.set()

    processor.on_audio_chunk("c", "hello world".encode("utf-8"), lambda t: got.setdefault("text", t), on_audio)
    assert done.wait(5)
    processor.shutdown(wait=True)
    assert got["text"] == "[ASR] hello"
    assert got["audio"] == "[ASR] hello".encode("utf-8")


def test_close_waits_for_in_flight_frame():
    entered = threading.Event()
    release = threading.Event()
    order = []

    class SlowConnection(FakeConnection):
        def send_text(self, text):
            entered.set()
            release.wait(5)
            order.append("frame")

    class OrderedProcessor(RecordingProcessor):
        def on_session_closed(self, connection_id):
            order.append("closed")

    manager = AudioSessionManager(OrderedProcessor())
    manager.open(SlowConnection())

    sender = threading.Thread(target=manager.handle_binary, args=("conn-1", b"x"))
    sender.start()
    assert entered.wait(5)
    closer = threading.Thread(target=manager.close, args=("conn-1",))
    closer.start()
    closer.join(0.1)
    assert order == []

    release.set()
    sender.join(5)
    closer.join(5)
    assert order == ["frame", "closed"]


def test_shutdown_closes_remaining_sessions():
    processor = RecordingProcessor()
    manager = AudioSessionManager(processor)
    manager.open(FakeConnection("a"))
    manager.open(FakeConnection("b"))

    manager.shutdown()
    assert len(manager.sessions) == 0
    assert sorted(processor.closed) == ["a", "b"]
