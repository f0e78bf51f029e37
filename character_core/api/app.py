"""HTTP / SSE / WebSocket 传输层（FastAPI）。

- /api/characters、/api/chat/conversations：同步对话接口，统一 {code, message, data} 响应。
- /api/chat/conversations/{id}/stream_message：SSE 流式回复。
- /ws/audio：实时音频会话。

鉴权不在本层处理，调用方身份由上游通过 X-User-Id 头传入。
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from character_core.agents.streaming import StreamHandle, StreamSink
from character_core.api.ids import parse_id
from character_core.api.service import ChatService, get_default_service
from character_core.config.settings import settings
from character_core.domain.exceptions import BusinessError, StreamCancelledError
from character_core.domain.models import StreamEvent
from character_core.infrastructure.logging.logger import log_event
from character_core.realtime.manager import AudioSessionManager
from character_core.realtime.processor import MockAudioProcessor
from character_core.realtime.websocket import WebSocketConnection


class CreateCharacterRequest(BaseModel):
    name: str
    persona: str = ""
    tags: str = ""


class CreateConversationRequest(BaseModel):
    characterId: str


class SendMessageRequest(BaseModel):
    text: Optional[str] = None
    persona: Optional[str] = None
    provider: Optional[str] = None


def ok(data: Any = None) -> dict:
    return {"code": 0, "message": "OK", "data": data}


def sse_data(text: str, event: Optional[str] = None) -> str:
    """编码一条 SSE 事件；多行文本拆成多条 data 行。"""

    head = f"event: {event}\n" if event else ""
    body = "".join(f"data: {line}\n" for line in text.split("\n"))
    return head + body + "\n"


async def sse_stream(
    handle: StreamHandle,
    queue: "asyncio.Queue[StreamEvent]",
    idle_timeout: float,
) -> AsyncIterator[str]:
    try:
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=idle_timeout)
            except asyncio.TimeoutError:
                yield sse_data("stream idle timeout", event="error")
                return
            if event.kind == "chunk":
                yield sse_data(event.text)
            elif event.kind == "failed":
                if not isinstance(event.error, StreamCancelledError):
                    message = getattr(event.error, "message", None) or str(event.error)
                    yield sse_data(message, event="error")
                return
            else:
                return
    finally:
        # 客户端断开、超时或正常结束都会走到这里；已结束的流上 cancel 不产生效果
        handle.cancel()


def create_app(
    service: Optional[ChatService] = None,
    audio_manager: Optional[AudioSessionManager] = None,
) -> FastAPI:
    service = service or get_default_service()
    audio_manager = audio_manager or AudioSessionManager(MockAudioProcessor())

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        audio_manager.shutdown()
        service.shutdown()
        log_event(logging.INFO, "Application shut down", {})

    app = FastAPI(title="character-core", lifespan=lifespan)
    app.state.service = service
    app.state.audio_manager = audio_manager

    @app.exception_handler(BusinessError)
    async def _business_error(request: Request, exc: BusinessError) -> JSONResponse:
        log_event(
            logging.WARNING,
            "Request failed",
            {"path": request.url.path},
            code=exc.code,
            error=exc.message,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content={"code": exc.http_status, "message": exc.message, "data": None},
        )

    @app.post("/api/characters")
    def create_character(body: CreateCharacterRequest):
        return ok(service.create_character(body.name, body.persona, body.tags))

    @app.get("/api/characters/{character_id}")
    def get_character(character_id: str):
        return ok(service.get_character(parse_id(character_id)))

    @app.post("/api/chat/conversations")
    def create_conversation(
        body: CreateConversationRequest,
        user_id: str = Header(default="anonymous", alias="X-User-Id"),
    ):
        return ok(service.create_conversation(parse_id(body.characterId), user_id))

    @app.get("/api/chat/conversations/{conversation_id}")
    def get_conversation(conversation_id: str):
        return ok(service.get_conversation(parse_id(conversation_id)))

    @app.post("/api/chat/conversations/{conversation_id}/message")
    def send_message(conversation_id: str, body: SendMessageRequest):
        return ok(service.send_message(parse_id(conversation_id), body.text, body.persona, body.provider))

    @app.get("/api/chat/conversations/{conversation_id}/stream_message")
    async def stream_message(
        conversation_id: str,
        message: str,
        persona: Optional[str] = None,
        history: Optional[str] = None,
        provider: Optional[str] = None,
    ):
        loop = asyncio.get_running_loop()
        queue: "asyncio.Queue[StreamEvent]" = asyncio.Queue()
        sink = StreamSink.for_events(lambda event: loop.call_soon_threadsafe(queue.put_nowait, event))
        handle = service.stream_message(
            parse_id(conversation_id),
            message,
            sink,
            persona=persona,
            history=history,
            provider=provider,
        )
        return StreamingResponse(
            sse_stream(handle, queue, settings.stream_idle_timeout),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"},
        )

    @app.websocket("/ws/audio")
    async def audio_socket(websocket: WebSocket):
        await websocket.accept()
        connection = WebSocketConnection(websocket)
        try:
            with audio_manager.session(connection):
                while True:
                    frame = await websocket.receive()
                    if frame["type"] == "websocket.disconnect":
                        break
                    if frame.get("bytes") is not None:
                        audio_manager.handle_binary(connection.id, frame["bytes"])
                    elif frame.get("text") is not None:
                        audio_manager.handle_text(connection.id, frame["text"])
        except WebSocketDisconnect:
            pass
        except Exception as exc:
            log_event(logging.ERROR, "WebSocket transport error", {"connection_id": connection.id}, error=repr(exc))

    return app


def main() -> None:
    uvicorn.run(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
