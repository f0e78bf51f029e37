"""角色回复编排引擎。

负责拼装 prompt、通过注册表选择适配器、套用有界重试，
并提供同步与流式两条路径：

- 同步路径永远返回文本：所有尝试失败时降级为本地模拟回复。
- 流式路径把生成交给后台线程，调用方注册回调后立即返回；
  发起失败会重试，开始输出后的失败只通过 on_error 报告一次。

未知 provider 属于调用方错误，在任何重试之前直接抛出。
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Union
from uuid import uuid4

from character_core.agents.retry import RetryPolicy
from character_core.agents.streaming import StreamHandle, StreamingDelivery, StreamSink
from character_core.config.settings import settings
from character_core.domain.models import GenerationOutcome, LLMProvider
from character_core.infrastructure.logging.logger import log_event
from character_core.prompts import build_fallback_reply, build_prompt
from character_core.providers.registry import ProviderRegistry


class ReplyEngine:
    def __init__(
        self,
        registry: ProviderRegistry,
        policy: Optional[RetryPolicy] = None,
        delivery: Optional[StreamingDelivery] = None,
    ):
        self._registry = registry
        self._policy = policy or RetryPolicy.from_settings()
        self._delivery = delivery or StreamingDelivery(
            policy=self._policy,
            workers=getattr(settings, "stream_workers", 8),
        )

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def generate_reply(
        self,
        persona: Optional[str],
        history: Optional[str],
        user_message: str,
        provider: Union[LLMProvider, str],
    ) -> str:
        """生成一条回复文本，永不因生成失败而抛出。"""

        return self.generate(persona, history, user_message, provider).text

    def generate(
        self,
        persona: Optional[str],
        history: Optional[str],
        user_message: str,
        provider: Union[LLMProvider, str],
    ) -> GenerationOutcome:
        """同步生成，返回带有降级标记与尝试次数的结果。

        Raises:
            UnknownProviderError: provider 未注册（不重试）。
        """

        identity = LLMProvider.parse(provider)
        adapter = self._registry.resolve(identity)
        prompt = build_prompt(persona, history, user_message)
        log_ctx = self._log_ctx(identity)

        attempts = 0

        def _attempt() -> str:
            nonlocal attempts
            attempts += 1
            return adapter.generate(prompt)

        start_time = time.time()
        log_event(logging.INFO, "Calling provider", log_ctx, prompt_chars=len(prompt))
        try:
            text = self._policy.call(_attempt, log_ctx=log_ctx)
        except Exception as exc:
            log_event(
                logging.ERROR,
                "Provider call failed, falling back to simulated reply",
                log_ctx,
                attempts=attempts,
                error=repr(exc),
            )
            return GenerationOutcome(
                text=build_fallback_reply(persona, user_message),
                fallback=True,
                attempts=attempts,
                provider=identity,
            )

        log_event(
            logging.INFO,
            "Provider call succeeded",
            log_ctx,
            attempts=attempts,
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return GenerationOutcome(text=text, fallback=False, attempts=attempts, provider=identity)

    def generate_reply_stream(
        self,
        persona: Optional[str],
        history: Optional[str],
        user_message: str,
        provider: Union[LLMProvider, str, None],
        on_chunk: Callable[[str], None],
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> StreamHandle:
        """在后台启动流式生成并立即返回句柄。

        provider 为空时使用配置中的 default_provider。
        """

        return self.start_stream(
            persona,
            history,
            user_message,
            provider,
            StreamSink(on_chunk, on_error, on_complete),
        )

    def start_stream(
        self,
        persona: Optional[str],
        history: Optional[str],
        user_message: str,
        provider: Union[LLMProvider, str, None],
        sink: StreamSink,
    ) -> StreamHandle:
        identity = LLMProvider.parse(provider or getattr(settings, "default_provider", "ollama"))
        adapter = self._registry.resolve(identity)
        prompt = build_prompt(persona, history, user_message)
        return self._delivery.start(adapter, prompt, sink, self._log_ctx(identity))

    def shutdown(self) -> None:
        self._delivery.shutdown(wait=False)

    @staticmethod
    def _log_ctx(identity: LLMProvider) -> Dict[str, Any]:
        return {"trace_id": f"tr-{uuid4().hex}", "provider": identity.value}
