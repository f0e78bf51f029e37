"""生成调用的有界重试策略。

固定次数 + 固定退避，基于 tenacity。哪些异常可以重试由 is_retryable
单独决定：目前除了调用方/配置错误（ValidationError）以外的所有异常都会重试，
收紧策略时只需要改这一个判断。
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_fixed

from character_core.config.settings import settings
from character_core.domain.exceptions import ValidationError
from character_core.infrastructure.logging.logger import log_event

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, Exception) and not isinstance(exc, ValidationError)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    # 测试中替换为空函数，避免真实等待
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def from_settings(cls, cfg=settings) -> "RetryPolicy":
        return cls(
            max_attempts=getattr(cfg, "retry_max_attempts", 3),
            backoff_seconds=getattr(cfg, "retry_backoff_seconds", 1.0),
        )

    def retrying(self, log_ctx: Optional[Dict[str, Any]] = None) -> Retrying:
        """构造一个新的 tenacity Retrying；每次调用都需要新的实例。"""

        ctx = dict(log_ctx or {})

        def _before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            log_event(
                logging.WARNING,
                "Provider attempt failed, retrying",
                ctx,
                attempt=state.attempt_number,
                max_attempts=self.max_attempts,
                error=repr(exc),
            )

        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.backoff_seconds),
            retry=retry_if_exception(is_retryable),
            sleep=self.sleep,
            before_sleep=_before_sleep,
            reraise=True,
        )

    def call(self, fn: Callable[..., T], *args: Any, log_ctx: Optional[Dict[str, Any]] = None) -> T:
        """在重试策略下执行 fn；重试耗尽或遇到不可重试的异常时原样抛出。"""

        return self.retrying(log_ctx)(fn, *args)
