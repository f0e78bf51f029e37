"""OpenAI 兼容 Provider 适配器。

OpenAI、DeepSeek 等厂商均使用 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

本实现只依赖公共字段：model/messages/stream，以及响应中的
choices[0].message.content（非流式）和 choices[0].delta.content（流式）。
"""

import json
from typing import Any, Dict, Iterator

import httpx

from character_core.config.settings import settings
from character_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from character_core.providers.registry import OPENAI_CONFIG, ProviderConfig


class OpenAIClient:
    """OpenAI 兼容 Provider 客户端实现。"""

    name = "openai"
    config: ProviderConfig = OPENAI_CONFIG

    def __init__(self, cfg=settings):
        self._settings = cfg

    # ---- 非流式 ----

    def generate(self, prompt: str) -> str:
        payload = self._build_payload(prompt, stream=False)
        headers = self._headers()
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{self._base_url()}/chat/completions",
                    json=payload,
                    headers=headers,
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        self._check_status(resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(code="BAD_PAYLOAD", message=str(e), provider=self.name)
        return self._parse_response(data)

    # ---- 流式 ----

    def generate_stream(self, prompt: str) -> Iterator[str]:
        payload = self._build_payload(prompt, stream=True)
        headers = self._headers()
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{self._base_url()}/chat/completions",
                    json=payload,
                    headers=headers,
                ) as resp:
                    self._check_status(resp)
                    for line in resp.iter_lines():
                        if not line:
                            continue
                        data_str = line
                        if data_str.startswith("data:"):
                            data_str = data_str[5:].strip()
                        else:
                            data_str = data_str.strip()
                        if not data_str:
                            continue
                        if data_str == "[DONE]":
                            break
                        try:
                            payload_chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        piece = self._parse_stream_chunk(payload_chunk)
                        if piece:
                            yield piece
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)

    # ---- 辅助方法 ----

    def _api_key(self):
        return getattr(self._settings, f"{self.name}_api_key", None)

    def _base_url(self) -> str:
        return getattr(self._settings, f"{self.name}_base_url", None) or self.config.base_url

    def _model(self) -> str:
        return getattr(self._settings, f"{self.name}_model", None) or self.config.model

    def _headers(self) -> Dict[str, str]:
        api_key = self._api_key()
        if not api_key:
            raise ValidationError(
                code="MISSING_API_KEY",
                message=f"{self.name.upper()}_API_KEY not set",
                provider=self.name,
            )
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, prompt: str, stream: bool) -> dict:
        return {
            "model": self._model(),
            "messages": [{"role": "user", "content": prompt}],
            "stream": stream,
        }

    def _check_status(self, resp) -> None:
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message=f"{self.config.label} rate limit", provider=self.name)
        if resp.status_code >= 400:
            raise ApiError(
                code="API_ERROR",
                message=self._error_text(resp),
                provider=self.name,
                status_code=resp.status_code,
            )

    @staticmethod
    def _error_text(resp) -> str:
        # 流式响应需要先 read() 才能取 body
        try:
            return resp.read().decode("utf-8", errors="replace")
        except httpx.StreamError:
            return f"HTTP {resp.status_code}"

    def _parse_response(self, data: Dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if choices:
            message = choices[0].get("message") or {}
            content = message.get("content")
            if content:
                return content
        return f"[{self.config.label}] no content returned"

    @staticmethod
    def _parse_stream_chunk(data: Dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices:
            return ""
        delta = choices[0].get("delta") or {}
        return delta.get("content") or ""
