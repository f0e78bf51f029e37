"""Google Gemini Provider 适配器（REST）。

- 非流式: POST {base_url}/models/{model}:generateContent
- 流式:   POST {base_url}/models/{model}:streamGenerateContent?alt=sse
- 认证:   x-goog-api-key: <api_key>

响应文本取 candidates[0].content.parts[*].text 的拼接。
"""

import json
from typing import Any, Dict, Iterator

import httpx

from character_core.config.settings import settings
from character_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from character_core.providers.registry import GEMINI_CONFIG


class GeminiClient:
    """Gemini Provider 客户端实现。"""

    name = "gemini"

    def __init__(self, cfg=settings):
        self._settings = cfg

    def generate(self, prompt: str) -> str:
        headers = self._headers()
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{self._model_url()}:generateContent",
                    json=self._build_payload(prompt),
                    headers=headers,
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        self._check_status(resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(code="BAD_PAYLOAD", message=str(e), provider=self.name)
        text = self._extract_text(data)
        if not text:
            return f"[{GEMINI_CONFIG.label}] empty response"
        return text

    def generate_stream(self, prompt: str) -> Iterator[str]:
        headers = self._headers()
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{self._model_url()}:streamGenerateContent",
                    params={"alt": "sse"},
                    json=self._build_payload(prompt),
                    headers=headers,
                ) as resp:
                    self._check_status(resp)
                    for line in resp.iter_lines():
                        if not line or not line.startswith("data:"):
                            continue
                        data_str = line[5:].strip()
                        if not data_str:
                            continue
                        try:
                            data = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        piece = self._extract_text(data)
                        if piece:
                            yield piece
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)

    # ---- 辅助方法 ----

    def _model_url(self) -> str:
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        model = getattr(self._settings, "gemini_model", None) or GEMINI_CONFIG.model
        return f"{base}/models/{model}"

    def _headers(self) -> Dict[str, str]:
        api_key = getattr(self._settings, "gemini_api_key", None)
        if not api_key:
            raise ValidationError(code="MISSING_API_KEY", message="GEMINI_API_KEY not set", provider=self.name)
        return {"x-goog-api-key": api_key, "Content-Type": "application/json"}

    @staticmethod
    def _build_payload(prompt: str) -> dict:
        return {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

    def _check_status(self, resp) -> None:
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Gemini rate limit", provider=self.name)
        if resp.status_code >= 400:
            raise ApiError(
                code="API_ERROR",
                message=f"Gemini returned HTTP {resp.status_code}",
                provider=self.name,
                status_code=resp.status_code,
            )

    @staticmethod
    def _extract_text(data: Any) -> str:
        if not isinstance(data, dict):
            return ""
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        content: Dict[str, Any] = candidates[0].get("content") or {}
        parts = content.get("parts") or []
        return "".join(p.get("text") or "" for p in parts if isinstance(p, dict))
