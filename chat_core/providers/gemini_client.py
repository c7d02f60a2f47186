"""Gemini generateContent 适配器。

- URL: {base_url}/models/{model}:generateContent?key=<api_key>
- 请求体: {"contents": [{"parts": [{"text": prompt}]}]}
- 回复: candidates[0].content.parts[0].text

整段对话已经由 RequestController 拼成单个 prompt，这里只负责 HTTP 往返
以及把失败映射为 NetworkError / ApiError。
"""

from typing import Any, Dict

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, NetworkError, ValidationError
from chat_core.providers.registry import GEMINI_CONFIG


class GeminiClient:
    """Gemini Provider 客户端实现。"""

    name = "gemini"

    def __init__(self, cfg=settings, model: str = "chat"):
        self._settings = cfg
        self._model = model

    async def generate(self, prompt: str) -> str:
        if not getattr(self._settings, "gemini_api_key", None):
            raise ValidationError(code="MISSING_API_KEY", message="GEMINI_API_KEY not set")
        model_cfg = GEMINI_CONFIG.models[self._model]
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{base}/models/{model_cfg.provider_model}:generateContent",
                    params={"key": self._settings.gemini_api_key},
                    json=self._build_payload(prompt),
                    headers={"Content-Type": "application/json"},
                )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code < 200 or resp.status_code >= 300:
            raise ApiError(code="API_ERROR", message=f"API failed: {resp.status_code}", http_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(code="INVALID_RESPONSE", message=str(e), http_status=resp.status_code)
        return self._parse_response(data, resp.status_code)

    @staticmethod
    def _build_payload(prompt: str) -> Dict[str, Any]:
        return {"contents": [{"parts": [{"text": prompt}]}]}

    @staticmethod
    def _parse_response(data: Any, status: int) -> str:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise ApiError(code="INVALID_RESPONSE", message="response has no candidate text", http_status=status)
        if not isinstance(text, str):
            raise ApiError(code="INVALID_RESPONSE", message="candidate text is not a string", http_status=status)
        return text
