import httpx
import pytest

from chat_core.domain.exceptions import ApiError, NetworkError, ValidationError
from chat_core.providers.gemini_client import GeminiClient


class SettingsStub:
    gemini_api_key = "g-test-key-123"
    http_timeout = 1.0
    gemini_base_url = "https://generativelanguage.googleapis.com/v1beta"


def _patch_client(monkeypatch, status_code=200, body=None, captured=None, error=None):
    class Resp:
        def __init__(self):
            self.status_code = status_code

        def json(self):
            if isinstance(body, Exception):
                raise body
            return body

    class AsyncClient:
        def __init__(self, *a, **kw):
            if captured is not None:
                captured["client_kwargs"] = kw

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def post(self, url, params=None, json=None, **_):
            if error is not None:
                raise error
            if captured is not None:
                captured.update(url=url, params=params, payload=json)
            return Resp()

    monkeypatch.setattr("httpx.AsyncClient", AsyncClient)


@pytest.mark.asyncio
async def test_gemini_client_basic(monkeypatch):
    captured = {}
    body = {"candidates": [{"content": {"parts": [{"text": "4"}]}}]}
    _patch_client(monkeypatch, body=body, captured=captured)

    reply = await GeminiClient(SettingsStub()).generate("user: What is 2+2?")

    assert reply == "4"
    assert captured["url"].endswith("/models/gemini-1.5-flash:generateContent")
    assert captured["params"] == {"key": "g-test-key-123"}
    assert captured["payload"] == {"contents": [{"parts": [{"text": "user: What is 2+2?"}]}]}
    assert captured["client_kwargs"]["timeout"] == 1.0


@pytest.mark.asyncio
async def test_gemini_client_non_2xx_is_api_error(monkeypatch):
    _patch_client(monkeypatch, status_code=500, body={})
    with pytest.raises(ApiError) as exc:
        await GeminiClient(SettingsStub()).generate("hi")
    assert exc.value.status == 500
    assert exc.value.code == "API_ERROR"


@pytest.mark.asyncio
async def test_gemini_client_transport_failure_is_network_error(monkeypatch):
    _patch_client(monkeypatch, error=httpx.ConnectError("connection refused"))
    with pytest.raises(NetworkError):
        await GeminiClient(SettingsStub()).generate("hi")


@pytest.mark.asyncio
async def test_gemini_client_bad_base_url_is_network_error(monkeypatch):
    _patch_client(monkeypatch, error=httpx.InvalidURL("bad url"))
    with pytest.raises(NetworkError):
        await GeminiClient(SettingsStub()).generate("hi")


@pytest.mark.asyncio
async def test_gemini_client_unsupported_scheme_is_network_error(monkeypatch):
    _patch_client(monkeypatch, error=httpx.UnsupportedProtocol("ftp not supported"))
    with pytest.raises(NetworkError):
        await GeminiClient(SettingsStub()).generate("hi")


@pytest.mark.asyncio
async def test_gemini_client_missing_candidates(monkeypatch):
    _patch_client(monkeypatch, body={"promptFeedback": {"blockReason": "SAFETY"}})
    with pytest.raises(ApiError) as exc:
        await GeminiClient(SettingsStub()).generate("hi")
    assert exc.value.code == "INVALID_RESPONSE"


@pytest.mark.asyncio
async def test_gemini_client_undecodable_body(monkeypatch):
    _patch_client(monkeypatch, body=ValueError("not json"))
    with pytest.raises(ApiError) as exc:
        await GeminiClient(SettingsStub()).generate("hi")
    assert exc.value.code == "INVALID_RESPONSE"


@pytest.mark.asyncio
async def test_gemini_client_requires_api_key():
    class NoKey(SettingsStub):
        gemini_api_key = None

    with pytest.raises(ValidationError):
        await GeminiClient(NoKey()).generate("hi")
