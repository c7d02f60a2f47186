"""请求控制器。

负责：
1. 把会话历史拼成单个 prompt（每条消息一行 "<sender>: <text>"，不做截断）。
2. 通过 ProviderClient 发起调用。
3. 单飞（single-flight）取消：新的发送会先作废上一次仍在进行的发送，
   被作废的调用即使之后返回了结果，也只会抛出 CancelledError。

取消范围是整个控制器（一个逻辑会话槽），而不是每个 Conversation 一个。
"""

import asyncio
import logging
from typing import Any, Optional, Sequence

from chat_core.domain.exceptions import CancelledError
from chat_core.domain.models import Message
from chat_core.engine.cancellation import CancellationToken
from chat_core.infrastructure.logging.logger import get_logger
from chat_core.providers.base import ProviderClient

logger = get_logger("engine")


class RequestController:
    def __init__(self, provider_client: ProviderClient):
        self._provider_client = provider_client
        self._generation = 0
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def provider_name(self) -> str:
        return getattr(self._provider_client, "name", "unknown")

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    @staticmethod
    def build_prompt(messages: Sequence[Message]) -> str:
        return "\n".join(f"{m.sender.value}: {m.text or ''}" for m in messages)

    def issue_token(self) -> CancellationToken:
        """作废当前发送并返回一个新令牌。"""

        self.cancel_pending()
        self._generation += 1
        self._token = CancellationToken(self._generation)
        return self._token

    def cancel_pending(self) -> None:
        token = self._token
        if token is None or token.cancelled:
            return
        token.cancel()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            self._log(logging.INFO, "Cancelled in-flight request", generation=token.generation)

    async def send(self, prompt: str, token: CancellationToken) -> str:
        """发送 prompt 并返回回复文本。

        Raises:
            NetworkError: 传输层失败。
            ApiError: 端点返回非 2xx 或响应无法解析。
            CancelledError: 令牌已被作废（在完成前或完成后）。
        """

        token.raise_if_cancelled()
        task = asyncio.ensure_future(self._provider_client.generate(prompt))
        self._task = task
        try:
            text = await task
        except asyncio.CancelledError:
            if token.cancelled:
                raise CancelledError(
                    code="SUPERSEDED",
                    message=f"send #{token.generation} was superseded",
                    generation=token.generation,
                ) from None
            # 外层任务自身被取消（例如关闭事件循环），原样向上传播
            raise
        except Exception:
            token.raise_if_cancelled()
            raise
        finally:
            if self._task is task:
                self._task = None
        token.raise_if_cancelled()
        return text

    @staticmethod
    def _log(level: int, message: str, **fields: Any) -> None:
        logger.log(level, message, extra={"extra": fields})
