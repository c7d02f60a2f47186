"""消息流水线。

一次发送的状态机：IDLE -> SENDING -> COMPLETED | FAILED | SUPERSEDED。

submit 的步骤：
1. 校验：文本为空白且没有附件时直接返回（不取消、不写入、不发请求）。
2. 作废上一次仍在进行的发送（单飞取消）。
3. 追加用户消息并通知 pending。
4. 用完整历史拼 prompt 并发送。
5. 成功追加 ai 回复；任何发送错误都追加通用提示（错误细节只写日志）；
   被取代的发送不做任何变更。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, CancelledError, NetworkError, PersistenceError, ValidationError
from chat_core.domain.models import Conversation, FileAttachment, Message, Sender
from chat_core.engine.composer import Composer
from chat_core.engine.repository import ConversationRepository
from chat_core.engine.request_controller import RequestController
from chat_core.infrastructure.logging.logger import logger


class SendState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"
    SUPERSEDED = "superseded"


@dataclass
class PipelineEvent:
    """通知渲染层重绘的事件。

    kind:
        - "message": 某个会话追加了一条消息。
        - "pending": 等待回复（typing 指示）状态变化。
        - "switched": 当前会话切换（新建会话）。
    """

    kind: Literal["message", "pending", "switched"]
    conversation_id: str
    message: Optional[Message] = None
    pending: bool = False


@dataclass
class SendOutcome:
    state: SendState
    conversation_id: str
    reply: Optional[Message] = None


Listener = Callable[[PipelineEvent], None]


class MessagePipeline:
    def __init__(
        self,
        repository: ConversationRepository,
        controller: RequestController,
        error_text: Optional[str] = None,
    ):
        self._repository = repository
        self._controller = controller
        self._error_text = error_text or settings.error_reply_text
        self._listeners: List[Listener] = []
        self._pending = False
        self.composer = Composer()

    @property
    def repository(self) -> ConversationRepository:
        return self._repository

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def state(self) -> SendState:
        return SendState.SENDING if self._pending else SendState.IDLE

    @property
    def current_conversation_id(self) -> str:
        return self._repository.get_current()

    def current_conversation(self) -> Conversation:
        return self._repository.get(self._repository.get_current())

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """注册渲染回调，返回取消注册的函数。"""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def submit(self, user_text: str, attached_file: Optional[FileAttachment] = None) -> SendOutcome:
        conversation_id = self._repository.get_current()
        text = (user_text or "").strip()
        if not text and attached_file is None:
            return SendOutcome(state=SendState.IDLE, conversation_id=conversation_id)

        token = self._controller.issue_token()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "conversation_id": conversation_id,
            "generation": token.generation,
        }

        user_msg = Message(
            sender=Sender.USER,
            text=text or None,
            timestamp=self._repository.now(),
            file=attached_file,
        )
        try:
            self._append(conversation_id, user_msg)
        except PersistenceError:
            # 上一次发送已被作废，它不会再清 pending
            if self._pending:
                self._set_pending(conversation_id, False)
            raise
        self._set_pending(conversation_id, True)

        conv = self._repository.get(conversation_id)
        prompt = self._controller.build_prompt(conv.messages)
        self._log(
            logging.INFO,
            "Sending prompt",
            log_ctx,
            provider=self._controller.provider_name,
            message_count=len(conv.messages),
            has_file=attached_file is not None,
        )

        try:
            reply_text = await self._controller.send(prompt, token)
        except CancelledError:
            self._log(logging.INFO, "Send superseded, result discarded", log_ctx)
            return SendOutcome(state=SendState.SUPERSEDED, conversation_id=conversation_id)
        except (NetworkError, ApiError, ValidationError) as e:
            if token.cancelled:
                self._log(logging.INFO, "Stale failure discarded", log_ctx, code=e.code)
                return SendOutcome(state=SendState.SUPERSEDED, conversation_id=conversation_id)
            self._log(
                logging.ERROR,
                "Send failed",
                log_ctx,
                code=e.code,
                http_status=e.http_status if isinstance(e, ApiError) else None,
                error=e.message,
            )
            return self._fail(conversation_id)
        except Exception as e:
            if token.cancelled:
                self._log(logging.INFO, "Stale failure discarded", log_ctx, error_type=type(e).__name__)
                return SendOutcome(state=SendState.SUPERSEDED, conversation_id=conversation_id)
            logger.error(
                "Send failed with unexpected error",
                exc_info=True,
                extra={"extra": dict(log_ctx, error_type=type(e).__name__)},
            )
            return self._fail(conversation_id)

        if token.cancelled:
            self._log(logging.INFO, "Send superseded, result discarded", log_ctx)
            return SendOutcome(state=SendState.SUPERSEDED, conversation_id=conversation_id)

        reply = Message(sender=Sender.AI, text=reply_text, timestamp=self._repository.now())
        self._finish(conversation_id, reply)
        self._log(logging.INFO, "Send completed", log_ctx, reply_length=len(reply_text))
        return SendOutcome(state=SendState.COMPLETED, conversation_id=conversation_id, reply=reply)

    async def submit_draft(self) -> SendOutcome:
        """发送 composer 中的草稿；非空时发送前清空草稿。"""

        if not self.composer.text.strip() and self.composer.file is None:
            return SendOutcome(state=SendState.IDLE, conversation_id=self._repository.get_current())
        text, file = self.composer.take()
        return await self.submit(text, file)

    def start_new_conversation(self) -> str:
        self._controller.cancel_pending()
        previous_id = self._repository.get_current()
        if self._pending:
            self._set_pending(previous_id, False)
        self.composer.reset()
        conversation_id = self._repository.start_new()
        self._log(logging.INFO, "Started new conversation", {"conversation_id": conversation_id})
        self._emit(PipelineEvent(kind="switched", conversation_id=conversation_id))
        return conversation_id

    def _fail(self, conversation_id: str) -> SendOutcome:
        error_msg = Message(sender=Sender.AI, text=self._error_text, timestamp=self._repository.now())
        self._finish(conversation_id, error_msg)
        return SendOutcome(state=SendState.FAILED, conversation_id=conversation_id, reply=error_msg)

    def _finish(self, conversation_id: str, message: Message) -> None:
        try:
            self._append(conversation_id, message)
        finally:
            self._set_pending(conversation_id, False)

    def _append(self, conversation_id: str, message: Message) -> None:
        try:
            self._repository.append(conversation_id, message)
        except PersistenceError as e:
            self._log(
                logging.ERROR,
                "Failed to persist message",
                {"conversation_id": conversation_id},
                code=e.code,
                error=e.message,
            )
            raise
        self._emit(PipelineEvent(kind="message", conversation_id=conversation_id, message=message))

    def _set_pending(self, conversation_id: str, pending: bool) -> None:
        self._pending = pending
        self._emit(PipelineEvent(kind="pending", conversation_id=conversation_id, pending=pending))

    def _emit(self, event: PipelineEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001 - 渲染回调失败不能打断状态机
                logger.exception("Pipeline listener failed", extra={"extra": {"kind": event.kind}})

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
