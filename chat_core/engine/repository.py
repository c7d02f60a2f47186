"""会话仓库。

内存中维护 会话 ID -> Conversation 的映射，并在每次变更后同步写穿到
ConversationStore（无批量、无重试）。append 是唯一的消息变更入口。
"""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from chat_core.config.settings import settings
from chat_core.domain.conversation import ConversationStore
from chat_core.domain.exceptions import BusinessError, PersistenceError
from chat_core.domain.models import Conversation, Message, Sender, generate_conversation_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationRepository:
    def __init__(
        self,
        store: ConversationStore,
        greeting: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._greeting = greeting or settings.greeting_text
        self._clock = clock or _utcnow
        self._conversations: Dict[str, Conversation] = store.load()
        self._current_id = store.get_current_id()
        self.ensure_conversation(self._current_id)

    def now(self) -> datetime:
        return self._clock()

    def get_current(self) -> str:
        return self._current_id

    def set_current(self, conversation_id: str) -> None:
        """切换当前会话（不存在则创建）并持久化指针。"""

        self.ensure_conversation(conversation_id)
        previous = self._current_id
        self._current_id = conversation_id
        try:
            self._flush()
        except PersistenceError:
            self._current_id = previous
            raise

    def get(self, conversation_id: str) -> Conversation:
        try:
            return self._conversations[conversation_id]
        except KeyError:
            raise BusinessError(code="CONVERSATION_NOT_FOUND", message=conversation_id, http_status=404)

    def list_conversations(self) -> List[Conversation]:
        """按最近更新时间倒序列出所有会话。"""

        return sorted(self._conversations.values(), key=lambda c: c.updated_at, reverse=True)

    def ensure_conversation(self, conversation_id: str) -> Conversation:
        conv = self._conversations.get(conversation_id)
        if conv is not None:
            return conv
        now = self.now()
        conv = Conversation(
            id=conversation_id,
            created_at=now,
            updated_at=now,
            messages=[Message(sender=Sender.AI, text=self._greeting, timestamp=now)],
        )
        self._conversations[conversation_id] = conv
        try:
            self._flush()
        except PersistenceError:
            del self._conversations[conversation_id]
            raise
        return conv

    def append(self, conversation_id: str, message: Message) -> Conversation:
        conv = self.get(conversation_id)
        previous_updated_at = conv.updated_at
        conv.messages.append(message)
        conv.updated_at = self.now()
        try:
            self._flush()
        except PersistenceError:
            # 内存状态与持久化状态保持一致：写失败则回滚本次追加
            conv.messages.pop()
            conv.updated_at = previous_updated_at
            raise
        return conv

    def start_new(self) -> str:
        taken = set(self._conversations)
        taken.add(self._current_id)
        conversation_id = generate_conversation_id(taken)
        self.ensure_conversation(conversation_id)
        self.set_current(conversation_id)
        return conversation_id

    def _flush(self) -> None:
        self._store.save(self._conversations, self._current_id)
