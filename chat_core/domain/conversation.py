from typing import Dict, Protocol

from .models import Conversation


class ConversationStore(Protocol):
    """本地持久化协议：整份会话映射 + 当前会话指针两个键。"""

    def load(self) -> Dict[str, Conversation]:
        ...

    def save(self, conversations: Dict[str, Conversation], current_id: str) -> None:
        ...

    def get_current_id(self) -> str:
        ...
