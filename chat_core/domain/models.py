"""会话与消息数据模型。

本模块定义了 chat_core 内部共享的标准数据结构：

- Message: 一条对话消息（user / ai），可附带文件描述。
- FileAttachment: 文件描述，二进制内容的生命周期由 UI 层负责。
- Conversation: 一个只追加的消息序列，带创建/更新时间。

持久化格式沿用浏览器端最初的 camelCase 结构（createdAt、updatedAt ...），
没有 schema 版本号，任何字段变更都是对已存数据的破坏性变更。
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class Sender(str, Enum):
    """消息作者。ai 即助手，取值与 prompt 中的前缀一致。"""

    USER = "user"
    AI = "ai"


def to_iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def from_iso(raw: str) -> datetime:
    return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))


def generate_conversation_id(taken: Iterable[str] = ()) -> str:
    """生成基于时间的会话 ID（chat-<毫秒>），与 taken 中的 ID 不冲突。"""

    taken_ids = set(taken)
    stamp = int(time.time() * 1000)
    cid = f"chat-{stamp}"
    while cid in taken_ids:
        stamp += 1
        cid = f"chat-{stamp}"
    return cid


@dataclass(frozen=True)
class FileAttachment:
    """附件描述。

    - name / size / mime_type: 由文件选择组件提供。
    - url: 内容引用（例如 object URL），本模块只保存引用不管理内容。
    """

    name: str
    size: int
    mime_type: str
    url: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "size": self.size, "type": self.mime_type, "url": self.url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileAttachment":
        return cls(
            name=data["name"],
            size=int(data.get("size", 0)),
            mime_type=data.get("type") or "",
            url=data.get("url") or "",
        )


@dataclass(frozen=True)
class Message:
    """一条对话消息，创建后不可修改。"""

    sender: Sender
    text: Optional[str]
    timestamp: datetime
    file: Optional[FileAttachment] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sender": self.sender.value,
            "text": self.text,
            "timestamp": to_iso(self.timestamp),
        }
        if self.file is not None:
            payload["file"] = self.file.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        file_raw = data.get("file")
        return cls(
            sender=Sender(data["sender"]),
            text=data.get("text"),
            timestamp=from_iso(data["timestamp"]),
            file=FileAttachment.from_dict(file_raw) if file_raw else None,
        )


@dataclass
class Conversation:
    """一个会话。messages 只追加，从创建起至少包含一条问候消息。"""

    id: str
    created_at: datetime
    updated_at: datetime
    messages: List[Message] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        return cls(
            id=data["id"],
            created_at=from_iso(data["createdAt"]),
            updated_at=from_iso(data["updatedAt"]),
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
        )
