"""Chat Core 顶层包。

该包提供浏览器聊天客户端的核心实现，
包括配置加载、会话模型、本地持久化、
生成端点请求控制与消息流水线等能力。
"""

from chat_core.engine.pipeline import MessagePipeline, SendOutcome, SendState
from chat_core.engine.repository import ConversationRepository
from chat_core.engine.request_controller import RequestController

__all__ = [
    "ConversationRepository",
    "MessagePipeline",
    "RequestController",
    "SendOutcome",
    "SendState",
]
