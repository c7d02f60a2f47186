"""对外 API 服务模块。

提供简化的函数接口供 UI 层调用；核心对象仍可直接构造注入。
"""

from typing import Any, Dict, Optional

from chat_core.config.settings import settings
from chat_core.domain.models import FileAttachment, Message
from chat_core.engine.pipeline import MessagePipeline
from chat_core.engine.repository import ConversationRepository
from chat_core.engine.request_controller import RequestController
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.json_store import JsonConversationStore
from chat_core.providers import create_provider
from chat_core.render.formatting import format_size, format_text, format_time


_pipeline: Optional[MessagePipeline] = None


def get_default_pipeline() -> MessagePipeline:
    """获取默认的 MessagePipeline 实例（单例）。"""
    global _pipeline
    if _pipeline is None:
        store = JsonConversationStore(root=settings.storage_root)
        repository = ConversationRepository(store)
        controller = RequestController(create_provider())
        _pipeline = MessagePipeline(repository, controller)
    return _pipeline


def set_default_pipeline(pipeline: Optional[MessagePipeline]) -> None:
    """替换默认实例（传 None 则下次调用时重新构建）。"""
    global _pipeline
    _pipeline = pipeline


async def send_message(text: str, file: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """发送一条消息并等待结果。

    Args:
        text: 用户输入内容
        file: 可选附件描述 {name, size, type, url}

    Returns:
        包含会话ID、发送状态与回复消息的字典
    """
    pipeline = get_default_pipeline()
    attachment = FileAttachment.from_dict(file) if file else None
    try:
        outcome = await pipeline.submit(text, attachment)
    except Exception as e:
        logger.error(f"Send failed: {e}", extra={"extra": {
            "conversation_id": pipeline.current_conversation_id,
            "error": str(e),
        }})
        raise
    return {
        "conversation_id": outcome.conversation_id,
        "state": outcome.state.value,
        "reply": _message_view(outcome.reply) if outcome.reply else None,
    }


def prefill_from_voice(transcript: str) -> None:
    """语音识别结果填入输入草稿。"""
    get_default_pipeline().composer.set_voice_transcript(transcript)


def attach_file(file: Dict[str, Any]) -> None:
    get_default_pipeline().composer.attach(FileAttachment.from_dict(file))


async def send_draft() -> Dict[str, Any]:
    outcome = await get_default_pipeline().submit_draft()
    return {
        "conversation_id": outcome.conversation_id,
        "state": outcome.state.value,
        "reply": _message_view(outcome.reply) if outcome.reply else None,
    }


def start_new_conversation() -> str:
    return get_default_pipeline().start_new_conversation()


def list_conversations() -> list[Dict[str, Any]]:
    """列出所有会话。

    Returns:
        会话列表，每项包含 id, created_at, updated_at, message_count, current
    """
    pipeline = get_default_pipeline()
    current_id = pipeline.current_conversation_id
    return [
        {
            "id": c.id,
            "created_at": c.created_at.isoformat(),
            "updated_at": c.updated_at.isoformat(),
            "message_count": len(c.messages),
            "current": c.id == current_id,
        }
        for c in pipeline.repository.list_conversations()
    ]


def get_conversation_messages(conversation_id: Optional[str] = None) -> list[Dict[str, Any]]:
    """获取会话的所有消息（默认当前会话），附带渲染用字段。

    Args:
        conversation_id: 会话ID
    """
    pipeline = get_default_pipeline()
    conv = pipeline.repository.get(conversation_id or pipeline.current_conversation_id)
    return [_message_view(m) for m in conv.messages]


def _message_view(m: Message) -> Dict[str, Any]:
    view: Dict[str, Any] = {
        "sender": m.sender.value,
        "text": m.text,
        "html": format_text(m.text) if m.text else "",
        "timestamp": m.timestamp.isoformat(),
        "time": format_time(m.timestamp),
        "file": None,
    }
    if m.file is not None:
        view["file"] = {
            **m.file.to_dict(),
            "is_image": m.file.is_image,
            "size_label": format_size(m.file.size),
        }
    return view
