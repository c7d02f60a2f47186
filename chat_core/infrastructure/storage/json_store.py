import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.conversation import ConversationStore
from chat_core.domain.exceptions import PersistenceError
from chat_core.domain.models import Conversation, generate_conversation_id
from chat_core.infrastructure.logging.logger import get_logger

logger = get_logger("storage")

CHATS_KEY = "pdb-ai-chats"
CURRENT_ID_KEY = "currentChatId"


class JsonConversationStore(ConversationStore):
    """基于 JSON 文件的键值存储，每个键对应 root 下的一个文件。

    - pdb-ai-chats.json: 会话 ID -> 会话 的完整映射。
    - currentChatId.json: 当前会话指针。

    save 总是整体覆盖，不做合并。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def load(self) -> Dict[str, Conversation]:
        path = self._key_path(CHATS_KEY)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError(f"expected a mapping, got {type(data).__name__}")
            return {cid: Conversation.from_dict(raw) for cid, raw in data.items()}
        except OSError as e:
            raise PersistenceError(code="STORE_READ_ERROR", message=str(e))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            # 损坏的数据按空状态处理，原文件移到旁边保留
            backup = self._quarantine(path)
            logger.error(
                "Stored conversations are malformed, starting empty",
                extra={"extra": {"error": str(e), "backup": str(backup) if backup else None}},
            )
            return {}

    def save(self, conversations: Dict[str, Conversation], current_id: str) -> None:
        """整体覆盖两个键；任一键替换失败时把已替换的键恢复为旧内容。"""

        chats_payload = {cid: conv.to_dict() for cid, conv in conversations.items()}
        staged: List[Tuple[Path, Path]] = []
        committed: List[Tuple[Path, Optional[bytes]]] = []
        try:
            for key, obj in ((CHATS_KEY, chats_payload), (CURRENT_ID_KEY, current_id)):
                tmp_path = self._tmp_path(key)
                tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
                staged.append((tmp_path, self._key_path(key)))
            for tmp_path, target in staged:
                previous = target.read_bytes() if target.exists() else None
                os.replace(tmp_path, target)
                committed.append((target, previous))
        except (OSError, TypeError, ValueError) as e:
            for tmp_path, _ in staged:
                tmp_path.unlink(missing_ok=True)
            self._restore(committed)
            raise PersistenceError(code="STORE_WRITE_ERROR", message=str(e))

    def get_current_id(self) -> str:
        path = self._key_path(CURRENT_ID_KEY)
        if path.exists():
            try:
                cid = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Current conversation pointer unreadable", extra={"extra": {"error": str(e)}})
                cid = None
            if isinstance(cid, str) and cid:
                return cid
        cid = generate_conversation_id()
        self._write_key(CURRENT_ID_KEY, cid)
        return cid

    def _write_key(self, key: str, obj: object) -> None:
        target = self._key_path(key)
        tmp_path = self._tmp_path(key)
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, target)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise PersistenceError(code="STORE_WRITE_ERROR", message=str(e))

    def _restore(self, committed: List[Tuple[Path, Optional[bytes]]]) -> None:
        for target, previous in reversed(committed):
            tmp_path = self._tmp_path(target.stem)
            try:
                if previous is None:
                    target.unlink(missing_ok=True)
                else:
                    tmp_path.write_bytes(previous)
                    os.replace(tmp_path, target)
            except OSError:
                tmp_path.unlink(missing_ok=True)
                logger.exception("Failed to restore store key", extra={"extra": {"path": str(target)}})

    def _quarantine(self, path: Path) -> Path | None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        backup = path.with_name(f"{CHATS_KEY}.corrupt-{stamp}.json")
        try:
            os.replace(path, backup)
        except OSError:
            logger.exception("Failed to move malformed store aside")
            return None
        return backup

    def _key_path(self, key: str) -> Path:
        return self._root / f"{key}.json"

    def _tmp_path(self, key: str) -> Path:
        return self._root / f"{key}.{uuid4().hex}.json.tmp"
