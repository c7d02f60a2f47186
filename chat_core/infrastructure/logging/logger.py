"""JSON 行日志。

每条记录一行 JSON：ts / level / name / msg，再合并调用方通过
``extra={"extra": {...}}`` 传入的结构化字段（trace_id、conversation_id 等）。
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from chat_core.config.settings import settings

ROOT_LOGGER = "chat_core"
LOG_FILE = "chat.log"


class JsonFormatter(logging.Formatter):
    def __init__(self, redact: bool = False):
        super().__init__()
        self._redact = redact

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage() or ""
        if self._redact:
            # 只保留前 64 个字符，避免把对话内容写进日志
            msg = msg[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(log_dir: Optional[str | Path] = None, redact: Optional[bool] = None) -> logging.Logger:
    """给 chat_core 根 logger 挂上 JSON 文件 handler。

    同一个文件只挂一次，重复调用（例如测试里重新导入）不会产生重复行。
    """

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.INFO)
    path = (Path(log_dir or settings.log_dir) / LOG_FILE).resolve()
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == path:
            return logger
    path.parent.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(path, encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(JsonFormatter(settings.log_redact_content if redact is None else redact))
    logger.addHandler(fh)
    return logger


def get_logger(name: str) -> logging.Logger:
    """返回 chat_core 下的子 logger，记录经根 logger 的 handler 输出。"""

    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


logger = setup_logger()
