"""消息展示用的轻量格式化：行内标记转 HTML、文件大小、时间。"""

import re
from datetime import datetime

_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")
_ITALIC_RE = re.compile(r"\*(.*?)\*")
_CODE_FENCE_RE = re.compile(r"```([\s\S]*?)```")

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def format_text(text: str) -> str:
    """依次处理 **粗体**、*斜体*、```代码块``` 和换行。"""

    out = _BOLD_RE.sub(r"<strong>\1</strong>", text)
    out = _ITALIC_RE.sub(r"<em>\1</em>", out)
    out = _CODE_FENCE_RE.sub(r'<div class="code-block">\1<button class="copy-btn">Copy</button></div>', out)
    return out.replace("\n", "<br>")


def format_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    index = 0
    while size >= 1024 ** (index + 1) and index < len(_SIZE_UNITS) - 1:
        index += 1
    value = round(size / 1024 ** index, 1)
    # 12.0 -> "12"
    number = f"{value:.1f}".rstrip("0").rstrip(".")
    return f"{number} {_SIZE_UNITS[index]}"


def format_time(ts: datetime) -> str:
    """本地时区的 HH:MM。"""

    return ts.astimezone().strftime("%H:%M")
