from typing import Optional, Tuple

from chat_core.domain.models import FileAttachment


class Composer:
    """输入框草稿：尚未发送的文本和附件。

    文本框、文件选择和语音识别都写到这里，submit_draft 发送时取走并清空。
    """

    def __init__(self):
        self.text = ""
        self.file: Optional[FileAttachment] = None

    def set_text(self, text: str) -> None:
        self.text = text or ""

    def set_voice_transcript(self, transcript: str) -> None:
        """语音识别结果覆盖当前草稿文本，不做追加。"""

        self.set_text(transcript)

    def attach(self, file: FileAttachment) -> None:
        self.file = file

    def take(self) -> Tuple[str, Optional[FileAttachment]]:
        draft = (self.text, self.file)
        self.reset()
        return draft

    def reset(self) -> None:
        self.text = ""
        self.file = None
