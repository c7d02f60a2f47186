"""Provider 抽象接口。

RequestController 不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 GeminiClient）。
- 负责：把拼好的 prompt 转成具体 API 请求，并把响应 JSON 解析为回复文本。
"""

from typing import Protocol


class ProviderClient(Protocol):
    """生成端点客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - generate(prompt): 执行一次非流式调用，返回回复文本。
      失败时抛出 NetworkError / ApiError。
    """

    name: str

    async def generate(self, prompt: str) -> str:
        ...
