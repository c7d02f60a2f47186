"""领域层模型与协议。

包含：
- models: Message / FileAttachment / Conversation 及其序列化。
- conversation: ConversationStore 持久化抽象。
- exceptions: 业务异常类型定义。
"""
