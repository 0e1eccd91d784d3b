"""领域层模型与协议。

包含：
- models: ApiModel / ChatMessage / ConversationContext / SendOptions 等对话模型。
- result: 统一返回信封 Result。
- conversation: 消息存储协议与内存实现。
- exceptions: 业务异常类型定义。
"""
