"""领域层模型与协议。

包含：
- models: ChatMessage / FunctionCall / RequestConfig 等统一模型。
- conversation: 有序会话与 ConversationSource 协议。
- exceptions: 业务异常类型定义。
"""
