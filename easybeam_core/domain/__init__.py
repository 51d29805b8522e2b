"""领域层模型与协议。

包含：
- models: ChatRole / ChatMessage / ChatResponse 及其 JSON 编解码。
- conversation: 调用方持有的会话与按 id 对账的更新逻辑。
- exceptions: 业务异常类型定义。
"""
