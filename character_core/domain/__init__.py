"""领域层模型与协议。

包含：
- models: provider 标识、生成结果、流事件、音频会话等统一模型。
- conversation: 角色/会话/消息模型及 ConversationStore 协议。
- exceptions: 业务异常类型定义。
"""
