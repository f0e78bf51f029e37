"""提示词拼装工具。

角色对话只用一个纯文本 prompt：角色设定 + 历史记录 + 用户消息，
最后以 "Assistant:" 提示模型开始生成。所有生成都失败时，
由 build_fallback_reply 给出确定性的本地模拟回复。
"""

from typing import Iterable, Optional

from character_core.domain.conversation import MessageRecord


PROMPT_TEMPLATE = "{persona}\nHistory:\n{history}\nUser: {user_message}\nAssistant:"
FALLBACK_TEMPLATE = '[simulated reply] {persona}: I saw your message - "{user_message}" (offline simulation)'


def render_history(messages: Iterable[MessageRecord]) -> str:
    """把历史消息渲染为每行一条的 "{sender}: {content}\\n" 文本。"""

    return "".join(f"{m.sender}: {m.content}\n" for m in messages)


def build_prompt(persona: Optional[str], history: Optional[str], user_message: Optional[str]) -> str:
    """拼装完整 prompt；persona / history 为 None 时按空字符串处理。"""

    return PROMPT_TEMPLATE.format(
        persona=persona or "",
        history=history or "",
        user_message=user_message or "",
    )


def build_fallback_reply(persona: Optional[str], user_message: Optional[str]) -> str:
    return FALLBACK_TEMPLATE.format(persona=persona or "", user_message=user_message or "")
