from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .models import ChatMessage, ChatResponse


@dataclass(frozen=True)
class Conversation:
    """调用方持有的有序消息序列。

    流式会话中，同一条助手消息会以相同 id 多次到达：
    id 已存在则替换该位置的消息，否则追加到末尾。
    """

    messages: Tuple[ChatMessage, ...] = ()
    chat_id: Optional[str] = None

    def index_of(self, message_id: str) -> int:
        for i, m in enumerate(self.messages):
            if m.id == message_id:
                return i
        return -1

    def append(self, message: ChatMessage) -> "Conversation":
        return replace(self, messages=self.messages + (message,))

    def apply(self, response: ChatResponse) -> "Conversation":
        incoming = response.new_message
        idx = self.index_of(incoming.id)
        if idx == -1:
            messages = self.messages + (incoming,)
        else:
            messages = self.messages[:idx] + (incoming,) + self.messages[idx + 1:]
        return Conversation(messages=messages, chat_id=response.chat_id or self.chat_id)
