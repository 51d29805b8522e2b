"""统一的消息与响应数据模型。

本模块定义了 SDK 在请求与响应之间共享的标准数据结构：

- ChatRole: 消息角色（USER / ASSISTANT / UNKNOWN）。
- ChatMessage: 一条对话消息，请求体中的 messages 与响应中的 newMessage 都用它表示。
- ChatResponse: 服务端返回的一个响应单元（消息 + chatId + 流结束标记）。

两个实体都是不可变值，并各自提供对称的 to_json / from_json 编解码：
结构不合法时 from_json 抛出 DecodeError，而不是依赖字典取值时的偶然行为。
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from easybeam_core.domain.exceptions import DecodeError


class ChatRole(str, Enum):
    """消息角色。未知字符串解码为 UNKNOWN，保证服务端新增角色不会让客户端报错。"""

    USER = "USER"
    ASSISTANT = "ASSISTANT"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> "ChatRole":
        if not isinstance(value, str):
            raise DecodeError(code="DECODE_ERROR", message=f"role must be a string, got {value!r}")
        key = value.strip().upper()
        if key == "AI":
            # 早期服务端使用的别名
            return cls.ASSISTANT
        try:
            return cls(key)
        except ValueError:
            return cls.UNKNOWN


# 小数秒统一为 6 位（datetime 精度），服务端可能发送毫秒或纳秒
_FRACTION_RE = re.compile(r"\.(\d+)")


def format_instant(value: datetime) -> str:
    """格式化为 ISO-8601 UTC 时间，带 Z 后缀，仅在有小数秒时输出小数部分。"""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    # strftime 的 %Y 在部分平台上不会把 1000 年以前的年份补足 4 位
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        if value.microsecond % 1000 == 0:
            text += f".{value.microsecond // 1000:03d}"
        else:
            text += f".{value.microsecond:06d}"
    return text + "Z"


def parse_instant(raw: Any) -> datetime:
    if not isinstance(raw, str) or not raw:
        raise DecodeError(code="DECODE_ERROR", message=f"createdAt must be an ISO-8601 string, got {raw!r}")
    text = _FRACTION_RE.sub(lambda m: "." + (m.group(1) + "000000")[:6], raw.strip())
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(text)
    except ValueError as e:
        raise DecodeError(code="DECODE_ERROR", message=f"Invalid createdAt {raw!r}: {e}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _optional_number(raw: Any) -> Optional[float]:
    """可选数值字段：缺失、非数字、NaN 或负数都视为“缺失”，而不是 0。"""

    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value) or value < 0:
        return None
    return value


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise DecodeError(code="DECODE_ERROR", message=f"Missing or invalid field {key!r}")
    return value


@dataclass(frozen=True)
class ChatMessage:
    """一条对话消息。

    - id: 消息的稳定标识，同一逻辑消息在流式更新中保持不变，是对账的主键。
    - role: 消息角色。
    - content: 纯文本内容。
    - created_at: 创建时间，总是规范化为带 UTC 时区的 datetime。
    - provider_id / input_tokens / output_tokens / cost: 服务端附带的可选元数据。

    实例不可变，更新一条消息意味着构造一个新的 ChatMessage。
    """

    id: str
    role: ChatRole
    content: str
    created_at: datetime
    provider_id: Optional[str] = None
    input_tokens: Optional[float] = None
    output_tokens: Optional[float] = None
    cost: Optional[float] = None

    def __post_init__(self) -> None:
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        object.__setattr__(self, "created_at", created.astimezone(timezone.utc))
        if self.provider_id == "":
            # 空 providerId 与缺失等价
            object.__setattr__(self, "provider_id", None)

    @classmethod
    def create(cls, content: str, role: ChatRole = ChatRole.USER) -> "ChatMessage":
        """构造一条新的本地消息：随机 id，当前 UTC 时间。"""

        return cls(id=str(uuid4()), role=role, content=content, created_at=datetime.now(timezone.utc))

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "createdAt": format_instant(self.created_at),
        }
        if self.provider_id is not None:
            payload["providerId"] = self.provider_id
        if self.input_tokens is not None:
            payload["inputTokens"] = self.input_tokens
        if self.output_tokens is not None:
            payload["outputTokens"] = self.output_tokens
        if self.cost is not None:
            payload["cost"] = self.cost
        return payload

    @classmethod
    def from_json(cls, data: Any) -> "ChatMessage":
        if not isinstance(data, dict):
            raise DecodeError(code="DECODE_ERROR", message="message must be a JSON object")
        if "role" not in data:
            raise DecodeError(code="DECODE_ERROR", message="Missing or invalid field 'role'")
        provider_id = data.get("providerId")
        return cls(
            id=_require_str(data, "id"),
            role=ChatRole.parse(data["role"]),
            content=_require_str(data, "content"),
            created_at=parse_instant(data.get("createdAt")),
            provider_id=provider_id if isinstance(provider_id, str) and provider_id else None,
            input_tokens=_optional_number(data.get("inputTokens")),
            output_tokens=_optional_number(data.get("outputTokens")),
            cost=_optional_number(data.get("cost")),
        )


@dataclass(frozen=True)
class ChatResponse:
    """服务端输出的一个响应单元。

    - new_message: 新消息或对已有消息（同 id）的更新。
    - chat_id: 会话标识，首次响应时由服务端分配，之后保持不变。
    - stream_finished: 仅在流式会话的最后一个响应上为 True；缺失时解码为 False。
    - raw: 原始 JSON，便于调试，不参与相等比较。
    """

    new_message: ChatMessage
    chat_id: str
    stream_finished: bool = False
    raw: Optional[dict] = field(default=None, compare=False, repr=False)

    def to_json(self) -> Dict[str, Any]:
        return {
            "newMessage": self.new_message.to_json(),
            "chatId": self.chat_id,
            "streamFinished": self.stream_finished,
        }

    @classmethod
    def from_json(cls, data: Any) -> "ChatResponse":
        if not isinstance(data, dict):
            raise DecodeError(code="DECODE_ERROR", message="response must be a JSON object")
        if "newMessage" not in data:
            raise DecodeError(code="DECODE_ERROR", message="Missing field 'newMessage'")
        return cls(
            new_message=ChatMessage.from_json(data["newMessage"]),
            chat_id=_require_str(data, "chatId"),
            stream_finished=_as_bool(data.get("streamFinished")),
            raw=data,
        )


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False
