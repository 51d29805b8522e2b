"""请求构造。

阻塞调用与流式调用共享同一个请求体结构：

    {"variables": {...}, "messages": [...], "stream": bool, "userId"?: str}

本模块负责把 ChatMessage 列表与变量表转换成 JSON 字节，并生成标准请求头。
所有校验都在发起网络请求前完成，失败时抛出 ConfigError。
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

from easybeam_core.domain.exceptions import ConfigError
from easybeam_core.domain.models import ChatMessage


JSON_CONTENT_TYPE = "application/json"
EVENT_STREAM = "text/event-stream"


@dataclass(frozen=True)
class PreparedRequest:
    """已构造好的 POST 请求。"""

    url: str
    headers: Dict[str, str]
    body: bytes


def build_headers(token: Optional[str], stream: bool) -> Dict[str, str]:
    if not token:
        raise ConfigError(code="MISSING_TOKEN", message="EASYBEAM_TOKEN not set")
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": JSON_CONTENT_TYPE,
    }
    if stream:
        headers["Accept"] = EVENT_STREAM
    return headers


def build_chat_body(
    filled_variables: Mapping[str, str],
    messages: Sequence[ChatMessage],
    stream: bool,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    variables: Dict[str, str] = {}
    for key, value in (filled_variables or {}).items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise ConfigError(
                code="INVALID_BODY",
                message=f"variables must map str to str, got {key!r}: {value!r}",
            )
        variables[key] = value
    payload: Dict[str, Any] = {
        "variables": variables,
        "messages": [m.to_json() for m in messages],
        "stream": stream,
    }
    if user_id is not None:
        payload["userId"] = user_id
    return payload


def build_review_body(
    chat_id: str,
    user_id: Optional[str] = None,
    review_score: Optional[int] = None,
    review_text: Optional[str] = None,
) -> Dict[str, Any]:
    if not chat_id:
        raise ConfigError(code="INVALID_BODY", message="chatId must not be empty")
    payload: Dict[str, Any] = {"chatId": chat_id}
    if user_id is not None:
        payload["userId"] = user_id
    if review_score is not None:
        payload["reviewScore"] = review_score
    if review_text is not None:
        payload["reviewText"] = review_text
    return payload


def encode_body(payload: Dict[str, Any]) -> bytes:
    try:
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise ConfigError(code="INVALID_BODY", message=f"Request body is not JSON serializable: {e}")


def prepare(url: str, token: Optional[str], payload: Dict[str, Any], stream: bool = False) -> PreparedRequest:
    return PreparedRequest(url=url, headers=build_headers(token, stream), body=encode_body(payload))
