"""对外 API 服务模块。

提供聊天界面直接使用的会话封装：
一个 ChatSession 对应一段会话，同一时刻最多只有一个进行中的流。
"""

import threading
from typing import Callable, Dict, Literal, Optional

from easybeam_core.config.settings import settings
from easybeam_core.domain.conversation import Conversation
from easybeam_core.domain.exceptions import BusinessError
from easybeam_core.domain.models import ChatMessage, ChatResponse
from easybeam_core.infrastructure.logging.logger import logger
from easybeam_core.providers.easybeam_client import EasybeamClient
from easybeam_core.streaming.controller import StreamHandle


EndpointKind = Literal["prompt", "agent", "portal", "workflow"]

_client: Optional[EasybeamClient] = None


def get_default_client() -> EasybeamClient:
    """获取默认的客户端实例（单例）。"""
    global _client
    if _client is None:
        _client = EasybeamClient(settings)
    return _client


class ChatSession:
    """一段会话及其流式更新。

    回调在后台线程上执行；界面层需要自行切换到自己的线程再更新控件。
    """

    def __init__(
        self,
        kind: EndpointKind,
        resource_id: str,
        *,
        client: Optional[EasybeamClient] = None,
        user_id: Optional[str] = None,
        variables: Optional[Dict[str, str]] = None,
    ):
        self.kind = kind
        self.resource_id = resource_id
        self.user_id = user_id
        self.variables = dict(variables or {})
        self._client = client or get_default_client()
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._conversation = Conversation()
        self._handle: Optional[StreamHandle] = None

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def streaming(self) -> bool:
        handle = self._handle
        return handle is not None and not handle.closed

    def send(
        self,
        text: str,
        on_update: Optional[Callable[[Conversation], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[BusinessError], None]] = None,
    ) -> StreamHandle:
        """追加一条用户消息并开始流式请求。

        Raises:
            BusinessError: 上一个流尚未结束（STREAM_ACTIVE）。
        """
        with self._send_lock:
            return self._start(text, on_update, on_close, on_error)

    def _start(self, text, on_update, on_close, on_error) -> StreamHandle:
        with self._lock:
            if self.streaming:
                raise BusinessError(code="STREAM_ACTIVE", message="A stream is already active for this session")
            self._conversation = self._conversation.append(ChatMessage.create(text))
            messages = list(self._conversation.messages)

        def handle_response(response: ChatResponse) -> None:
            with self._lock:
                self._conversation = self._conversation.apply(response)
                snapshot = self._conversation
            if on_update:
                on_update(snapshot)

        def handle_error(error: BusinessError) -> None:
            logger.error(
                f"Chat stream failed: {error.message}",
                extra={"extra": {"kind": self.kind, "id": self.resource_id, "code": error.code}},
            )
            if on_error:
                on_error(error)

        stream = getattr(self._client, f"stream_{self.kind}")
        handle = stream(
            self.resource_id,
            self.user_id,
            self.variables,
            messages,
            handle_response,
            on_close or (lambda: None),
            handle_error,
        )
        with self._lock:
            self._handle = handle
        return handle

    def cancel(self) -> None:
        handle = self._handle
        if handle is not None:
            handle.cancel()

    def review(self, score: Optional[int] = None, text: Optional[str] = None) -> None:
        """对当前会话提交评价（同步）。"""
        chat_id = self._conversation.chat_id
        if not chat_id:
            raise BusinessError(code="NO_CHAT", message="No chatId yet; send a message first")
        self._client.submit_review(chat_id, self.user_id, score, text)
