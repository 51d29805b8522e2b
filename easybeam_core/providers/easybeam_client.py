"""Easybeam API 客户端。

本模块负责：

1. 接收调用方的会话（ChatMessage 列表）与变量表。
2. 转换为 Easybeam 的 HTTP 请求（prompt / agent / portal / workflow / review）。
3. 流式调用交给 StreamController，在后台线程上回调；
   阻塞调用是可取消的协程，返回一个 ChatResponse。
4. 把网络错误、非 2xx、响应体不合法分别包装为 TransportError、
   HttpStatusError、DecodeError。
"""

import json
import threading
from typing import Callable, Mapping, Optional, Sequence

import httpx

from easybeam_core.config.settings import DEFAULT_BASE_URL, settings
from easybeam_core.domain.exceptions import (
    BusinessError,
    DecodeError,
    HttpStatusError,
    RateLimitError,
    TransportError,
)
from easybeam_core.domain.models import ChatMessage, ChatResponse
from easybeam_core.infrastructure.logging.logger import logger
from easybeam_core.providers import request_builder
from easybeam_core.providers.registry import AGENT, PORTAL, PROMPT, REVIEW, WORKFLOW, EndpointConfig, endpoint_url
from easybeam_core.streaming.controller import (
    CloseCallback,
    ErrorCallback,
    ResponseCallback,
    StreamController,
    StreamHandle,
)


class EasybeamClient:
    """Easybeam 客户端实现。

    - 每次流式调用都拥有独立的连接与解码缓冲区，互不影响。
    - 实例本身只保存配置（base_url、token、超时），可以在多个线程间共享。
    """

    name = "easybeam"

    def __init__(
        self,
        cfg=settings,
        *,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        async_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = cfg
        self._token = token
        self._base_url = base_url
        self._transport = transport
        if async_transport is None and isinstance(transport, httpx.AsyncBaseTransport):
            # httpx.MockTransport 同时实现了同步与异步接口
            async_transport = transport
        self._async_transport = async_transport

    # ---- 流式 ----

    def stream_prompt(
        self,
        prompt_id: str,
        user_id: Optional[str],
        filled_variables: Mapping[str, str],
        messages: Sequence[ChatMessage],
        on_response: ResponseCallback,
        on_close: CloseCallback,
        on_error: ErrorCallback,
    ) -> StreamHandle:
        return self._stream(PROMPT, prompt_id, user_id, filled_variables, messages, on_response, on_close, on_error)

    def stream_agent(
        self,
        agent_id: str,
        user_id: Optional[str],
        filled_variables: Mapping[str, str],
        messages: Sequence[ChatMessage],
        on_response: ResponseCallback,
        on_close: CloseCallback,
        on_error: ErrorCallback,
    ) -> StreamHandle:
        return self._stream(AGENT, agent_id, user_id, filled_variables, messages, on_response, on_close, on_error)

    def stream_portal(
        self,
        portal_id: str,
        user_id: Optional[str],
        filled_variables: Mapping[str, str],
        messages: Sequence[ChatMessage],
        on_response: ResponseCallback,
        on_close: CloseCallback,
        on_error: ErrorCallback,
    ) -> StreamHandle:
        return self._stream(PORTAL, portal_id, user_id, filled_variables, messages, on_response, on_close, on_error)

    def stream_workflow(
        self,
        workflow_id: str,
        user_id: Optional[str],
        filled_variables: Mapping[str, str],
        messages: Sequence[ChatMessage],
        on_response: ResponseCallback,
        on_close: CloseCallback,
        on_error: ErrorCallback,
    ) -> StreamHandle:
        return self._stream(
            WORKFLOW, workflow_id, user_id, filled_variables, messages, on_response, on_close, on_error
        )

    # ---- 阻塞（协程） ----

    async def get_prompt(
        self,
        prompt_id: str,
        user_id: Optional[str],
        filled_variables: Mapping[str, str],
        messages: Sequence[ChatMessage],
    ) -> ChatResponse:
        return await self._get(PROMPT, prompt_id, user_id, filled_variables, messages)

    async def get_agent(
        self,
        agent_id: str,
        user_id: Optional[str],
        filled_variables: Mapping[str, str],
        messages: Sequence[ChatMessage],
    ) -> ChatResponse:
        return await self._get(AGENT, agent_id, user_id, filled_variables, messages)

    async def get_portal(
        self,
        portal_id: str,
        user_id: Optional[str],
        filled_variables: Mapping[str, str],
        messages: Sequence[ChatMessage],
    ) -> ChatResponse:
        return await self._get(PORTAL, portal_id, user_id, filled_variables, messages)

    async def get_workflow(
        self,
        workflow_id: str,
        user_id: Optional[str],
        filled_variables: Mapping[str, str],
        messages: Sequence[ChatMessage],
    ) -> ChatResponse:
        return await self._get(WORKFLOW, workflow_id, user_id, filled_variables, messages)

    # ---- review ----

    def review(
        self,
        chat_id: str,
        user_id: Optional[str],
        review_score: Optional[int],
        review_text: Optional[str],
        on_success: Callable[[], None],
        on_error: Callable[[BusinessError], None],
    ) -> threading.Thread:
        """在后台线程提交评价，结果通过回调通知。返回该线程以便调用方 join。"""

        def worker() -> None:
            try:
                self.submit_review(chat_id, user_id, review_score, review_text)
            except BusinessError as e:
                on_error(e)
                return
            except Exception as e:
                on_error(TransportError(code="NETWORK_ERROR", message=f"Failed to submit review: {e}"))
                return
            on_success()

        thread = threading.Thread(target=worker, name="easybeam-review", daemon=True)
        thread.start()
        return thread

    def submit_review(
        self,
        chat_id: str,
        user_id: Optional[str] = None,
        review_score: Optional[int] = None,
        review_text: Optional[str] = None,
    ) -> None:
        payload = request_builder.build_review_body(chat_id, user_id, review_score, review_text)
        request = request_builder.prepare(endpoint_url(self.base_url, REVIEW), self.token, payload)
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport, trust_env=False) as client:
                resp = client.post(request.url, content=request.body, headers=request.headers)
        except httpx.RequestError as e:
            raise TransportError(code="NETWORK_ERROR", message=str(e))
        if not resp.is_success:
            raise self._status_error(resp, f"Failed to submit review: {resp.status_code} {resp.text}")
        logger.info("Review submitted", extra={"extra": {"chat_id": chat_id, "score": review_score}})

    # ---- 辅助方法 ----

    @property
    def token(self) -> Optional[str]:
        return self._token or getattr(self._settings, "easybeam_token", None)

    @property
    def base_url(self) -> str:
        return self._base_url or getattr(self._settings, "easybeam_base_url", None) or DEFAULT_BASE_URL

    @property
    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=getattr(self._settings, "connect_timeout", 30.0),
            read=getattr(self._settings, "read_timeout", 30.0),
            write=getattr(self._settings, "write_timeout", 30.0),
            pool=getattr(self._settings, "connect_timeout", 30.0),
        )

    def _prepare_chat(
        self,
        endpoint: EndpointConfig,
        resource_id: str,
        user_id: Optional[str],
        filled_variables: Mapping[str, str],
        messages: Sequence[ChatMessage],
        stream: bool,
    ) -> request_builder.PreparedRequest:
        url = endpoint_url(self.base_url, endpoint, resource_id)
        payload = request_builder.build_chat_body(filled_variables, messages, stream, user_id)
        return request_builder.prepare(url, self.token, payload, stream=stream)

    def _stream(
        self,
        endpoint: EndpointConfig,
        resource_id: str,
        user_id: Optional[str],
        filled_variables: Mapping[str, str],
        messages: Sequence[ChatMessage],
        on_response: ResponseCallback,
        on_close: CloseCallback,
        on_error: ErrorCallback,
    ) -> StreamHandle:
        logger.info(
            "Opening stream",
            extra={"extra": {"endpoint": endpoint.name, "id": resource_id, "messages": len(messages)}},
        )
        controller = StreamController(
            lambda: self._prepare_chat(endpoint, resource_id, user_id, filled_variables, messages, stream=True),
            on_response,
            on_close,
            on_error,
            timeout=self.timeout,
            transport=self._transport,
            name=f"{endpoint.name}/{resource_id}",
        )
        return controller.start()

    async def _get(
        self,
        endpoint: EndpointConfig,
        resource_id: str,
        user_id: Optional[str],
        filled_variables: Mapping[str, str],
        messages: Sequence[ChatMessage],
    ) -> ChatResponse:
        request = self._prepare_chat(endpoint, resource_id, user_id, filled_variables, messages, stream=False)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._async_transport, trust_env=False
            ) as client:
                resp = await client.post(request.url, content=request.body, headers=request.headers)
        except httpx.RequestError as e:
            raise TransportError(code="NETWORK_ERROR", message=str(e), endpoint=endpoint.name)
        if not resp.is_success:
            raise self._status_error(resp, f"Unexpected code {resp.status_code}: {resp.text}")
        if not resp.content.strip():
            raise DecodeError(code="EMPTY_BODY", message="Empty response body")
        try:
            data = json.loads(resp.content)
        except (ValueError, RecursionError) as e:
            raise DecodeError(code="INVALID_BODY", message=f"Response body is not valid JSON: {e}")
        return ChatResponse.from_json(data)

    @staticmethod
    def _status_error(resp: httpx.Response, message: str) -> HttpStatusError:
        logger.error(message, extra={"extra": {"status": resp.status_code, "url": str(resp.request.url)}})
        error_cls = RateLimitError if resp.status_code == 429 else HttpStatusError
        return error_cls(code="API_ERROR", message=message, http_status=resp.status_code, body=resp.text)
