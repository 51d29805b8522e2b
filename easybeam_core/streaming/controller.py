"""流式响应控制器。

一个 StreamController 对应一次流式调用，负责：

1. 构造请求并在独立的后台线程上打开 SSE 连接。
2. 逐个解码事件，把合法负载解析为 ChatResponse 并按到达顺序回调 on_response。
3. 把连接失败、非 2xx、负载解析失败分类后回调 on_error。
4. 无论以何种方式结束（终止信号、连接关闭、失败、取消、初始化失败），
   on_close 在整个生命周期内恰好触发一次。

状态机：

    INITIALIZING -> OPEN -> {CLOSING_NORMAL | CLOSING_ERROR | CANCELLED} -> CLOSED

CLOSED 之后不再触发任何回调。单条负载解析失败不会终止流。

回调在后台线程（初始化失败与取消时在调用线程）上执行，并在控制器的可重入锁
内串行执行：回调内部可以调用 cancel()，但不应阻塞等待另一个正在 cancel() 的线程。

cancel() 会立即触发 on_close 并关闭已建立的响应；若此时连接仍在建立中，
后台线程会继续等待传输层返回（或超时），之后直接退出，不再触发任何回调。
"""

import json
import threading
from enum import Enum
from typing import Callable, Optional

import httpx

from easybeam_core.domain.exceptions import (
    BusinessError,
    ConfigError,
    DecodeError,
    HttpStatusError,
    RateLimitError,
    TransportError,
)
from easybeam_core.domain.models import ChatResponse
from easybeam_core.infrastructure.logging.logger import logger
from easybeam_core.providers.request_builder import PreparedRequest
from easybeam_core.streaming.decoder import iter_events


ResponseCallback = Callable[[ChatResponse], None]
CloseCallback = Callable[[], None]
ErrorCallback = Callable[[BusinessError], None]


class StreamState(str, Enum):
    INITIALIZING = "initializing"
    OPEN = "open"
    CLOSING_NORMAL = "closing_normal"
    CLOSING_ERROR = "closing_error"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class StreamHandle:
    """流的取消句柄，在流启动时同步返回给调用方。"""

    def __init__(self, controller: "StreamController"):
        self._controller = controller

    def cancel(self) -> None:
        """强制关闭连接；重复调用没有额外效果。"""

        self._controller.cancel()

    @property
    def state(self) -> StreamState:
        return self._controller.state

    @property
    def cancelled(self) -> bool:
        return self._controller.cancelled

    @property
    def closed(self) -> bool:
        return self._controller.state is StreamState.CLOSED

    def wait(self, timeout: Optional[float] = None) -> bool:
        """等待后台线程结束，返回是否在超时前结束。"""

        return self._controller.wait(timeout)


class StreamController:
    def __init__(
        self,
        build_request: Callable[[], PreparedRequest],
        on_response: ResponseCallback,
        on_close: CloseCallback,
        on_error: ErrorCallback,
        *,
        timeout: httpx.Timeout,
        transport: Optional[httpx.BaseTransport] = None,
        name: str = "stream",
    ):
        self._build_request = build_request
        self._on_response = on_response
        self._on_close = on_close
        self._on_error = on_error
        self._timeout = timeout
        self._transport = transport
        self._name = name

        self._lock = threading.RLock()
        self._finished = threading.Event()
        self._state = StreamState.INITIALIZING
        self._close_fired = False
        self._cancelled = False
        self._response: Optional[httpx.Response] = None
        self._thread: Optional[threading.Thread] = None

    # ---- 对外接口 ----

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> StreamHandle:
        handle = StreamHandle(self)
        try:
            request = self._build_request()
        except BusinessError as e:
            self._fail_init(e)
            return handle
        except Exception as e:
            self._fail_init(
                ConfigError(code="STREAM_INIT_FAILED", message=f"Failed to initialize stream: {e}")
            )
            return handle
        self._thread = threading.Thread(
            target=self._run,
            args=(request,),
            name=f"easybeam-{self._name}",
            daemon=True,
        )
        self._thread.start()
        return handle

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled or self._state is StreamState.CLOSED:
                return
            self._cancelled = True
            self._transition(StreamState.CANCELLED)
            self._close()
            response = self._response
        if response is not None:
            # 关闭底层连接，后台线程随后的读取失败会被忽略
            response.close()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._finished.wait(timeout)

    # ---- 后台线程 ----

    def _run(self, request: PreparedRequest) -> None:
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport, trust_env=False) as client:
                if self._cancelled:
                    return
                with client.stream("POST", request.url, content=request.body, headers=request.headers) as resp:
                    with self._lock:
                        if self._cancelled:
                            return
                        self._response = resp
                    if not resp.is_success:
                        resp.read()
                        self._fail(self._status_error(resp))
                        return
                    with self._lock:
                        if self._cancelled:
                            return
                        self._transition(StreamState.OPEN)
                    for event in iter_events(resp.iter_text()):
                        if self._cancelled:
                            return
                        if event.terminal:
                            break
                        self._dispatch(event.data or "")
            self._finish_normal()
        except httpx.HTTPError as e:
            self._fail(TransportError(code="STREAM_ERROR", message=f"Stream error: {e}"))
        except Exception as e:
            self._fail(TransportError(code="UNKNOWN_STREAM_ERROR", message=f"Unknown error encountered: {e}"))
        finally:
            self._finished.set()

    def _dispatch(self, payload: str) -> None:
        try:
            response = ChatResponse.from_json(json.loads(payload))
        except (ValueError, RecursionError) as e:
            # 嵌套过深的负载会触发 RecursionError
            self._emit_decode_error(payload, f"Failed to parse response: {e}")
            return
        except DecodeError as e:
            self._emit_decode_error(payload, f"Failed to parse response: {e.message}")
            return
        with self._lock:
            if self._state is not StreamState.OPEN:
                return
            self._invoke(self._on_response, response)

    def _emit_decode_error(self, payload: str, message: str) -> None:
        logger.warning(message, extra={"extra": {"stream": self._name, "payload": payload[:256]}})
        with self._lock:
            if self._state is not StreamState.OPEN:
                return
            self._invoke(self._on_error, DecodeError(code="DECODE_ERROR", message=message))

    # ---- 状态迁移 ----

    def _finish_normal(self) -> None:
        with self._lock:
            if self._state is StreamState.CLOSED:
                return
            self._transition(StreamState.CLOSING_NORMAL)
            self._close()

    def _fail(self, error: BusinessError) -> None:
        with self._lock:
            if self._state is StreamState.CLOSED:
                # 取消后连接被强制关闭引起的失败
                logger.debug(
                    "Ignoring failure after close",
                    extra={"extra": {"stream": self._name, "error": error.message}},
                )
                return
            logger.error(
                error.message,
                extra={"extra": {"stream": self._name, "code": error.code, "status": error.http_status}},
            )
            self._transition(StreamState.CLOSING_ERROR)
            self._invoke(self._on_error, error)
            self._close()

    def _fail_init(self, error: BusinessError) -> None:
        self._fail(error)
        self._finished.set()

    def _close(self) -> None:
        if self._close_fired:
            return
        self._close_fired = True
        self._transition(StreamState.CLOSED)
        self._invoke(self._on_close)

    def _transition(self, state: StreamState) -> None:
        logger.debug(
            "Stream state change",
            extra={"extra": {"stream": self._name, "from": self._state.value, "to": state.value}},
        )
        self._state = state

    def _invoke(self, callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Stream callback raised", extra={"extra": {"stream": self._name}})

    @staticmethod
    def _status_error(resp: httpx.Response) -> HttpStatusError:
        message = f"Failed to open stream: {resp.status_code} {resp.reason_phrase}"
        error_cls = RateLimitError if resp.status_code == 429 else HttpStatusError
        return error_cls(code="API_ERROR", message=message, http_status=resp.status_code, body=resp.text)
