"""SSE 流式响应：事件解码 (decoder) 与连接生命周期控制 (controller)。"""

from .controller import StreamController, StreamHandle, StreamState
from .decoder import DONE_SENTINEL, EventDecoder, StreamEvent, iter_events

__all__ = [
    "DONE_SENTINEL",
    "EventDecoder",
    "StreamController",
    "StreamEvent",
    "StreamHandle",
    "StreamState",
    "iter_events",
]
