"""Server-Sent Events 负载切分。

把 HTTP 响应的文本块拆成一个个事件的 data 负载：

- 网络分块与事件边界不对齐，未结束的行与事件会跨块缓存。
- 一个事件的多行 data 以 "\\n" 拼接，空行表示事件结束。
- 注释行（以 ":" 开头）与 event/id/retry 等字段被忽略。
- 去除首尾空白后等于 "[DONE]" 的负载是终止信号，以 StreamEvent.terminal
  的形式单独上报，不会作为普通负载交给 JSON 解析。
- 连接正常关闭且没有收到终止信号时，序列正常结束；末尾未以空行结束的
  事件仍然会被上报。
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional


DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class StreamEvent:
    """一个解码后的事件：普通负载，或终止信号。"""

    data: Optional[str] = None
    terminal: bool = False


DONE = StreamEvent(terminal=True)


class EventDecoder:
    """增量式 SSE 解码器，每个流独占一个实例。"""

    def __init__(self) -> None:
        self._buffer = ""
        self._data_lines: List[str] = []
        self._pending_cr = False

    def feed(self, chunk: str) -> List[StreamEvent]:
        if not chunk:
            return []
        if self._pending_cr:
            # 上一块以 "\r" 结尾，若本块以 "\n" 开头则属于同一个 "\r\n"
            self._pending_cr = False
            if chunk.startswith("\n"):
                chunk = chunk[1:]
        text = self._buffer + chunk
        if text.endswith("\r"):
            self._pending_cr = True
        lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        self._buffer = lines.pop()
        events: List[StreamEvent] = []
        for line in lines:
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def finish(self) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        if self._buffer:
            event = self._process_line(self._buffer)
            self._buffer = ""
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    def _process_line(self, line: str) -> Optional[StreamEvent]:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None
        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if name == "data":
            self._data_lines.append(value)
        return None

    def _dispatch(self) -> Optional[StreamEvent]:
        if not self._data_lines:
            return None
        data = "\n".join(self._data_lines)
        self._data_lines = []
        if data.strip() == DONE_SENTINEL:
            return DONE
        return StreamEvent(data=data)


def iter_events(chunks: Iterable[str]) -> Iterator[StreamEvent]:
    """惰性地产出事件，遇到终止信号后立即停止。"""

    decoder = EventDecoder()
    for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
            if event.terminal:
                return
    for event in decoder.finish():
        yield event
        if event.terminal:
            return
