import json
import threading

import httpx
import pytest

from easybeam_core.api.service import ChatSession
from easybeam_core.domain.exceptions import BusinessError
from easybeam_core.domain.models import ChatRole
from easybeam_core.providers.easybeam_client import EasybeamClient


class SettingsStub:
    easybeam_token = "test-token-123"
    easybeam_base_url = "https://api.test/v1"
    connect_timeout = 1.0
    read_timeout = 1.0
    write_timeout = 1.0


def event(message_id, content):
    payload = {
        "newMessage": {
            "id": message_id,
            "role": "ASSISTANT",
            "content": content,
            "createdAt": "2024-01-01T00:00:00Z",
        },
        "chatId": "chat-9",
    }
    return f"data: {json.dumps(payload)}\n\n"


class GatedStream(httpx.SyncByteStream):
    def __init__(self, body: bytes, gate: threading.Event):
        self._body = body
        self._gate = gate

    def __iter__(self):
        self._gate.wait(5)
        yield self._body


def test_send_reconciles_streamed_updates():
    requests = []
    reviews = []
    body = (event("a1", "Hel") + event("a1", "Hello there") + "data: [DONE]\n\n").encode()

    def handler(request):
        if request.url.path.endswith("/review"):
            reviews.append(json.loads(request.content))
            return httpx.Response(200)
        requests.append(json.loads(request.content))
        return httpx.Response(200, headers={"Content-Type": "text/event-stream"}, content=body)

    client = EasybeamClient(SettingsStub(), transport=httpx.MockTransport(handler))
    session = ChatSession("portal", "portal-1", client=client, user_id="u1", variables={"tone": "calm"})
    updates = []
    handle = session.send("hi", on_update=updates.append)
    assert handle.wait(5)

    conv = session.conversation
    assert [m.role for m in conv.messages] == [ChatRole.USER, ChatRole.ASSISTANT]
    assert conv.messages[1].content == "Hello there"
    assert conv.chat_id == "chat-9"
    assert len(updates) == 2
    assert requests[0]["messages"][0]["content"] == "hi"
    assert requests[0]["variables"] == {"tone": "calm"}
    assert not session.streaming

    session.review(score=4, text="nice")
    assert reviews == [{"chatId": "chat-9", "userId": "u1", "reviewScore": 4, "reviewText": "nice"}]


def test_second_send_while_streaming_is_rejected():
    gate = threading.Event()

    def handler(request):
        return httpx.Response(
            200,
            headers={"Content-Type": "text/event-stream"},
            stream=GatedStream((event("a1", "x") + "data: [DONE]\n\n").encode(), gate),
        )

    client = EasybeamClient(SettingsStub(), transport=httpx.MockTransport(handler))
    session = ChatSession("agent", "agent-1", client=client)
    closed = []
    handle = session.send("first", on_close=lambda: closed.append(True))
    with pytest.raises(BusinessError) as exc:
        session.send("second")
    assert exc.value.code == "STREAM_ACTIVE"

    session.cancel()
    gate.set()
    assert handle.wait(5)
    assert closed == [True]
    assert len(session.conversation.messages) == 1


def test_review_requires_chat_id():
    session = ChatSession("prompt", "p1", client=EasybeamClient(SettingsStub()))
    with pytest.raises(BusinessError) as exc:
        session.review(score=1)
    assert exc.value.code == "NO_CHAT"
