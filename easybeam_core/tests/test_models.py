import math
from datetime import datetime, timezone, timedelta

import pytest

from easybeam_core.domain.exceptions import DecodeError
from easybeam_core.domain.models import ChatMessage, ChatResponse, ChatRole, format_instant, parse_instant


def make_message(**overrides):
    fields = dict(
        id="m1",
        role=ChatRole.USER,
        content="hello",
        created_at=datetime(2024, 5, 1, 12, 30, 15, 123000, tzinfo=timezone.utc),
        provider_id="openai",
        input_tokens=10.0,
        output_tokens=20.0,
        cost=0.001,
    )
    fields.update(overrides)
    return ChatMessage(**fields)


def test_message_round_trip():
    for msg in [
        make_message(),
        make_message(role=ChatRole.ASSISTANT, provider_id=None, input_tokens=None, output_tokens=None, cost=None),
        make_message(role=ChatRole.UNKNOWN, created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)),
        make_message(created_at=datetime(2024, 1, 1, 0, 0, 0, 654321, tzinfo=timezone.utc)),
    ]:
        assert ChatMessage.from_json(msg.to_json()) == msg


def test_message_encode_shape():
    data = make_message(provider_id=None, cost=None).to_json()
    assert data["createdAt"] == "2024-05-01T12:30:15.123Z"
    assert data["role"] == "USER"
    assert "providerId" not in data
    assert "cost" not in data


def test_naive_and_offset_datetimes_normalized_to_utc():
    naive = make_message(created_at=datetime(2024, 1, 1, 8, 0))
    assert naive.created_at.tzinfo is timezone.utc
    shifted = make_message(created_at=datetime(2024, 1, 1, 10, 0, tzinfo=timezone(timedelta(hours=2))))
    assert format_instant(shifted.created_at) == "2024-01-01T08:00:00Z"


def test_parse_instant_accepts_nanoseconds_and_offsets():
    assert parse_instant("2024-01-01T00:00:00.123456789Z") == datetime(2024, 1, 1, 0, 0, 0, 123456, tzinfo=timezone.utc)
    assert parse_instant("2024-01-01T02:00:00+02:00") == datetime(2024, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(DecodeError):
        parse_instant("yesterday")


def test_unknown_role_decodes_to_unknown():
    data = make_message().to_json()
    data["role"] = "SYSTEM_NARRATOR"
    assert ChatMessage.from_json(data).role is ChatRole.UNKNOWN


def test_role_aliases():
    assert ChatRole.parse("assistant") is ChatRole.ASSISTANT
    assert ChatRole.parse("AI") is ChatRole.ASSISTANT
    assert ChatRole.parse("User") is ChatRole.USER


@pytest.mark.parametrize("missing", ["id", "role", "content", "createdAt"])
def test_message_missing_required_field(missing):
    data = make_message().to_json()
    del data[missing]
    with pytest.raises(DecodeError):
        ChatMessage.from_json(data)


def test_optional_numbers_absent_when_missing_or_nan():
    data = make_message().to_json()
    del data["inputTokens"]
    data["outputTokens"] = "not a number"
    data["cost"] = math.nan
    msg = ChatMessage.from_json(data)
    assert msg.input_tokens is None
    assert msg.output_tokens is None
    assert msg.cost is None


def test_empty_provider_id_is_absent():
    data = make_message().to_json()
    data["providerId"] = ""
    assert ChatMessage.from_json(data).provider_id is None


def test_empty_provider_id_normalized_on_construction():
    msg = make_message(provider_id="")
    assert msg.provider_id is None
    assert "providerId" not in msg.to_json()
    assert ChatMessage.from_json(msg.to_json()) == msg


def test_instant_years_before_1000_are_zero_padded():
    early = make_message(created_at=datetime(999, 1, 1, tzinfo=timezone.utc))
    assert early.to_json()["createdAt"] == "0999-01-01T00:00:00Z"
    assert ChatMessage.from_json(early.to_json()) == early

    earliest = make_message(created_at=datetime.min)
    assert earliest.to_json()["createdAt"] == "0001-01-01T00:00:00Z"
    assert ChatMessage.from_json(earliest.to_json()) == earliest


def test_create_assigns_fresh_id_and_time():
    a = ChatMessage.create("hi")
    b = ChatMessage.create("hi")
    assert a.id != b.id
    assert a.role is ChatRole.USER
    assert a.created_at.tzinfo is timezone.utc


def test_response_decode_defaults_stream_finished_false():
    data = {"newMessage": make_message().to_json(), "chatId": "chat-1"}
    resp = ChatResponse.from_json(data)
    assert resp.stream_finished is False
    assert resp.chat_id == "chat-1"
    assert resp.new_message == make_message()


def test_response_round_trip():
    resp = ChatResponse(new_message=make_message(), chat_id="c", stream_finished=True)
    assert ChatResponse.from_json(resp.to_json()) == resp


@pytest.mark.parametrize(
    "data",
    [
        {"chatId": "c"},
        {"newMessage": {"content": "x"}, "chatId": "c"},
        {"newMessage": None, "chatId": "c"},
        "not an object",
    ],
)
def test_response_decode_failures(data):
    with pytest.raises(DecodeError):
        ChatResponse.from_json(data)


def test_response_missing_chat_id():
    with pytest.raises(DecodeError):
        ChatResponse.from_json({"newMessage": make_message().to_json()})
