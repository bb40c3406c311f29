"""Tests for Send API serialization and delivery."""

import asyncio

import aiohttp
import pytest

from kohi.exceptions import DeliveryError, ErrorCategory
from kohi.models import Attachment, Button, OutboundMessage, QuickReply
from kohi.transport import (
    MAX_TEXT_LENGTH,
    TRUNCATION_MARKER,
    build_payloads,
    render_chunks,
)

from conftest import GRAPH_URL, FakeResponse


# --- Pure serialization ---

def test_text_payload_shape():
    (payload,) = build_payloads("U1", OutboundMessage(text="hi"))
    assert payload["recipient"] == {"id": "U1"}
    assert payload["message"] == {"text": "hi"}


def test_long_text_is_truncated_with_marker():
    (payload,) = build_payloads("U1", OutboundMessage(text="x" * 5000))
    text = payload["message"]["text"]
    assert len(text) == MAX_TEXT_LENGTH
    assert text.endswith(TRUNCATION_MARKER)


def test_quick_replies_capped_and_titles_cut():
    replies = [QuickReply(title=f"option number {i} with long title", payload=f"P{i}") for i in range(20)]
    (payload,) = build_payloads("U1", OutboundMessage(text="pick", quick_replies=replies))
    sent = payload["message"]["quick_replies"]
    assert len(sent) == 13
    assert all(len(q["title"]) <= 20 for q in sent)
    assert sent[0] == {"content_type": "text", "title": "option number 0 with", "payload": "P0"}


def test_buttons_win_over_quick_replies():
    message = OutboundMessage(
        text="choose",
        buttons=[Button(title=f"B{i}", payload=f"P{i}") for i in range(5)],
        quick_replies=[QuickReply(title="Q", payload="Q")],
    )
    (payload,) = build_payloads("U1", message)
    template = payload["message"]["attachment"]["payload"]
    assert template["template_type"] == "button"
    assert template["text"] == "choose"
    assert len(template["buttons"]) == 3
    assert "quick_replies" not in payload["message"]


def test_button_template_without_text_uses_default_prompt():
    message = OutboundMessage(buttons=[Button(title="Site", url="https://example.com")])
    (payload,) = build_payloads("U1", message)
    template = payload["message"]["attachment"]["payload"]
    assert template["text"] == "Choose an option:"
    assert template["buttons"] == [{"type": "web_url", "title": "Site", "url": "https://example.com"}]


def test_text_and_attachment_are_two_messages_text_first():
    message = OutboundMessage(text="look", attachment=Attachment(url="https://img/x.png"))
    first, second = build_payloads("U1", message)
    assert first["message"] == {"text": "look"}
    assert second["message"]["attachment"] == {
        "type": "image",
        "payload": {"url": "https://img/x.png", "is_reusable": True},
    }


def test_quick_replies_ride_on_attachment_without_text():
    message = OutboundMessage(
        attachment=Attachment(url="https://img/x.png"),
        quick_replies=[QuickReply(title="More", payload="MORE")],
    )
    (payload,) = build_payloads("U1", message)
    assert payload["message"]["quick_replies"][0]["payload"] == "MORE"


def test_template_attachment_is_embedded():
    message = OutboundMessage(attachment=Attachment.generic([{"title": "Card"}]))
    (payload,) = build_payloads("U1", message)
    assert payload["message"]["attachment"] == {
        "type": "template",
        "payload": {"template_type": "generic", "elements": [{"title": "Card"}]},
    }


def test_button_requires_exactly_one_action():
    with pytest.raises(ValueError):
        Button(title="x")
    with pytest.raises(ValueError):
        Button(title="x", payload="P", url="https://e.com")


def test_attachment_requires_a_source():
    with pytest.raises(ValueError):
        Attachment(type="image")


# --- Chunking ---

def test_render_chunks_decorates_first_and_last():
    text = "word " * 1000
    chunks = render_chunks(text, header="HEAD\n", footer="\nFOOT", chunk_size=1900)
    assert len(chunks) > 1
    assert chunks[0].startswith("HEAD\n")
    assert chunks[-1].endswith("\nFOOT")
    assert all(len(c) <= MAX_TEXT_LENGTH for c in chunks)
    body = "".join(chunks)[len("HEAD\n"):-len("\nFOOT")]
    assert body == text


def test_render_chunks_short_text_is_single_chunk():
    assert render_chunks("hi", header="[", footer="]") == ["[hi]"]


def test_render_chunks_respects_cap_with_large_decoration():
    header = "h" * 300
    chunks = render_chunks("y" * 4000, header=header, chunk_size=1900)
    assert all(len(c) <= MAX_TEXT_LENGTH for c in chunks)


def test_render_chunks_rejects_oversized_decoration():
    with pytest.raises(ValueError):
        render_chunks("x", header="h" * MAX_TEXT_LENGTH)


# --- Delivery ---

@pytest.mark.asyncio
async def test_empty_message_makes_no_network_calls(transport, fake_session):
    assert await transport.send("U1", OutboundMessage(), "T") == []
    assert fake_session.calls == []


@pytest.mark.asyncio
async def test_send_brackets_with_typing_indicators(transport, fake_session):
    fake_session.queue("me/messages", FakeResponse(200, {}), FakeResponse(200, {"message_id": "m1"}))
    results = await transport.send("U1", OutboundMessage(text="hi"), "TOKEN")

    assert results == [{"message_id": "m1"}]
    assert fake_session.typing_actions() == ["typing_on", "typing_off"]
    assert fake_session.sent_messages()[0]["message"] == {"text": "hi"}
    call = fake_session.calls[1]
    assert call["url"] == f"{GRAPH_URL}/me/messages"
    assert call["params"] == {"access_token": "TOKEN"}


@pytest.mark.asyncio
async def test_typing_off_is_sent_when_delivery_fails(transport, fake_session):
    fake_session.queue("me/messages", FakeResponse(200, {}), FakeResponse(400, {"error": "bad"}))
    with pytest.raises(DeliveryError) as exc_info:
        await transport.send("U1", OutboundMessage(text="hi"), "T")

    assert exc_info.value.status == 400
    assert exc_info.value.category == ErrorCategory.PERMANENT
    assert fake_session.typing_actions() == ["typing_on", "typing_off"]


@pytest.mark.asyncio
async def test_typing_failure_does_not_block_delivery(transport, fake_session):
    fake_session.queue("me/messages", FakeResponse(500, {}), FakeResponse(200, {"message_id": "m"}))
    results = await transport.send("U1", OutboundMessage(text="hi"), "T")
    assert results == [{"message_id": "m"}]


@pytest.mark.asyncio
async def test_network_errors_become_transient_delivery_errors(transport, fake_session):
    fake_session.queue(
        "me/messages",
        FakeResponse(200, {}),
        aiohttp.ClientConnectionError("reset"),
    )
    with pytest.raises(DeliveryError) as exc_info:
        await transport.send("U1", OutboundMessage(text="hi"), "T")
    assert exc_info.value.is_transient


@pytest.mark.asyncio
async def test_timeouts_become_delivery_errors(transport, fake_session):
    fake_session.queue("me/messages", FakeResponse(200, {}), asyncio.TimeoutError())
    with pytest.raises(DeliveryError):
        await transport.send("U1", OutboundMessage(text="hi"), "T")


@pytest.mark.asyncio
async def test_file_attachment_is_uploaded_then_referenced(transport, fake_session, tmp_path):
    image = tmp_path / "gen.jpg"
    image.write_bytes(b"\xff\xd8 jpeg")
    fake_session.queue("me/message_attachments", FakeResponse(200, {"attachment_id": "A42"}))

    message = OutboundMessage(attachment=Attachment(file_path=image, temporary=True))
    await transport.send("U1", message, "T")

    upload_calls = [c for c in fake_session.calls if c["url"].endswith("me/message_attachments")]
    assert len(upload_calls) == 1
    assert isinstance(upload_calls[0]["data"], aiohttp.FormData)
    (sent,) = fake_session.sent_messages()
    assert sent["message"]["attachment"] == {"type": "image", "payload": {"attachment_id": "A42"}}
    assert not image.exists()


@pytest.mark.asyncio
async def test_temporary_file_removed_when_upload_fails(transport, fake_session, tmp_path):
    image = tmp_path / "gen.jpg"
    image.write_bytes(b"data")
    fake_session.queue("me/message_attachments", FakeResponse(500, {"error": "x"}))

    with pytest.raises(DeliveryError):
        await transport.send("U1", OutboundMessage(attachment=Attachment(file_path=image, temporary=True)), "T")

    assert not image.exists()
    assert fake_session.sent_messages() == []
    assert fake_session.typing_actions() == ["typing_on", "typing_off"]


@pytest.mark.asyncio
async def test_non_temporary_file_is_kept(transport, fake_session, tmp_path):
    image = tmp_path / "keep.png"
    image.write_bytes(b"data")
    fake_session.queue("me/message_attachments", FakeResponse(200, {"attachment_id": "A1"}))
    await transport.send("U1", OutboundMessage(attachment=Attachment(file_path=image)), "T")
    assert image.exists()


@pytest.mark.asyncio
async def test_upload_without_attachment_id_fails(transport, fake_session, tmp_path):
    image = tmp_path / "gen.jpg"
    image.write_bytes(b"data")
    fake_session.queue("me/message_attachments", FakeResponse(200, {}))
    with pytest.raises(DeliveryError):
        await transport.upload_attachment(image, "image", "T")


@pytest.mark.asyncio
async def test_send_text_sends_chunks_in_order(transport, fake_session):
    text = "".join(f"line {i}\n" for i in range(600))
    await transport.send_text("U1", text, "T", header="H:", footer=":F")

    bodies = [m["message"]["text"] for m in fake_session.sent_messages()]
    assert len(bodies) > 1
    assert all(len(b) <= MAX_TEXT_LENGTH for b in bodies)
    assert "".join(bodies) == "H:" + text + ":F"
