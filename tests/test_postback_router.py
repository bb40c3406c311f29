"""Tests for PostbackRouter payload handling."""

import pytest

from kohi.commands import Command
from kohi.routing import MessageRouter, PostbackRouter

from conftest import make_postback, static_registry


class FakeHelp(Command):
    names = ("help",)
    description = "Show available commands"

    def __init__(self):
        self.calls = []

    async def execute(self, ctx):
        self.calls.append(ctx.args)


def _routers(mock_transport, image_cache, *commands, **kwargs):
    messages = MessageRouter(static_registry(*commands), mock_transport, image_cache)
    return messages, PostbackRouter(messages, **kwargs)


@pytest.mark.asyncio
async def test_get_started_sends_welcome_with_help_quick_reply(mock_transport, image_cache):
    _, postbacks = _routers(mock_transport, image_cache, welcome_message="Welcome!")
    await postbacks.dispatch(make_postback("GET_STARTED"), "T")

    recipient, message, token = mock_transport.send.await_args.args
    assert recipient == "U1"
    assert token == "T"
    assert message.text == "Welcome!"
    assert [(q.title, q.payload) for q in message.quick_replies] == [("Help", "CMD_HELP")]


@pytest.mark.asyncio
async def test_cmd_help_runs_help_without_arguments(mock_transport, image_cache):
    help_cmd = FakeHelp()
    _, postbacks = _routers(mock_transport, image_cache, help_cmd)
    await postbacks.dispatch(make_postback("CMD_HELP"), "T")
    assert help_cmd.calls == [[]]


@pytest.mark.asyncio
async def test_cmd_payload_takes_the_same_path_as_explicit_text(mock_transport, image_cache):
    help_cmd = FakeHelp()
    messages, postbacks = _routers(mock_transport, image_cache, help_cmd)
    await postbacks.dispatch(make_postback("CMD_HELP"), "T")
    await messages.dispatch(
        {"sender": {"id": "U1"}, "message": {"text": "-help"}}, "T"
    )
    assert help_cmd.calls == [[], []]


@pytest.mark.asyncio
async def test_cmd_unknown_gets_unknown_command_reply(mock_transport, image_cache):
    _, postbacks = _routers(mock_transport, image_cache, FakeHelp())
    await postbacks.dispatch(make_postback("CMD_NOPE"), "T")
    assert '"nope"' in mock_transport.send.await_args.args[1].text


@pytest.mark.asyncio
async def test_other_payload_is_echoed(mock_transport, image_cache):
    _, postbacks = _routers(mock_transport, image_cache)
    await postbacks.dispatch(make_postback("SOMETHING_ELSE"), "T")
    assert mock_transport.send.await_args.args[1].text == "Received postback: SOMETHING_ELSE"


@pytest.mark.asyncio
async def test_payloads_are_case_sensitive(mock_transport, image_cache):
    help_cmd = FakeHelp()
    _, postbacks = _routers(mock_transport, image_cache, help_cmd)
    await postbacks.dispatch(make_postback("get_started"), "T")
    await postbacks.dispatch(make_postback("cmd_help"), "T")
    assert help_cmd.calls == []
    texts = [c.args[1].text for c in mock_transport.send.await_args_list]
    assert texts == ["Received postback: get_started", "Received postback: cmd_help"]


@pytest.mark.asyncio
@pytest.mark.parametrize("event", [
    make_postback(None),
    make_postback("GET_STARTED", sender=None),
])
async def test_incomplete_postbacks_are_dropped(mock_transport, image_cache, event):
    _, postbacks = _routers(mock_transport, image_cache)
    await postbacks.dispatch(event, "T")
    mock_transport.send.assert_not_awaited()
