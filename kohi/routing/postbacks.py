"""Postback router: button presses and menu selections."""

from typing import Any, Dict

import structlog
from pydantic import ValidationError

from ..config import DEFAULT_WELCOME_MESSAGE
from ..logging_config import mask_id
from ..models import MessagingEvent, QuickReply
from .messages import MessageRouter

logger = structlog.get_logger("kohi.router")

GET_STARTED_PAYLOAD = "GET_STARTED"
COMMAND_PAYLOAD_PREFIX = "CMD_"


def command_payload(name: str) -> str:
    """Postback payload that runs command *name*."""
    return f"{COMMAND_PAYLOAD_PREFIX}{name.upper()}"


class PostbackRouter:
    """Maps postback payloads to a static reply or a command call.

    Command payloads go through the message router's
    ``resolve_and_invoke`` as explicit invocations without arguments.
    """

    def __init__(self, messages: MessageRouter, welcome_message: str = DEFAULT_WELCOME_MESSAGE):
        self.messages = messages
        self.welcome_message = welcome_message

    async def dispatch(self, event: Dict[str, Any], token: str) -> None:
        try:
            parsed = MessagingEvent.model_validate(event)
        except ValidationError as e:
            logger.warning("malformed_postback_event", error=str(e)[:200])
            return

        sender_id = parsed.sender_id
        payload = parsed.postback.payload if parsed.postback else None
        if not sender_id or not payload:
            logger.warning("postback_dropped", reason="missing_sender_or_payload")
            return

        logger.info("postback_received", sender=mask_id(sender_id), payload=payload)

        if payload == GET_STARTED_PAYLOAD:
            await self.messages.reply(
                sender_id,
                self.welcome_message,
                token,
                quick_replies=[QuickReply(title="Help", payload=command_payload("help"))],
            )
        elif payload.startswith(COMMAND_PAYLOAD_PREFIX):
            name = payload[len(COMMAND_PAYLOAD_PREFIX):].lower()
            await self.messages.resolve_and_invoke(
                sender_id, name, [], explicit=True, token=token, event=event,
            )
        else:
            await self.messages.reply(sender_id, f"Received postback: {payload}", token)
