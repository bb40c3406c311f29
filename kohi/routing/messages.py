"""Message router: inbound text to command handler.

Every inbound ``message`` event goes through ``MessageRouter.dispatch``:
image attachments are cached for the sender, the text is parsed into a
command name and arguments, and the matching handler is invoked. Text
without the prefix that names no command is forwarded whole to the
default handler. ``resolve_and_invoke`` is shared with the postback
router so both entry points get the same failure handling.

Key classes:
    ParsedMessage: Result of splitting one inbound text.
    MessageRouter: Resolution, fallback and the handler failure boundary.

Key functions:
    parse_message: Pure text -> ParsedMessage parsing.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import structlog
from pydantic import ValidationError

from ..commands import CommandContext, CommandRegistry, CommandSpec, CommandTable
from ..exceptions import CommandError, DeliveryError
from ..image_cache import ImageCache
from ..logging_config import mask_id
from ..models import MessagingEvent, OutboundMessage
from ..transport import MessengerTransport

logger = structlog.get_logger("kohi.router")

GENERIC_ERROR_REPLY = "❌ An error occurred while processing your request."
NOT_UNDERSTOOD_REPLY = (
    'I didn\'t understand that. Try using a command or check "help" for options.'
)


def unknown_command_reply(name: str) -> str:
    return f'❌ Unknown command: "{name}"\nType "help" for available commands.'


@dataclass(frozen=True)
class ParsedMessage:
    """One inbound text split into command candidate and arguments."""
    name: str
    args: Tuple[str, ...]
    explicit: bool
    raw: str


def parse_message(raw_text: Optional[str], prefix: str = "-") -> Optional[ParsedMessage]:
    """Split *raw_text* into a command name and arguments.

    Returns None for empty or whitespace-only text. A bare prefix
    gives an explicit message with an empty name.
    """
    if not raw_text or not raw_text.strip():
        return None
    explicit = bool(prefix) and raw_text.startswith(prefix)
    body = raw_text[len(prefix):] if explicit else raw_text
    tokens = body.split()
    if not tokens:
        return ParsedMessage(name="", args=(), explicit=explicit, raw=raw_text)
    return ParsedMessage(
        name=tokens[0].lower(),
        args=tuple(tokens[1:]),
        explicit=explicit,
        raw=raw_text,
    )


class MessageRouter:
    """Routes inbound messages to command handlers.

    Args:
        registry: Source of the current command table.
        transport: Outbound transport handed to handlers.
        image_cache: Per-sender latest-image cache.
        prefix: Explicit command prefix.
        default_command: Handler that receives unmatched implicit text.
        session: Shared aiohttp session handed to handlers.
        command_options: Per-command settings, keyed by primary name.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        transport: MessengerTransport,
        image_cache: ImageCache,
        *,
        prefix: str = "-",
        default_command: str = "ai",
        session=None,
        command_options: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.registry = registry
        self.transport = transport
        self.image_cache = image_cache
        self.prefix = prefix
        self.default_command = default_command
        self.session = session
        self.command_options = command_options or {}

    async def dispatch(self, event: Dict[str, Any], token: str) -> None:
        """Handle one ``message`` messaging event."""
        try:
            parsed_event = MessagingEvent.model_validate(event)
        except ValidationError as e:
            logger.warning("malformed_message_event", error=str(e)[:200])
            return

        sender_id = parsed_event.sender_id
        message = parsed_event.message
        if not sender_id or message is None:
            logger.warning("message_event_dropped", reason="missing_sender_or_message")
            return
        if message.is_echo:
            logger.debug("echo_skipped", sender=mask_id(sender_id))
            return

        for url in message.image_urls:
            self.image_cache.record(sender_id, url)

        parsed = parse_message(message.text, self.prefix)
        if parsed is None:
            return

        logger.info(
            "message_received",
            sender=mask_id(sender_id),
            length=len(parsed.raw),
            explicit=parsed.explicit,
        )
        await self.resolve_and_invoke(
            sender_id,
            parsed.name,
            parsed.args,
            explicit=parsed.explicit,
            token=token,
            event=event,
            raw_text=parsed.raw,
        )

    async def resolve_and_invoke(
        self,
        sender_id: str,
        name: str,
        args: Sequence[str],
        *,
        explicit: bool,
        token: str,
        event: Dict[str, Any],
        raw_text: str = "",
    ) -> Optional[str]:
        """Find the handler for *name* and run it, or apply the fallback.

        Returns the primary name of the command that ran, or None when
        a fixed reply was sent instead.
        """
        table = self.registry.snapshot
        spec = table.lookup(name)
        if spec is not None:
            await self._invoke(spec, sender_id, list(args), token, event, table)
            return spec.name

        if explicit:
            logger.info("unknown_command", sender=mask_id(sender_id), command=name)
            await self.reply(sender_id, unknown_command_reply(name), token)
            return None

        fallback = table.lookup(self.default_command)
        if fallback is None:
            logger.info("no_default_command", sender=mask_id(sender_id))
            await self.reply(sender_id, NOT_UNDERSTOOD_REPLY, token)
            return None

        logger.debug("default_command_fallback", sender=mask_id(sender_id), command=fallback.name)
        await self._invoke(fallback, sender_id, [raw_text], token, event, table)
        return fallback.name

    async def _invoke(
        self,
        spec: CommandSpec,
        sender_id: str,
        args: list,
        token: str,
        event: Dict[str, Any],
        table: CommandTable,
    ) -> None:
        ctx = CommandContext(
            sender_id=sender_id,
            args=args,
            token=token,
            event=event,
            transport=self.transport,
            image_cache=self.image_cache,
            commands=table,
            session=self.session,
            options=dict(self.command_options.get(spec.name) or {}),
            prefix=self.prefix,
        )
        logger.info("command_invoked", sender=mask_id(sender_id), command=spec.name, args=len(args))
        try:
            await spec.execute(ctx)
        except CommandError as e:
            logger.warning(
                "command_failed",
                sender=mask_id(sender_id),
                command=spec.name,
                error=e.message,
            )
            await self.reply(sender_id, e.message or GENERIC_ERROR_REPLY, token)
        except Exception as e:
            logger.error(
                "command_error",
                sender=mask_id(sender_id),
                command=spec.name,
                error=str(e),
                exc_type=type(e).__name__,
                exc_info=True,
            )
            await self.reply(sender_id, GENERIC_ERROR_REPLY, token)

    async def reply(self, sender_id: str, text: str, token: str, **fields: Any) -> None:
        """Send a router-originated reply; delivery failures are logged."""
        try:
            await self.transport.send(sender_id, OutboundMessage(text=text, **fields), token)
        except DeliveryError as e:
            logger.error("reply_failed", sender=mask_id(sender_id), error=e.message)
