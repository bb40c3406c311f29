"""Base classes for the command handler framework.

Handler modules define one or more ``Command`` subclasses. The
registry imports each module, validates the class metadata and wraps
every command in an immutable ``CommandSpec``. At call time the router
builds a ``CommandContext`` and awaits ``Command.execute(ctx)``.

Key classes:
    Command: Base class every handler subclasses.
    CommandContext: Everything a handler may touch during one call.
    CommandSpec: Validated, immutable registry entry for a command.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Optional, Sequence, Tuple

from ..models import OutboundMessage

if TYPE_CHECKING:
    import aiohttp

    from ..image_cache import ImageCache
    from ..transport import MessengerTransport
    from .registry import CommandTable

# Command names after lowercasing
COMMAND_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


@dataclass
class CommandContext:
    """Per-invocation dependencies handed to a handler.

    Attributes:
        sender_id: Page-scoped id of the user who triggered the command.
        args: Whitespace-split arguments, in order.
        token: Page access token for platform calls.
        event: The raw inbound webhook event.
        transport: Outbound transport for replies.
        image_cache: Latest inbound image per recipient.
        commands: Registry snapshot captured when the call started.
        session: Shared aiohttp session for third-party APIs.
        options: This command's ``commands.<name>`` settings.
        prefix: Configured explicit-command prefix.
    """

    sender_id: str
    args: List[str]
    token: str
    event: Dict[str, Any]
    transport: "MessengerTransport"
    image_cache: "ImageCache"
    commands: "CommandTable"
    session: Optional["aiohttp.ClientSession"] = None
    options: Dict[str, Any] = field(default_factory=dict)
    prefix: str = "-"

    @property
    def query(self) -> str:
        """Arguments joined back into one string."""
        return " ".join(self.args).strip()

    def option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    async def reply(self, text: str = "", **fields: Any) -> list:
        """Send a message to the sender. Extra fields go to OutboundMessage."""
        message = OutboundMessage(text=text, **fields)
        return await self.transport.send(self.sender_id, message, self.token)

    async def reply_text(self, text: str, header: str = "", footer: str = "") -> list:
        """Send long text split over as many messages as needed."""
        return await self.transport.send_text(
            self.sender_id, text, self.token, header=header, footer=footer
        )

    async def send(self, message: OutboundMessage) -> list:
        return await self.transport.send(self.sender_id, message, self.token)


class Command:
    """Base class for all command handlers.

    Subclass this in a module under the commands directory and
    override ``execute``. ``names`` lists the command and its aliases;
    the first entry is the primary name shown in help and menus.
    """

    names: ClassVar[Sequence[str]] = ()
    description: ClassVar[str] = ""
    usage: ClassVar[str] = ""
    author: ClassVar[str] = ""
    category: ClassVar[str] = ""

    async def execute(self, ctx: CommandContext) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class CommandSpec:
    """Immutable registry entry: names, metadata and the handler."""

    names: Tuple[str, ...]
    handler: Command
    description: str = ""
    usage: str = ""
    author: str = ""
    category: str = ""
    source: Optional[Path] = None

    @property
    def name(self) -> str:
        """Primary name."""
        return self.names[0]

    @property
    def aliases(self) -> Tuple[str, ...]:
        return self.names[1:]

    def matches(self, name: str) -> bool:
        return name.lower() in self.names

    async def execute(self, ctx: CommandContext) -> None:
        await self.handler.execute(ctx)

    @classmethod
    def from_command(cls, command: Command, source: Optional[Path] = None) -> "CommandSpec":
        """Validate *command*'s metadata and build its spec.

        Raises:
            ValueError: If the name list is empty or holds an invalid
                name, or the class does not override ``execute``.
        """
        raw = getattr(command, "names", ())
        if isinstance(raw, str):
            raw = (raw,)
        if not isinstance(raw, (list, tuple)) or not raw:
            raise ValueError(f"{type(command).__name__} declares no command names")

        names: List[str] = []
        for entry in raw:
            if not isinstance(entry, str):
                raise ValueError(f"command name must be a string, got {type(entry).__name__}")
            name = entry.strip().lower()
            if not COMMAND_NAME_PATTERN.match(name):
                raise ValueError(f"invalid command name {entry!r}")
            if name not in names:
                names.append(name)

        if type(command).execute is Command.execute:
            raise ValueError(f"{type(command).__name__} does not implement execute()")

        return cls(
            names=tuple(names),
            handler=command,
            description=str(getattr(command, "description", "") or ""),
            usage=str(getattr(command, "usage", "") or ""),
            author=str(getattr(command, "author", "") or ""),
            category=str(getattr(command, "category", "") or ""),
            source=source,
        )
