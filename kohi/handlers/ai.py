"""Chat with the Grok completion API."""

from kohi.commands import Command, CommandContext
from kohi.commands.http import FETCH_ERRORS, fetch_json
from kohi.exceptions import CommandError, DeliveryError
from kohi.formatting import markdown_bold_to_unicode

DEFAULT_API_URL = "https://rapido.zetsu.xyz/api/grok"

HEADER = "💬 | 𝙶𝚛𝚘𝚔 𝙰𝚒\n・────────────・\n"
FOOTER = "\n・──── >ᴗ< ─────・"


class AiCommand(Command):
    names = ("ai", "grok")
    description = "Chat with Grok AI"
    usage = "ai [message]"
    author = "coffee"
    category = "education"

    async def execute(self, ctx: CommandContext) -> None:
        query = ctx.query or "Hello"
        try:
            data = await fetch_json(ctx, ctx.option("api_url", DEFAULT_API_URL), {"query": query})
            if not isinstance(data, dict) or not data.get("status") or not data.get("response"):
                raise ValueError("completion API returned no answer")
            answer = markdown_bold_to_unicode(str(data["response"]).strip())
            await ctx.reply_text(answer, header=HEADER, footer=FOOTER)
        except FETCH_ERRORS + (DeliveryError,) as e:
            raise CommandError(
                HEADER + "❌ Something went wrong. Please try again." + FOOTER,
                command="ai",
            ) from e
