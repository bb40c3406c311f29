"""Search song lyrics."""

from kohi.commands import Command, CommandContext
from kohi.commands.http import FETCH_ERRORS, fetch_json
from kohi.exceptions import CommandError
from kohi.models import Attachment

DEFAULT_API_URL = "https://betadash-api-swordslush-production.up.railway.app/lyrics-finder"


class LyricsCommand(Command):
    names = ("lyrics",)
    description = "Searches and Fetches Song Lyrics."
    usage = "lyrics [song name]"
    author = "kohi"
    category = "music"

    async def execute(self, ctx: CommandContext) -> None:
        if not ctx.query:
            raise CommandError("❌ Please provide a song name.", command="lyrics")

        try:
            data = await fetch_json(ctx, ctx.option("api_url", DEFAULT_API_URL), {"title": ctx.query})
        except FETCH_ERRORS as e:
            raise CommandError("❎ Failed to fetch lyrics. Try again later.", command="lyrics") from e

        if not isinstance(data, dict) or data.get("status") != 200 or not data.get("response"):
            await ctx.reply("⚠️ No lyrics found.")
            return

        card = {
            "title": f"🎧 • {data.get('Title') or ctx.query}",
            "subtitle": f"By {data.get('author') or 'Unknown'}",
        }
        if data.get("Thumbnail"):
            card["image_url"] = data["Thumbnail"]
        await ctx.reply(attachment=Attachment.generic([card]))
        await ctx.reply_text(str(data["response"]).strip())
