"""Search Pinterest and send a handful of images."""

import random

from kohi.commands import Command, CommandContext
from kohi.commands.http import FETCH_ERRORS, fetch_json
from kohi.exceptions import CommandError
from kohi.models import Attachment

DEFAULT_API_URL = "https://hiroshi-api.onrender.com/image/pinterest"
DEFAULT_COUNT = 5
MAX_COUNT = 15


def parse_query(args):
    """Split ``<term...> [count]`` into (term, count), count clamped to 1..15."""
    args = list(args)
    count = DEFAULT_COUNT
    if len(args) > 1 and args[-1].isdigit():
        count = int(args.pop())
    return " ".join(args).strip(), max(1, min(count, MAX_COUNT))


class PinterestCommand(Command):
    names = ("pinterest",)
    description = "Search for images from Pinterest"
    usage = "pinterest <search term> [number]"
    author = "kape"
    category = "image"

    async def execute(self, ctx: CommandContext) -> None:
        term, count = parse_query(ctx.args)
        if not term:
            raise CommandError("Please provide a search term!", command="pinterest")

        try:
            data = await fetch_json(ctx, ctx.option("api_url", DEFAULT_API_URL), {"search": term})
        except FETCH_ERRORS as e:
            raise CommandError(
                "Oops! Something went wrong while getting images.", command="pinterest"
            ) from e

        found = data.get("data") if isinstance(data, dict) else None
        urls = list(dict.fromkeys(u for u in (found or []) if isinstance(u, str) and u))
        if not urls:
            await ctx.reply("Sorry, no images found for that search!")
            return

        random.shuffle(urls)
        for url in urls[:count]:
            await ctx.reply(attachment=Attachment(type="image", url=url))
