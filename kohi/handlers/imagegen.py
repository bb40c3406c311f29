"""Generate an image from a prompt and send it as an upload."""

import tempfile
from pathlib import Path
from urllib.parse import quote

import structlog

from kohi.commands import Command, CommandContext
from kohi.commands.http import FETCH_ERRORS, fetch_bytes
from kohi.exceptions import CommandError, DeliveryError
from kohi.models import Attachment

logger = structlog.get_logger("kohi.commands")

DEFAULT_API_URL = "https://image.pollinations.ai/prompt/{prompt}"
DEFAULT_PARAMS = {"model": "flux", "width": "1024", "height": "1024", "nologo": "true"}

FAILURE_REPLY = "❎ | Failed to generate image. Please try again."


class ImageGenCommand(Command):
    names = ("imagegen",)
    description = "Generate images via prompt using Flux."
    usage = "imagegen [prompt]"
    author = "coffee"
    category = "image"

    async def execute(self, ctx: CommandContext) -> None:
        if not ctx.query:
            raise CommandError("Please provide a prompt.", command="imagegen")

        prompt = quote(f"{ctx.query}, high definition.", safe="")
        url = ctx.option("api_url", DEFAULT_API_URL).format(prompt=prompt)

        await ctx.reply(attachment=Attachment.generic([{
            "title": "🎨🖌️ Generating your image...",
            "subtitle": "Please wait a moment.",
        }]))

        try:
            image = await fetch_bytes(ctx, url, dict(ctx.option("params", DEFAULT_PARAMS)))
            fh = tempfile.NamedTemporaryFile(prefix="kohi_", suffix=".jpg", delete=False)
            try:
                with fh:
                    fh.write(image)
            except OSError as e:
                Path(fh.name).unlink(missing_ok=True)
                logger.warning("imagegen_write_failed", error=str(e), path=fh.name)
                raise CommandError(FAILURE_REPLY, command="imagegen") from e
            # The transport deletes the file once the send attempt is over
            await ctx.reply(attachment=Attachment(
                type="image", file_path=Path(fh.name), temporary=True,
            ))
        except FETCH_ERRORS + (DeliveryError,) as e:
            logger.warning("imagegen_failed", error=str(e), exc_type=type(e).__name__)
            raise CommandError(FAILURE_REPLY, command="imagegen") from e
