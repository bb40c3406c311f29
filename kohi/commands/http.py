"""Third-party API helpers for command handlers.

Handlers reuse the bot's shared aiohttp session when the context has
one, and open a short-lived session otherwise (scripts, tests).
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from .base import CommandContext

DEFAULT_TIMEOUT = 30.0

# Errors a handler should treat as "the upstream API failed"
FETCH_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ValueError)


def _timeout(ctx: CommandContext) -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=float(ctx.option("timeout", DEFAULT_TIMEOUT)))


async def _get(session: aiohttp.ClientSession, url, params, timeout, as_json: bool):
    async with session.get(url, params=params, timeout=timeout) as resp:
        resp.raise_for_status()
        if as_json:
            return await resp.json(content_type=None)
        return await resp.read()


async def fetch_json(
    ctx: CommandContext, url: str, params: Optional[Dict[str, Any]] = None
) -> Any:
    """GET *url* and decode the JSON body.

    Raises:
        aiohttp.ClientError: On connection failure or a 4xx/5xx status.
        asyncio.TimeoutError: When the command's timeout elapses.
        ValueError: When the body is not JSON.
    """
    if ctx.session is not None:
        return await _get(ctx.session, url, params, _timeout(ctx), as_json=True)
    async with aiohttp.ClientSession() as session:
        return await _get(session, url, params, _timeout(ctx), as_json=True)


async def fetch_bytes(
    ctx: CommandContext, url: str, params: Optional[Dict[str, Any]] = None
) -> bytes:
    """GET *url* and return the raw body. Raises like ``fetch_json``."""
    if ctx.session is not None:
        return await _get(ctx.session, url, params, _timeout(ctx), as_json=False)
    async with aiohttp.ClientSession() as session:
        return await _get(session, url, params, _timeout(ctx), as_json=False)
