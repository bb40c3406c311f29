"""Messenger profile: Get Started button and persistent menu.

The menu is rebuilt from the command table, so it is refreshed after
every registry reload. Failures are logged and never raised; a broken
menu must not stop the relay.
"""

from typing import List

import structlog

from .commands import CommandTable
from .exceptions import DeliveryError
from .routing.postbacks import GET_STARTED_PAYLOAD, command_payload
from .transport import MAX_TITLE_LENGTH, MessengerTransport

logger = structlog.get_logger("kohi.bot")

PROFILE_ENDPOINT = "me/messenger_profile"
MAX_MENU_ITEMS = 3


def build_menu_items(table: CommandTable, limit: int = MAX_MENU_ITEMS) -> List[dict]:
    """Postback entries for the first *limit* commands that have a description."""
    described = [spec for spec in table.specs if spec.description]
    return [
        {
            "type": "postback",
            "title": spec.name[:MAX_TITLE_LENGTH],
            "payload": command_payload(spec.name),
        }
        for spec in described[:limit]
    ]


def build_profile(table: CommandTable) -> dict:
    return {
        "get_started": {"payload": GET_STARTED_PAYLOAD},
        "persistent_menu": [{
            "locale": "default",
            "composer_input_disabled": False,
            "call_to_actions": build_menu_items(table),
        }],
    }


async def setup_profile(transport: MessengerTransport, table: CommandTable, token: str) -> bool:
    """Push the profile for *table*. Returns True on success."""
    profile = build_profile(table)
    try:
        await transport.call_api(PROFILE_ENDPOINT, token, json=profile)
    except DeliveryError as e:
        logger.error("menu_setup_failed", error=e.message, status=e.status)
        return False
    logger.info(
        "menu_configured",
        items=[item["title"] for item in profile["persistent_menu"][0]["call_to_actions"]],
    )
    return True
