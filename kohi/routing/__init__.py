"""Inbound event routing: text messages and postback button presses."""

from .messages import MessageRouter, ParsedMessage, parse_message
from .postbacks import PostbackRouter

__all__ = ["MessageRouter", "ParsedMessage", "PostbackRouter", "parse_message"]
