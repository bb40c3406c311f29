"""Outbound transport for the Messenger Send API.

Turns ``OutboundMessage`` descriptions into Send API payloads and
delivers them, bracketed by typing indicators. Local files go through
the attachment upload endpoint first and are referenced by the
returned ``attachment_id``. Long text is split over several messages.

Key classes:
    MessengerTransport: Delivers messages over a shared aiohttp session.

Key functions:
    build_payloads: Pure serialization of one message into payloads.
    render_chunks: Pure splitting of long text with header/footer.

Constants:
    MAX_TEXT_LENGTH: Send API limit for a text message.
    MAX_BUTTONS / MAX_QUICK_REPLIES: Platform caps per message.
"""

import asyncio
import json
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from .config import DEFAULT_GRAPH_API_URL
from .exceptions import DeliveryError, ErrorCategory
from .formatting import split_text, truncate
from .logging_config import mask_id
from .models import Attachment, Button, OutboundMessage, QuickReply

logger = structlog.get_logger("kohi.transport")

MAX_TEXT_LENGTH = 2000
MAX_BUTTON_TEXT_LENGTH = 640
MAX_BUTTONS = 3
MAX_QUICK_REPLIES = 13
MAX_TITLE_LENGTH = 20
TEXT_CHUNK_LENGTH = 1900
TRUNCATION_MARKER = "\n\n[Message truncated...]"
DEFAULT_BUTTON_TEXT = "Choose an option:"

MESSAGES_ENDPOINT = "me/messages"
ATTACHMENTS_ENDPOINT = "me/message_attachments"


def _quick_reply(qr: QuickReply) -> dict:
    return {
        "content_type": "text",
        "title": qr.title[:MAX_TITLE_LENGTH],
        "payload": qr.payload,
    }


def _button(button: Button) -> dict:
    if button.url:
        return {"type": "web_url", "title": button.title[:MAX_TITLE_LENGTH], "url": button.url}
    return {"type": "postback", "title": button.title[:MAX_TITLE_LENGTH], "payload": button.payload}


def _attachment_body(attachment: Attachment, attachment_id: Optional[str] = None) -> dict:
    uploaded = attachment_id or attachment.attachment_id
    if uploaded:
        return {"type": attachment.type, "payload": {"attachment_id": uploaded}}
    if attachment.is_template:
        return {"type": "template", "payload": attachment.payload or {}}
    if attachment.url:
        return {"type": attachment.type, "payload": {"url": attachment.url, "is_reusable": True}}
    return {"type": attachment.type, "payload": attachment.payload or {}}


def _envelope(recipient_id: str, body: dict) -> dict:
    return {
        "recipient": {"id": recipient_id},
        "messaging_type": "RESPONSE",
        "message": body,
    }


def build_payloads(
    recipient_id: str,
    message: OutboundMessage,
    attachment_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Serialize *message* into the Send API payloads to post, in order.

    Buttons take precedence over quick replies (a button template);
    quick replies ride on the text, or on the attachment when there is
    no text. Text and attachment travel as two messages, text first.
    ``attachment_id`` overrides the attachment source after an upload.
    """
    payloads: List[Dict[str, Any]] = []
    text = truncate(message.text, MAX_TEXT_LENGTH, TRUNCATION_MARKER) if message.text else ""
    quick_replies = [_quick_reply(q) for q in message.quick_replies[:MAX_QUICK_REPLIES]]

    if message.buttons:
        if quick_replies:
            logger.debug(
                "quick_replies_dropped",
                recipient=mask_id(recipient_id),
                reason="buttons_present",
            )
            quick_replies = []
        payloads.append(_envelope(recipient_id, {
            "attachment": {
                "type": "template",
                "payload": {
                    "template_type": "button",
                    "text": truncate(text or DEFAULT_BUTTON_TEXT, MAX_BUTTON_TEXT_LENGTH, "..."),
                    "buttons": [_button(b) for b in message.buttons[:MAX_BUTTONS]],
                },
            },
        }))
    elif text:
        body: Dict[str, Any] = {"text": text}
        if quick_replies:
            body["quick_replies"] = quick_replies
            quick_replies = []
        payloads.append(_envelope(recipient_id, body))

    if message.attachment is not None:
        body = {"attachment": _attachment_body(message.attachment, attachment_id)}
        if quick_replies:
            body["quick_replies"] = quick_replies
        payloads.append(_envelope(recipient_id, body))

    return payloads


def render_chunks(
    text: str,
    header: str = "",
    footer: str = "",
    chunk_size: int = TEXT_CHUNK_LENGTH,
) -> List[str]:
    """Split *text* into message bodies that each fit MAX_TEXT_LENGTH.

    *header* is prepended to the first chunk and *footer* appended to
    the last. Stripping them back off and joining the chunks gives the
    original text.
    """
    budget = min(chunk_size, MAX_TEXT_LENGTH - len(header) - len(footer))
    if budget < 1:
        raise ValueError("header and footer leave no room for text")
    chunks = split_text(text, budget) or [""]
    last = len(chunks) - 1
    return [
        (header if i == 0 else "") + chunk + (footer if i == last else "")
        for i, chunk in enumerate(chunks)
    ]


def _remove_file(path: Path) -> None:
    try:
        path.unlink()
        logger.debug("temp_file_removed", path=str(path))
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("temp_file_remove_failed", path=str(path), error=str(e))


class MessengerTransport:
    """Delivers replies through the Graph API.

    The transport never retries: any network failure or non-2xx answer
    raises DeliveryError to the caller.

    Args:
        session: Shared aiohttp session (owned by the bot).
        api_url: Graph API base URL including the version.
        timeout: Total timeout in seconds for each API call.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_url: str = DEFAULT_GRAPH_API_URL,
        timeout: float = 30.0,
    ):
        self.session = session
        self.api_url = api_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def call_api(
        self,
        endpoint: str,
        token: str,
        *,
        json: Optional[dict] = None,
        data: Any = None,
    ) -> dict:
        """POST to ``<api_url>/<endpoint>`` and return the decoded JSON body.

        Raises:
            DeliveryError: On network failure, timeout or a 4xx/5xx answer.
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        try:
            async with self.session.post(
                url,
                params={"access_token": token},
                json=json,
                data=data,
                timeout=self._timeout,
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    logger.warning(
                        "api_request_rejected",
                        endpoint=endpoint,
                        status=resp.status,
                        body=body[:200],
                    )
                    raise DeliveryError(
                        f"{endpoint} rejected the request (status {resp.status})",
                        status=resp.status,
                        body=body[:500],
                        endpoint=endpoint,
                    )
                try:
                    return await resp.json(content_type=None) or {}
                except ValueError:
                    return {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "api_request_error",
                endpoint=endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DeliveryError(
                f"{endpoint} unreachable", endpoint=endpoint, error_type=type(e).__name__
            ) from e

    async def set_typing(self, recipient_id: str, on: bool, token: str) -> None:
        """Turn the typing indicator on or off for *recipient_id*."""
        await self.call_api(MESSAGES_ENDPOINT, token, json={
            "recipient": {"id": recipient_id},
            "sender_action": "typing_on" if on else "typing_off",
        })

    async def _signal_typing(self, recipient_id: str, on: bool, token: str) -> None:
        """Best-effort typing indicator; failures are logged only."""
        try:
            await self.set_typing(recipient_id, on, token)
        except DeliveryError as e:
            logger.warning(
                "typing_indicator_failed",
                recipient=mask_id(recipient_id),
                action="typing_on" if on else "typing_off",
                error=e.message,
            )

    async def upload_attachment(self, file_path: Path, attachment_type: str, token: str) -> str:
        """Upload a local file and return its reusable ``attachment_id``."""
        path = Path(file_path)
        try:
            content = path.read_bytes()
        except OSError as e:
            raise DeliveryError(
                f"cannot read attachment file: {e}",
                category=ErrorCategory.PERMANENT,
                path=str(path),
            ) from e

        form = aiohttp.FormData()
        form.add_field("message", json.dumps({
            "attachment": {"type": attachment_type, "payload": {"is_reusable": True}},
        }))
        form.add_field(
            "filedata",
            content,
            filename=path.name,
            content_type=mimetypes.guess_type(path.name)[0] or "application/octet-stream",
        )
        result = await self.call_api(ATTACHMENTS_ENDPOINT, token, data=form)
        attachment_id = result.get("attachment_id")
        if not attachment_id:
            raise DeliveryError(
                "upload returned no attachment_id",
                category=ErrorCategory.PERMANENT,
                endpoint=ATTACHMENTS_ENDPOINT,
            )
        logger.info("attachment_uploaded", type=attachment_type, size=len(content))
        return str(attachment_id)

    async def send(
        self,
        recipient_id: str,
        message: OutboundMessage,
        token: str,
    ) -> List[dict]:
        """Deliver *message* to *recipient_id*.

        Returns the Send API results, one per posted payload; an empty
        list when the message had nothing to send.

        Raises:
            DeliveryError: If the upload or any send call fails.
        """
        if message.is_empty:
            logger.debug("send_skipped_empty", recipient=mask_id(recipient_id))
            return []

        attachment = message.attachment
        await self._signal_typing(recipient_id, True, token)
        try:
            attachment_id = None
            if attachment is not None and attachment.is_upload:
                attachment_id = await self.upload_attachment(
                    attachment.file_path, attachment.type, token
                )
            results = []
            for payload in build_payloads(recipient_id, message, attachment_id):
                results.append(await self.call_api(MESSAGES_ENDPOINT, token, json=payload))
            logger.info(
                "message_sent",
                recipient=mask_id(recipient_id),
                parts=len(results),
                has_attachment=attachment is not None,
            )
            return results
        except DeliveryError as e:
            logger.error(
                "send_failed",
                recipient=mask_id(recipient_id),
                error=e.message,
                status=e.status,
            )
            raise
        finally:
            if attachment is not None and attachment.is_upload and attachment.temporary:
                _remove_file(attachment.file_path)
            await self._signal_typing(recipient_id, False, token)

    async def send_text(
        self,
        recipient_id: str,
        text: str,
        token: str,
        header: str = "",
        footer: str = "",
        chunk_size: int = TEXT_CHUNK_LENGTH,
    ) -> List[dict]:
        """Send long *text* as sequential messages, in order."""
        results: List[dict] = []
        for body in render_chunks(text, header, footer, chunk_size):
            results.extend(await self.send(recipient_id, OutboundMessage(text=body), token))
        return results
