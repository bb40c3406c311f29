"""Webhook endpoint -- GET/POST /webhook and a health probe at GET /."""

import hashlib
import hmac
import json
from typing import Any, Callable, Dict

import structlog
from aiohttp import web

logger = structlog.get_logger("kohi.webhook")

SIGNATURE_HEADER = "X-Hub-Signature-256"


def compute_signature(secret: str, body: bytes) -> str:
    """``sha256=<hex>`` HMAC of *body*, as the platform sends it."""
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class WebhookServer:
    """Receives page webhook deliveries and hands each event to *on_event*.

    The handshake answers ``hub.challenge`` when the verify token
    matches. Deliveries are acknowledged as soon as their events have
    been handed off; processing happens in the background.

    Args:
        verify_token: Token expected in the GET handshake.
        on_event: Called once per ``entry[].messaging[]`` event; must
            not block.
        app_secret: When set, POST bodies must carry a valid
            ``X-Hub-Signature-256`` header.
        command_count: Reported by the health probe.
    """

    def __init__(
        self,
        verify_token: str,
        on_event: Callable[[Dict[str, Any]], Any],
        app_secret: str = "",
        command_count: Callable[[], int] = lambda: 0,
    ) -> None:
        self.verify_token = verify_token
        self.app_secret = app_secret
        self._on_event = on_event
        self._command_count = command_count

    def register(self, router: web.UrlDispatcher) -> None:
        router.add_get("/webhook", self.verify)
        router.add_post("/webhook", self.receive)
        router.add_get("/", self.health)

    def make_app(self) -> web.Application:
        app = web.Application()
        self.register(app.router)
        return app

    async def health(self, _req: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "commands": self._command_count()})

    async def verify(self, req: web.Request) -> web.Response:
        mode = req.query.get("hub.mode")
        token = req.query.get("hub.verify_token")
        challenge = req.query.get("hub.challenge", "")
        if mode == "subscribe" and token and hmac.compare_digest(token, self.verify_token):
            logger.info("webhook_verified")
            return web.Response(text=challenge)
        logger.warning("webhook_verification_failed", mode=mode)
        return web.Response(status=403, text="Forbidden")

    async def receive(self, req: web.Request) -> web.Response:
        raw_body = await req.read()

        if self.app_secret:
            signature = req.headers.get(SIGNATURE_HEADER, "")
            if not hmac.compare_digest(compute_signature(self.app_secret, raw_body), signature):
                logger.warning("webhook_signature_mismatch", remote=req.remote)
                return web.Response(status=403, text="Invalid signature")

        try:
            body = json.loads(raw_body)
        except ValueError as e:
            logger.warning("webhook_invalid_json", error=str(e), length=len(raw_body))
            return web.Response(status=400, text="Invalid JSON")

        if not isinstance(body, dict) or body.get("object") != "page":
            obj = body.get("object") if isinstance(body, dict) else None
            logger.debug("webhook_not_page", object=obj)
            return web.Response(status=404, text="Not Found")

        entries = body.get("entry") or []
        if not isinstance(entries, list):
            logger.warning("webhook_event_malformed", field="entry", kind=type(entries).__name__)
            entries = []

        count = 0
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning("webhook_event_malformed", field="entry", kind=type(entry).__name__)
                continue
            messaging = entry.get("messaging") or []
            if not isinstance(messaging, list):
                logger.warning("webhook_event_malformed", field="messaging", kind=type(messaging).__name__)
                continue
            for event in messaging:
                if not isinstance(event, dict):
                    logger.warning("webhook_event_malformed", field="event", kind=type(event).__name__)
                    continue
                self._on_event(event)
                count += 1

        logger.debug("webhook_received", events=count)
        return web.Response(text="EVENT_RECEIVED")
