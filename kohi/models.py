"""Pydantic models for inbound webhook events and outbound replies.

Inbound models are lenient: unknown fields are kept so the raw event
can still be handed to handlers, and missing optional parts simply
default to empty. Outbound models describe a reply in platform-neutral
terms; the transport turns them into Send API payloads.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------

class Party(BaseModel):
    """A sender or recipient reference (page-scoped id)."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None


class InboundAttachmentPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: Optional[str] = None


class InboundAttachment(BaseModel):
    """An attachment on an inbound message (image, video, file...)."""

    model_config = ConfigDict(extra="allow")

    type: str = ""
    payload: Optional[InboundAttachmentPayload] = None

    @property
    def url(self) -> Optional[str]:
        return self.payload.url if self.payload else None


class InboundMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    mid: Optional[str] = None
    text: Optional[str] = None
    is_echo: bool = False
    attachments: List[InboundAttachment] = Field(default_factory=list)

    @property
    def image_urls(self) -> List[str]:
        """URLs of every image attachment that carries one, in order."""
        return [
            a.url for a in self.attachments
            if a.type == "image" and a.url
        ]


class Postback(BaseModel):
    model_config = ConfigDict(extra="allow")

    payload: Optional[str] = None
    title: Optional[str] = None


class MessagingEvent(BaseModel):
    """One entry of ``entry[].messaging[]`` in a page webhook delivery."""

    model_config = ConfigDict(extra="allow")

    sender: Optional[Party] = None
    recipient: Optional[Party] = None
    timestamp: Optional[int] = None
    message: Optional[InboundMessage] = None
    postback: Optional[Postback] = None

    @property
    def sender_id(self) -> Optional[str]:
        return self.sender.id if self.sender else None


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------

class QuickReply(BaseModel):
    """A suggested-reply chip shown under a text message."""

    title: str
    payload: str


class Button(BaseModel):
    """A button-template button: postback payload or web URL."""

    title: str
    payload: Optional[str] = None
    url: Optional[str] = None

    @model_validator(mode="after")
    def _one_action(self) -> "Button":
        if bool(self.payload) == bool(self.url):
            raise ValueError("button needs exactly one of payload or url")
        return self


class Attachment(BaseModel):
    """Outbound attachment.

    Exactly one source is used, checked in this order: ``file_path``
    (uploaded first), ``attachment_id`` (previously uploaded), ``url``,
    then ``payload`` (inline template or raw payload). Set
    ``temporary`` to have the transport delete ``file_path`` once the
    send attempt is over.
    """

    type: str = "image"
    url: Optional[str] = None
    file_path: Optional[Path] = None
    attachment_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    temporary: bool = False

    @model_validator(mode="after")
    def _has_source(self) -> "Attachment":
        if not (self.file_path or self.attachment_id or self.url or self.payload):
            raise ValueError("attachment needs a url, file_path, attachment_id or payload")
        return self

    @property
    def is_upload(self) -> bool:
        return self.file_path is not None

    @property
    def is_template(self) -> bool:
        return self.type == "template"

    @classmethod
    def template(cls, payload: Dict[str, Any]) -> "Attachment":
        return cls(type="template", payload=payload)

    @classmethod
    def generic(cls, elements: List[Dict[str, Any]]) -> "Attachment":
        """Shortcut for a generic template carousel."""
        return cls.template({"template_type": "generic", "elements": elements})


class OutboundMessage(BaseModel):
    """A reply description handed to the transport."""

    text: str = ""
    attachment: Optional[Attachment] = None
    quick_replies: List[QuickReply] = Field(default_factory=list)
    buttons: List[Button] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to deliver (no text, no attachment)."""
        return not self.text and self.attachment is None
