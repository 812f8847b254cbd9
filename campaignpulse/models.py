import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Union, get_args

from campaignpulse.errors import DecodeError

NotificationType = Literal["success", "error", "warning", "info", "feedback"]
NOTIFICATION_TYPES: tuple[str, ...] = get_args(NotificationType)

ToastVariant = Literal["default", "destructive"]


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


# ── Payload union ─────────────────────────────────────────────

@dataclass(frozen=True)
class FeedbackData:
    """Extension data carried by a critical-feedback notification."""
    feedback_id: Any
    campaign_id: Any
    rating: Any
    extra: dict = field(default_factory=dict)   # any other keys, untouched

    kind = "feedback"

    def to_dict(self) -> dict:
        out = dict(self.extra)
        out.update({
            "feedbackId": self.feedback_id,
            "campaignId": self.campaign_id,
            "rating": self.rating,
        })
        return out


@dataclass(frozen=True)
class OpaqueData:
    """Extension data this client does not interpret."""
    raw: Any

    kind = "opaque"

    def to_dict(self) -> Any:
        return self.raw


NotificationPayload = Union[FeedbackData, OpaqueData]

_FEEDBACK_KEYS = ("feedbackId", "campaignId", "rating")


def parse_payload(ntype: str, data: Any) -> NotificationPayload | None:
    """
    Tag the wire `data` field by notification category.

    Only feedback notifications with all three feedback keys get a typed
    payload; everything else is kept verbatim as OpaqueData.
    """
    if data is None:
        return None
    if ntype == "feedback" and isinstance(data, dict) and all(k in data for k in _FEEDBACK_KEYS):
        return FeedbackData(
            feedback_id=data["feedbackId"],
            campaign_id=data["campaignId"],
            rating=data["rating"],
            extra={k: v for k, v in data.items() if k not in _FEEDBACK_KEYS},
        )
    return OpaqueData(raw=data)


# ── Notifications ─────────────────────────────────────────────

@dataclass(frozen=True)
class NotificationInput:
    """What a producer supplies to NotificationStore.add."""
    title: str
    message: str
    type: NotificationType = "info"
    link: str | None = None
    payload: NotificationPayload | None = None

    @classmethod
    def from_dict(cls, d: Any) -> "NotificationInput":
        """
        Validate a wire notification object.

        Server-supplied id/timestamp/read are ignored; the store assigns
        its own. Raises DecodeError on anything malformed.
        """
        if not isinstance(d, dict):
            raise DecodeError(f"notification must be an object, got {type(d).__name__}")
        title, message = d.get("title"), d.get("message")
        if not isinstance(title, str) or not isinstance(message, str):
            raise DecodeError("notification title and message must be strings")
        ntype = d.get("type", "info")
        if ntype not in NOTIFICATION_TYPES:
            raise DecodeError(f"unknown notification type {ntype!r}")
        link = d.get("link")
        if link is not None and not isinstance(link, str):
            raise DecodeError("notification link must be a string")
        return cls(
            title=title,
            message=message,
            type=ntype,
            link=link or None,
            payload=parse_payload(ntype, d.get("data")),
        )


@dataclass(frozen=True)
class Notification:
    id: str
    title: str
    message: str
    type: NotificationType
    timestamp: datetime
    read: bool = False
    link: str | None = None
    payload: NotificationPayload | None = None

    @classmethod
    def create(cls, data: NotificationInput, id: str, timestamp: datetime | None = None) -> "Notification":
        return cls(
            id=id,
            title=data.title,
            message=data.message,
            type=data.type,
            timestamp=timestamp or utcnow(),
            read=False,
            link=data.link,
            payload=data.payload,
        )

    def marked_read(self) -> "Notification":
        return self if self.read else replace(self, read=True)

    def to_dict(self) -> dict:
        out: dict = {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "timestamp": self.timestamp.isoformat(),
            "read": self.read,
        }
        if self.link:
            out["link"] = self.link
        if self.payload is not None:
            out["data"] = self.payload.to_dict()
        return out


# ── Toasts ────────────────────────────────────────────────────

@dataclass(frozen=True)
class Toast:
    id: str
    title: str
    description: str
    variant: ToastVariant = "default"
    created: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "variant": self.variant,
            "created": self.created.isoformat(),
        }
