"""
Dispatch of decoded frames by their declared "type".

Handlers are registered per type, the same way message handlers are wired
onto a channel. A handler that raises is logged and skipped so the next
frame is still delivered.
"""
import logging

from campaignpulse.errors import DecodeError
from campaignpulse.models import NotificationInput

log = logging.getLogger("campaignpulse.router")

NOTIFICATION = "notification"


class EventRouter:

    def __init__(self):
        self._handlers: dict[str, "callable"] = {}

    def register(self, msg_type: str, handler):
        """Register a handler for a frame type; replaces any existing one."""
        self._handlers[msg_type] = handler

    def unregister(self, msg_type: str):
        self._handlers.pop(msg_type, None)

    def on_notification(self, handler):
        """
        Register handler(NotificationInput) for well-formed notification frames.

        Frames whose "notification" field is missing or malformed are dropped
        before the handler sees them.
        """
        def _notification_frame(msg: dict):
            body = msg.get("notification")
            if body is None:
                return
            try:
                data = NotificationInput.from_dict(body)
            except DecodeError as exc:
                log.warning("Ignoring malformed notification frame: %s", exc)
                return
            handler(data)

        self.register(NOTIFICATION, _notification_frame)

    def route(self, msg):
        if not isinstance(msg, dict):
            return
        msg_type = msg.get("type")
        if not isinstance(msg_type, str):
            return
        handler = self._handlers.get(msg_type)
        if handler is None:
            log.debug("No handler for frame type %r", msg_type)
            return
        try:
            handler(msg)
        except Exception as exc:
            log.warning("Handler %s raised: %s", msg_type, exc)
