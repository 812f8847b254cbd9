"""
Error kinds raised inside the notification pipeline.

Every one of these is handled by the component that owns recovery
(reconnect, drop, log); none is meant to reach the hosting application.
"""


class NotificationError(Exception):
    """Base class for notification pipeline failures."""


class TransportError(NotificationError):
    """The websocket could not be opened or dropped mid-session."""


class DecodeError(NotificationError):
    """A received frame or notification payload is not well-formed."""


class SendWhileDisconnected(NotificationError):
    """An outbound send was attempted while the channel is not open."""


class AlertPlaybackError(NotificationError):
    """The audio cue for an alert could not be produced."""
