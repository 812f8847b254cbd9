"""
One notification session: the connection, the store and everything
hanging off them, created together on mount and destroyed together on
unmount.

Consumers are handed the session object; nothing is looked up from
module globals. All methods below must run on the session loop (route
handlers go through session.call()).
"""
import logging

from campaignpulse.alerts import AlertEmitter, CueBuffer, DisabledSink, ToastQueue
from campaignpulse.center import NotificationCenter
from campaignpulse.config import Settings, websocket_url
from campaignpulse.connection import ConnectionManager
from campaignpulse.loop import EventLoop
from campaignpulse.models import ConnectionState, NotificationInput
from campaignpulse.router import NOTIFICATION, EventRouter
from campaignpulse.store import NotificationStore

log = logging.getLogger("campaignpulse.session")


class NotificationSession:

    def __init__(self, settings: Settings | None = None, loop=None, transport_factory=None,
                 audio_sink=None, navigate=None):
        self.settings = settings or Settings()
        self.loop = loop or EventLoop()
        self.store = NotificationStore()
        self.router = EventRouter()
        self.connection = ConnectionManager(
            self.loop,
            on_message=self.router.route,
            transport_factory=transport_factory,
            reconnect_delay=self.settings.reconnect_delay,
            ping_interval=self.settings.ping_interval,
            on_state_change=self._on_connection_state,
        )
        if audio_sink is None:
            audio_sink = CueBuffer() if self.settings.audio_enabled else DisabledSink()
        self.audio = audio_sink
        self.toasts = ToastQueue(self.loop, self.settings.toast_duration, self.settings.toast_limit)
        self.alerts = AlertEmitter(self.toasts, self.audio)
        self.center = NotificationCenter(self.store, navigate=navigate)

        self._unsubscribe: list = []
        self.mounted = False
        self.unmounted = False

    # ── Lifecycle ─────────────────────────────────────────────

    def mount(self):
        """Wire the pipeline, start the loop and connect. Only works once."""
        if self.mounted or self.unmounted:
            return
        self.mounted = True
        self.router.on_notification(self.add_notification)
        self._unsubscribe.append(self.alerts.attach(self.store))
        self.loop.start()
        self.loop.call_soon(self._connect)
        log.info("Notification session mounted")

    def unmount(self):
        """Tear down connection and state together; the session is then dead."""
        if not self.mounted or self.unmounted:
            return
        self.unmounted = True
        try:
            self.loop.run_sync(self._teardown)
        finally:
            self.loop.stop()
        log.info("Notification session unmounted")

    def call(self, fn, *args, timeout: float = 10.0):
        """Run fn on the session loop and return its result."""
        return self.loop.run_sync(fn, *args, timeout=timeout)

    # ── Connection surface ────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    @property
    def last_message(self):
        return self.connection.last_message

    def send(self, message) -> bool:
        return self.connection.send(message)

    # ── Notification surface ──────────────────────────────────

    @property
    def notifications(self):
        return self.store.snapshot()

    def add_notification(self, data: NotificationInput):
        return self.store.add(data)

    def mark_as_read(self, notif_id: str):
        self.store.mark_read(notif_id)

    def remove_notification(self, notif_id: str):
        self.store.remove(notif_id)

    def clear_all_notifications(self):
        self.store.clear_all()

    def status(self) -> dict:
        return {
            "connected": self.connection.is_connected,
            "state": self.connection.state.value,
            "url": self.connection.url,
            "last_message": self.connection.last_message,
        }

    # ── Internals ─────────────────────────────────────────────

    def _connect(self):
        # Origin is read here, at connect time, not when the session is built
        self.connection.establish(websocket_url(self.settings.origin, self.settings.ws_path))

    def _teardown(self):
        self.connection.teardown()
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        self.router.unregister(NOTIFICATION)
        self.store.clear_all()
        self.toasts.clear()
        self.audio.clear()
        self.center.set_open(False)

    def _on_connection_state(self, state: ConnectionState):
        threshold = self.settings.outage_notice_after
        if state is not ConnectionState.CLOSED or threshold <= 0 or self.connection.torn_down:
            return
        if self.connection.consecutive_failures == threshold:
            log.warning("Reconnects to %s keep failing", self.connection.url)
            self.store.add(NotificationInput(
                title="Live updates unavailable",
                message=(f"Lost connection to {self.connection.url} and repeated "
                         "reconnects are failing. Will keep retrying."),
                type="warning",
            ))
