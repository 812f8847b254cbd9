"""
Persistent push channel to the campaign dashboard server.

The server exposes a single websocket endpoint (/ws on the hosting origin).
This module keeps exactly one client connection to it alive for the
lifetime of a notification session and hands every decoded frame to one
consumer, normally EventRouter.route.

Frame format (JSON text):

  {"type": "<event>", "notification": {...}?, ...}   # any extra keys kept

Reconnect policy: when the transport closes or errors, one retry is
scheduled after a fixed delay (3s by default). Overlapping close/error
callbacks never schedule a second retry, and teardown() cancels any
pending retry and disarms one that is already firing.

All public methods and every transport callback run on the session's
EventLoop thread; the websocket-client thread only enqueues work.
"""
import json
import logging
import threading

import websocket  # websocket-client

from campaignpulse.errors import DecodeError, SendWhileDisconnected, TransportError
from campaignpulse.models import ConnectionState

log = logging.getLogger("campaignpulse.connection")

_RECONNECT_DELAY = 3.0   # seconds


class WebSocketTransport:
    """
    One websocket-client connection, run on its own daemon thread.

    Callbacks are invoked on the transport thread with plain arguments
    (no WebSocketApp reference) so the manager can stay transport-agnostic.
    """

    def __init__(self, url: str, on_open, on_message, on_error, on_close,
                 ping_interval: float = 0.0):
        self.url = url
        self.ping_interval = ping_interval
        self._app = websocket.WebSocketApp(
            url,
            on_open=lambda _ws: on_open(),
            on_message=lambda _ws, raw: on_message(raw),
            on_error=lambda _ws, exc: on_error(exc),
            on_close=lambda _ws, code, reason: on_close(code, reason),
        )
        self._thread: threading.Thread | None = None

    def start(self):
        # reconnect=0: retries are owned by ConnectionManager, not websocket-client
        self._thread = threading.Thread(
            target=self._app.run_forever,
            kwargs={"ping_interval": self.ping_interval or 0, "reconnect": 0},
            daemon=True,
            name="ws-notify",
        )
        self._thread.start()

    def send(self, text: str):
        self._app.send(text)

    def close(self):
        try:
            self._app.close()
        except Exception as exc:
            log.debug("Transport close raised: %s", exc)


class ConnectionManager:
    """
    Owns the one transport of a session and its reconnect timer.

    `transport_factory(url, on_open, on_message, on_error, on_close)` must
    return an object with start(), send(text) and close(); the default
    builds a WebSocketTransport.
    """

    def __init__(self, loop, on_message=None, transport_factory=None,
                 reconnect_delay: float = _RECONNECT_DELAY, ping_interval: float = 0.0,
                 on_state_change=None):
        self._loop = loop
        self._consumer = on_message
        self._transport_factory = transport_factory or self._default_factory
        self.reconnect_delay = reconnect_delay
        self.ping_interval = ping_interval
        self._on_state_change = on_state_change

        self.url: str | None = None
        self.state = ConnectionState.CLOSED
        self.last_message: dict | None = None
        self.consecutive_failures = 0     # attempts that closed before ever opening

        self._transport = None
        self._generation = 0              # bumps on every new transport
        self._reconnect_timer = None
        self._torn_down = False

    # ── Read model ────────────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.OPEN

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    # ── Public API ────────────────────────────────────────────

    def establish(self, url: str | None = None):
        """Open a transport to url (or the last url). No-op after teardown."""
        if self._torn_down:
            log.debug("establish() after teardown ignored")
            return
        if url:
            self.url = url
        if not self.url:
            raise ValueError("no websocket url to connect to")

        if self._transport is not None:
            self._discard_transport()

        self._generation += 1
        gen = self._generation
        self._set_state(ConnectionState.CONNECTING)
        log.info("Connecting to %s", self.url)
        try:
            self._transport = self._transport_factory(
                self.url,
                lambda: self._loop.call_soon(self._handle_open, gen),
                lambda raw: self._loop.call_soon(self._handle_message, gen, raw),
                lambda exc: self._loop.call_soon(self._handle_error, gen, exc),
                lambda code=None, reason=None: self._loop.call_soon(self._handle_close, gen, code, reason),
            )
            self._transport.start()
        except Exception as exc:
            err = TransportError(f"could not open {self.url}: {exc}")
            log.warning("%s", err)
            self._transport = None
            self._lose()

    def send(self, message) -> bool:
        """
        Serialize and transmit message if the channel is open.

        Returns False (after logging a warning) when the message was dropped.
        There is no queueing and no acknowledgment.
        """
        try:
            self._send_raw(message)
        except SendWhileDisconnected:
            log.warning("WebSocket is not connected. Message not sent.")
            return False
        except TransportError as exc:
            log.warning("%s", exc)
            return False
        return True

    def decode(self, frame) -> dict | None:
        """Parse a wire frame; malformed frames are logged and return None."""
        try:
            return self._parse_frame(frame)
        except DecodeError as exc:
            log.warning("Discarding malformed frame: %s", exc)
            return None

    def teardown(self):
        """Cancel any pending retry, close the transport, and disarm for good."""
        if self._torn_down:
            return
        self._torn_down = True
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None
        if self._transport is not None:
            self._discard_transport()
        self._set_state(ConnectionState.CLOSED)
        log.info("Connection torn down")

    # ── Transport callbacks (loop thread) ─────────────────────

    def _handle_open(self, gen: int):
        if self._stale(gen):
            return
        self.consecutive_failures = 0
        self._set_state(ConnectionState.OPEN)
        log.info("WebSocket connection established (%s)", self.url)

    def _handle_message(self, gen: int, raw):
        if self._stale(gen):
            return
        msg = self.decode(raw)
        if msg is None:
            return
        self.last_message = msg
        if self._consumer is None:
            return
        try:
            self._consumer(msg)
        except Exception as exc:
            log.warning("Frame consumer raised: %s", exc)

    def _handle_error(self, gen: int, exc):
        if self._stale(gen):
            return
        log.warning("WebSocket error: %s", exc)
        self._lose()

    def _handle_close(self, gen: int, code=None, reason=None):
        if self._stale(gen):
            return
        log.info("WebSocket connection closed (code=%s reason=%s)", code, reason or "")
        self._lose()

    def _lose(self):
        if self.state is not ConnectionState.OPEN:
            self.consecutive_failures += 1
        if self._transport is not None:
            # on_error can fire without the socket being closed
            self._discard_transport()
        self._set_state(ConnectionState.CLOSED)
        self._schedule_reconnect()

    # ── Reconnect ─────────────────────────────────────────────

    def _schedule_reconnect(self):
        if self._torn_down or self._reconnect_timer is not None:
            return
        log.info("Reconnecting in %.1fs", self.reconnect_delay)
        self._reconnect_timer = self._loop.call_later(self.reconnect_delay, self._reconnect)

    def _reconnect(self):
        self._reconnect_timer = None
        if self._torn_down:
            return
        log.info("Attempting to reconnect WebSocket...")
        self.establish()

    # ── Helpers ───────────────────────────────────────────────

    def _stale(self, gen: int) -> bool:
        if self._torn_down or gen != self._generation or self._transport is None:
            log.debug("Ignoring callback from stale transport (gen %d)", gen)
            return True
        return False

    def _discard_transport(self):
        transport, self._transport = self._transport, None
        self._generation += 1     # late callbacks from it are now stale
        transport.close()

    def _set_state(self, state: ConnectionState):
        if state is self.state:
            return
        self.state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception as exc:
                log.warning("State listener raised: %s", exc)

    def _send_raw(self, message):
        if self.state is not ConnectionState.OPEN or self._transport is None:
            raise SendWhileDisconnected("channel is not open")
        try:
            self._transport.send(json.dumps(message, default=str))
        except Exception as exc:
            raise TransportError(f"channel send failed: {exc}") from exc

    @staticmethod
    def _parse_frame(frame) -> dict:
        if isinstance(frame, (bytes, bytearray)):
            frame = frame.decode("utf-8", errors="replace")
        if not isinstance(frame, str) or not frame:
            raise DecodeError("empty or non-text frame")
        try:
            msg = json.loads(frame)
        except (ValueError, RecursionError) as exc:
            raise DecodeError(f"bad JSON: {exc}") from exc
        if not isinstance(msg, dict):
            raise DecodeError("frame is not a JSON object")
        return msg

    def _default_factory(self, url, on_open, on_message, on_error, on_close):
        return WebSocketTransport(url, on_open, on_message, on_error, on_close,
                                  ping_interval=self.ping_interval)
