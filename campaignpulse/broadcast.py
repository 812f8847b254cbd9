"""
Server side of the push channel.

Browsers and agents connect to /ws; each connected socket is registered
here and every broadcast_notification() call fans the frame out to all of
them. Used when this agent also plays the dashboard server role
(CAMPAIGNPULSE_SERVE_HUB=1) and by the test trigger route.

Frames sent:

  {"type": "connection",   "message": "...", "timestamp": "..."}   on connect
  {"type": "pong",         "timestamp": "..."}                      reply to ping
  {"type": "notification", "notification": {...}, "timestamp": "..."}
"""
import json
import logging
import threading

from campaignpulse.models import new_id, utcnow

log = logging.getLogger("campaignpulse.broadcast")

WELCOME_MESSAGE = "Connected to CampaignPro WebSocket server"
CRITICAL_RATING = 3


class BroadcastHub:
    """
    Set of open client sockets.

    Thread-safety: werkzeug runs each socket handler on its own thread, so
    _clients is guarded by _lock. Sends happen outside the lock.
    """

    def __init__(self):
        self._clients: set = set()
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._clients)

    def register(self, sock):
        with self._lock:
            self._clients.add(sock)
        log.info("WebSocket client connected (%d open)", len(self))
        self._send(sock, {"type": "connection", "message": WELCOME_MESSAGE,
                          "timestamp": utcnow().isoformat()})

    def unregister(self, sock):
        with self._lock:
            self._clients.discard(sock)
        log.info("WebSocket client disconnected (%d open)", len(self))

    def handle_frame(self, sock, raw):
        """Answer one inbound frame; malformed input is logged and ignored."""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as exc:
            log.warning("Error processing WebSocket message: %s", exc)
            return
        if not isinstance(data, dict):
            log.warning("Error processing WebSocket message: not an object")
            return
        log.debug("WebSocket message received: %s", data)
        if data.get("type") == "ping":
            self._send(sock, {"type": "pong", "timestamp": utcnow().isoformat()})

    def serve(self, sock):
        """Run the receive loop for one client until it disconnects."""
        from simple_websocket import ConnectionClosed

        self.register(sock)
        try:
            while True:
                try:
                    raw = sock.receive()
                except ConnectionClosed:
                    break
                if raw is None:
                    continue
                self.handle_frame(sock, raw)
        finally:
            self.unregister(sock)

    def broadcast_notification(self, notification: dict) -> int:
        """Send a notification frame to every client; returns how many got it."""
        frame = json.dumps({
            "type": "notification",
            "notification": notification,
            "timestamp": utcnow().isoformat(),
        }, default=str)
        with self._lock:
            clients = list(self._clients)
        sent = 0
        for sock in clients:
            if self._send_text(sock, frame):
                sent += 1
        log.info("Broadcast notification %r to %d client(s)", notification.get("title"), sent)
        return sent

    def _send(self, sock, msg: dict) -> bool:
        return self._send_text(sock, json.dumps(msg, default=str))

    def _send_text(self, sock, text: str) -> bool:
        try:
            sock.send(text)
            return True
        except Exception as exc:
            log.info("Dropping client after failed send: %s", exc)
            with self._lock:
                self._clients.discard(sock)
            return False


def make_notification(title: str, message: str, type: str = "info",
                      link: str | None = None, data=None) -> dict:
    """Wire notification object as the server sends it."""
    return {
        "id": new_id(),
        "title": title,
        "message": message,
        "type": type,
        "timestamp": utcnow().isoformat(),
        "read": False,
        "link": link,
        "data": data,
    }


def feedback_notification(feedback: dict, campaign_name: str | None = None) -> dict | None:
    """
    Notification for a newly submitted client rating, or None.

    Only ratings of 3 stars or fewer are critical enough to push.
    """
    try:
        rating = int(feedback.get("rating"))
    except (TypeError, ValueError):
        log.warning("Feedback %s has no usable rating", feedback.get("id"))
        return None
    if rating > CRITICAL_RATING:
        return None
    campaign = campaign_name or f"Campaign #{feedback.get('campaignId')}"
    return make_notification(
        title="New Critical Feedback",
        message=f"{feedback.get('clientName')} gave a rating of {feedback.get('rating')}/5 for {campaign}",
        type="feedback",
        link="/feedback",
        data={
            "feedbackId": feedback.get("id"),
            "campaignId": feedback.get("campaignId"),
            "rating": feedback.get("rating"),
        },
    )
