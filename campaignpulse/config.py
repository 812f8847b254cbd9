"""
Agent configuration.

Values come from environment variables and are read once, when the
agent starts. Nothing here is mutated at runtime.
"""
import os
from dataclasses import dataclass
from urllib.parse import urlsplit


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


@dataclass(frozen=True)
class Settings:
    origin: str = "http://127.0.0.1:5000"
    ws_path: str = "/ws"
    reconnect_delay: float = 3.0       # seconds between close and the next attempt
    ping_interval: float = 20.0        # websocket keepalive; 0 disables
    toast_duration: float = 5.0
    toast_limit: int = 3
    audio_enabled: bool = True
    outage_notice_after: int = 5       # failed reconnects before a local warning; 0 = never
    serve_hub: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            origin=os.environ.get("CAMPAIGNPULSE_ORIGIN", cls.origin),
            ws_path=os.environ.get("CAMPAIGNPULSE_WS_PATH", cls.ws_path),
            reconnect_delay=float(os.environ.get("CAMPAIGNPULSE_RECONNECT_DELAY", cls.reconnect_delay)),
            ping_interval=float(os.environ.get("CAMPAIGNPULSE_PING_INTERVAL", cls.ping_interval)),
            toast_duration=float(os.environ.get("CAMPAIGNPULSE_TOAST_DURATION", cls.toast_duration)),
            toast_limit=int(os.environ.get("CAMPAIGNPULSE_TOAST_LIMIT", cls.toast_limit)),
            audio_enabled=_env_bool("CAMPAIGNPULSE_AUDIO", cls.audio_enabled),
            outage_notice_after=int(os.environ.get("CAMPAIGNPULSE_OUTAGE_NOTICE_AFTER",
                                                   cls.outage_notice_after)),
            serve_hub=_env_bool("CAMPAIGNPULSE_SERVE_HUB", cls.serve_hub),
            log_level=os.environ.get("LOG_LEVEL", cls.log_level).upper(),
            host=os.environ.get("HOST", cls.host),
            port=int(os.environ.get("PORT", cls.port)),
        )


def websocket_url(origin: str, path: str = "/ws") -> str:
    """
    Build the push-channel URL for a hosting origin.

    A securely served origin (https) gets wss://, anything else ws://.
    Any path on the origin itself is discarded.
    """
    parts = urlsplit(origin if "://" in origin else f"http://{origin}")
    scheme = "wss" if parts.scheme == "https" else "ws"
    if not path.startswith("/"):
        path = "/" + path
    return f"{scheme}://{parts.netloc}{path}"
