"""
Recent pipeline activity for GET /logs.

Only records from the campaignpulse loggers are kept, tagged with the
pipeline component that wrote them ("connection", "router", "alerts",
"routes.notifications", ...). That lets the dashboard show reconnects and
dropped frames without werkzeug request noise, and narrow down to one
component when chasing a problem.
"""
import logging
import threading
from collections import deque
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"
ROOT_LOGGER = "campaignpulse"

_lock = threading.Lock()
_handler: Optional["PipelineLogHandler"] = None


def component_of(logger_name: str) -> str:
    """'campaignpulse.routes.alerts' -> 'routes.alerts'; the root logger -> 'agent'."""
    if logger_name == ROOT_LOGGER:
        return "agent"
    prefix = ROOT_LOGGER + "."
    return logger_name[len(prefix):] if logger_name.startswith(prefix) else logger_name


class PipelineLogHandler(logging.Handler):
    """Keeps the last `capacity` pipeline records as dicts."""

    def __init__(self, capacity: int):
        super().__init__()
        self.entries: deque = deque(maxlen=capacity)
        self.setFormatter(logging.Formatter(LOG_FORMAT))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "ts": record.created,
                "component": component_of(record.name),
                "level": record.levelname,
                "levelno": record.levelno,
                "message": self.format(record),
            }
            with _lock:
                self.entries.append(entry)
        except Exception:
            self.handleError(record)


def install_log_handler(capacity: int = 1000) -> None:
    """Start capturing campaignpulse records; a second call is a no-op."""
    global _handler
    with _lock:
        if _handler is not None:
            return
        _handler = PipelineLogHandler(capacity)
    logging.getLogger(ROOT_LOGGER).addHandler(_handler)


def uninstall_log_handler() -> None:
    global _handler
    with _lock:
        handler, _handler = _handler, None
    if handler is not None:
        logging.getLogger(ROOT_LOGGER).removeHandler(handler)


def _matches(component: str, wanted: Iterable[str]) -> bool:
    return any(component == w or component.startswith(w + ".") for w in wanted)


def get_recent_logs(limit: int = 200, components: Iterable[str] | None = None,
                    min_level: int = logging.NOTSET) -> list[dict]:
    """
    Last `limit` matching entries, oldest first.

    `components` selects by component name; "routes" also matches
    "routes.alerts" and friends. None means every component.
    """
    with _lock:
        if _handler is None or limit <= 0:
            return []
        entries = list(_handler.entries)
    wanted = [c.strip() for c in components or () if c.strip()]
    selected = [
        e for e in entries
        if e["levelno"] >= min_level and (not wanted or _matches(e["component"], wanted))
    ]
    return selected[-limit:]
