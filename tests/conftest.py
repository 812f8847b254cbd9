from collections import deque
from concurrent.futures import Future

import pytest

from campaignpulse.agent import create_app
from campaignpulse.config import Settings
from campaignpulse.connection import ConnectionManager
from campaignpulse.session import NotificationSession


# ---------------------------------------------------------------------------
# Manual loop with a virtual clock
# ---------------------------------------------------------------------------

class ManualTimer:
    def __init__(self, when, fn, args):
        self.when = when
        self.fn = fn
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualLoop:
    """Same interface as EventLoop, but nothing runs until the test says so."""

    def __init__(self):
        self.now = 0.0
        self.started = False
        self._ready = deque()
        self._timers = []

    def start(self):
        self.started = True

    def stop(self, timeout=None):
        self.started = False

    def in_loop(self):
        return True

    def call_soon(self, fn, *args):
        self._ready.append((fn, args))

    def call_later(self, delay, fn, *args):
        timer = ManualTimer(self.now + delay, fn, args)
        self._timers.append(timer)
        return timer

    def submit(self, fn, *args):
        fut = Future()
        try:
            fut.set_result(self.run_sync(fn, *args))
        except Exception as exc:
            fut.set_exception(exc)
        return fut

    def run_sync(self, fn, *args, timeout=None):
        self.run_pending()
        result = fn(*args)
        self.run_pending()
        return result

    def run_pending(self):
        while self._ready:
            fn, args = self._ready.popleft()
            fn(*args)

    def advance(self, seconds):
        target = self.now + seconds
        self.run_pending()
        while True:
            due = sorted((t for t in self._timers if not t.cancelled and t.when <= target),
                         key=lambda t: t.when)
            if not due:
                break
            timer = due[0]
            self._timers.remove(timer)
            self.now = timer.when
            self.call_soon(timer.fn, *timer.args)
            self.run_pending()
        self.now = target

    @property
    def pending_timers(self):
        return [t for t in self._timers if not t.cancelled]


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------

class FakeTransport:
    def __init__(self, loop, url, on_open, on_message, on_error, on_close):
        self.loop = loop
        self.url = url
        self._on_open = on_open
        self._on_message = on_message
        self._on_error = on_error
        self._on_close = on_close
        self.started = False
        self.closed = False
        self.fail_send = False
        self.sent = []

    # transport interface
    def start(self):
        self.started = True

    def send(self, text):
        if self.fail_send:
            raise OSError("broken pipe")
        self.sent.append(text)

    def close(self):
        self.closed = True

    # test drivers: fire a callback, then let the loop process it
    def open(self):
        self._on_open()
        self.loop.run_pending()

    def deliver(self, raw):
        self._on_message(raw)
        self.loop.run_pending()

    def error(self, exc=None):
        self._on_error(exc or OSError("connection reset"))
        self.loop.run_pending()

    def drop(self, code=1006, reason=""):
        self._on_close(code, reason)
        self.loop.run_pending()


class TransportFactory:
    def __init__(self, loop):
        self.loop = loop
        self.transports = []
        self.fail = False

    def __call__(self, url, on_open, on_message, on_error, on_close):
        if self.fail:
            raise ConnectionRefusedError("connection refused")
        transport = FakeTransport(self.loop, url, on_open, on_message, on_error, on_close)
        self.transports.append(transport)
        return transport

    @property
    def latest(self):
        return self.transports[-1]


class RecordingSink:
    def __init__(self):
        self.played = []
        self.fail = False

    def play(self, wav):
        if self.fail:
            raise RuntimeError("no audio device")
        self.played.append(wav)

    def pop(self):
        return self.played.pop(0) if self.played else None

    def clear(self):
        self.played.clear()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def loop():
    return ManualLoop()


@pytest.fixture
def factory(loop):
    return TransportFactory(loop)


@pytest.fixture
def received():
    return []


@pytest.fixture
def manager(loop, factory, received):
    return ConnectionManager(loop, on_message=received.append,
                             transport_factory=factory, reconnect_delay=3.0)


@pytest.fixture
def settings():
    return Settings(origin="https://dashboard.example.com", reconnect_delay=3.0,
                    toast_duration=5.0, toast_limit=3, outage_notice_after=3)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def session(settings, loop, factory, sink):
    return NotificationSession(settings, loop=loop, transport_factory=factory, audio_sink=sink)


@pytest.fixture
def mounted(session, loop):
    session.mount()
    loop.run_pending()
    return session


@pytest.fixture
def client(settings, mounted):
    app = create_app(settings, mounted)
    app.config["TESTING"] = True
    return app.test_client()
