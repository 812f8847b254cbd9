"""
Single-threaded task loop for the notification session.

Transport callbacks arrive on the websocket-client thread, timers fire on
threading.Timer threads and HTTP requests run on werkzeug worker threads.
None of them touch session state directly: they enqueue a task here and
the one loop thread runs tasks strictly in arrival order. Store and
connection state therefore never need a lock.
"""
import logging
import queue
import threading
from concurrent.futures import Future

log = logging.getLogger("campaignpulse.loop")

_STOP = object()


class LoopNotRunning(RuntimeError):
    """Work was submitted to a loop that is not started or already stopped."""


class TimerHandle:
    """Cancellable handle for a call_later task."""

    def __init__(self, timer: threading.Timer):
        self._timer = timer
        self.cancelled = False

    def cancel(self):
        self.cancelled = True
        self._timer.cancel()


class EventLoop:

    def __init__(self, name: str = "campaignpulse-loop"):
        self.name = name
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: threading.Thread | None = None
        self._running = False

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self):
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, daemon=True, name=self.name)
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        """Run everything already queued, then stop the loop thread."""
        if not self._running:
            return
        self._running = False
        self._queue.put(_STOP)
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None

    def in_loop(self) -> bool:
        return self._thread is threading.current_thread()

    # ── Scheduling ────────────────────────────────────────────

    def call_soon(self, fn, *args):
        """Queue fn; dropped with a debug line when the loop is not running."""
        if not self._running:
            log.debug("Loop not running, dropping %s", getattr(fn, "__qualname__", fn))
            return
        self._queue.put((fn, args, None))

    def call_later(self, delay: float, fn, *args) -> TimerHandle:
        handle: TimerHandle

        def _fire():
            if not handle.cancelled:
                self.call_soon(fn, *args)

        timer = threading.Timer(delay, _fire)
        timer.daemon = True
        handle = TimerHandle(timer)
        timer.start()
        return handle

    def submit(self, fn, *args) -> Future:
        """
        Queue fn and return a Future for its result.

        When called from the loop thread itself fn runs inline, otherwise a
        caller waiting on the Future would deadlock the loop.
        """
        fut: Future = Future()
        if self.in_loop():
            _run_into(fut, fn, args)
        elif not self._running:
            fut.set_exception(LoopNotRunning("event loop not running"))
        else:
            self._queue.put((fn, args, fut))
        return fut

    def run_sync(self, fn, *args, timeout: float = 10.0):
        return self.submit(fn, *args).result(timeout)

    # ── Worker ────────────────────────────────────────────────

    def _run(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            fn, args, fut = item
            if fut is not None:
                _run_into(fut, fn, args)
                continue
            try:
                fn(*args)
            except Exception:
                log.exception("Loop task %s raised", getattr(fn, "__qualname__", fn))
        # Fail anything that raced in behind the stop marker
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is not _STOP and item[2] is not None:
                item[2].set_exception(LoopNotRunning("event loop stopped"))


def _run_into(fut: Future, fn, args):
    if not fut.set_running_or_notify_cancel():
        return
    try:
        fut.set_result(fn(*args))
    except Exception as exc:
        fut.set_exception(exc)
