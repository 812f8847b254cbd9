"""
Secondary alerts raised for every new notification.

Each notification added to the store produces a toast (auto-dismissed
after a few seconds). Errors and critical feedback additionally produce a
short synthesized beep, handed to an audio sink. The dashboard pulls both
toasts and pending beeps over HTTP; see routes/alerts.py.

Audio never blocks the toast: any failure to synthesize or play is logged
and dropped.
"""
import io
import logging
import wave
from collections import deque

import numpy as np

from campaignpulse.errors import AlertPlaybackError
from campaignpulse.models import Notification, Toast, new_id

log = logging.getLogger("campaignpulse.alerts")

TONE_FREQUENCY = 830.0    # Hz
TONE_DURATION = 0.1       # seconds
TONE_GAIN = 0.3
SAMPLE_RATE = 44100

SOUND_TYPES = ("error", "feedback")


def synthesize_tone(frequency: float = TONE_FREQUENCY, duration: float = TONE_DURATION,
                    gain: float = TONE_GAIN, sample_rate: int = SAMPLE_RATE) -> bytes:
    """Return a mono 16-bit WAV of a single sine wave."""
    if frequency <= 0 or duration <= 0 or sample_rate <= 0:
        raise AlertPlaybackError("tone parameters must be positive")
    t = np.arange(int(sample_rate * duration)) / sample_rate
    samples = gain * np.sin(2 * np.pi * frequency * t)
    pcm = np.clip(samples * 32767, -32768, 32767).astype("<i2")

    buf = io.BytesIO()
    with wave.open(buf, "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(sample_rate)
        w.writeframes(pcm.tobytes())
    return buf.getvalue()


# ── Audio sinks ───────────────────────────────────────────────

class CueBuffer:
    """
    Holds synthesized cues until the dashboard fetches them.

    Bounded: if nobody is listening, old cues fall off the end.
    """

    def __init__(self, capacity: int = 8):
        self._cues: deque = deque(maxlen=capacity)

    def play(self, wav: bytes):
        self._cues.append(wav)

    def pop(self) -> bytes | None:
        return self._cues.popleft() if self._cues else None

    def clear(self):
        self._cues.clear()

    def __len__(self):
        return len(self._cues)


class DisabledSink:
    """Sink for sessions started with audio turned off."""

    def play(self, wav: bytes):
        raise AlertPlaybackError("audio output is disabled")

    def pop(self):
        return None

    def clear(self):
        pass


# ── Toasts ────────────────────────────────────────────────────

class ToastQueue:
    """Visible toasts, newest first, each removed by a loop timer."""

    def __init__(self, loop, duration: float = 5.0, limit: int = 3):
        self._loop = loop
        self.duration = duration
        self.limit = max(1, limit)
        self._toasts: list[Toast] = []
        self._timers: dict[str, object] = {}

    def show(self, title: str, description: str, variant: str = "default") -> Toast:
        toast = Toast(id=new_id(), title=title, description=description, variant=variant)
        self._toasts.insert(0, toast)
        for old in self._toasts[self.limit:]:
            self._cancel_timer(old.id)
        self._toasts = self._toasts[:self.limit]
        self._timers[toast.id] = self._loop.call_later(self.duration, self.dismiss, toast.id)
        return toast

    def dismiss(self, toast_id: str) -> bool:
        self._cancel_timer(toast_id)
        before = len(self._toasts)
        self._toasts = [t for t in self._toasts if t.id != toast_id]
        return len(self._toasts) < before

    def clear(self):
        for toast_id in list(self._timers):
            self._cancel_timer(toast_id)
        self._toasts = []

    def snapshot(self) -> tuple[Toast, ...]:
        return tuple(self._toasts)

    def _cancel_timer(self, toast_id: str):
        handle = self._timers.pop(toast_id, None)
        if handle is not None:
            handle.cancel()


# ── Emitter ───────────────────────────────────────────────────

class AlertEmitter:

    def __init__(self, toasts: ToastQueue, sink=None, sound_types=SOUND_TYPES,
                 synthesize=synthesize_tone):
        self.toasts = toasts
        self.sink = sink
        self.sound_types = tuple(sound_types)
        self._synthesize = synthesize
        self.cue_attempts = 0

    def attach(self, store):
        """Subscribe to store additions; returns the unsubscribe callable."""
        return store.on_added(self.handle_added)

    def handle_added(self, n: Notification):
        variant = "destructive" if n.type == "error" else "default"
        self.toasts.show(n.title, n.message, variant)
        if n.type in self.sound_types:
            self.play_cue()

    def play_cue(self) -> bool:
        self.cue_attempts += 1
        try:
            if self.sink is None:
                raise AlertPlaybackError("no audio sink available")
            self.sink.play(self._synthesize())
        except Exception as exc:
            log.warning("Could not play notification sound: %s", exc)
            return False
        return True
