"""
In-memory notification store for one session.

Newest first: add() prepends, and the order is never re-sorted. Records
are immutable; mark_read swaps in a read copy. Readers get tuple snapshots
so a mutation later in the same tick cannot disturb an iteration.

Listeners subscribed with on_added() are told about every new record;
listeners subscribed with on_changed() are told after every mutation.
A listener that raises is logged and does not undo the mutation.
"""
import logging

from campaignpulse.models import Notification, NotificationInput, new_id, utcnow

log = logging.getLogger("campaignpulse.store")


class NotificationStore:

    def __init__(self, id_factory=new_id, clock=utcnow):
        self._items: list[Notification] = []
        # Every id handed out this session. Kept for the whole session so a
        # removed id can never come back, even with an injected id_factory
        # that repeats itself; it dies with the session on unmount.
        self._issued: set[str] = set()
        self._id_factory = id_factory
        self._clock = clock
        self._added_listeners: list = []
        self._changed_listeners: list = []

    # ── Queries ───────────────────────────────────────────────

    def snapshot(self) -> tuple[Notification, ...]:
        return tuple(self._items)

    def get(self, notif_id: str) -> Notification | None:
        for n in self._items:
            if n.id == notif_id:
                return n
        return None

    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def __len__(self) -> int:
        return len(self._items)

    # ── Mutations ─────────────────────────────────────────────

    def add(self, data: NotificationInput) -> Notification:
        n = Notification.create(data, id=self._fresh_id(), timestamp=self._clock())
        self._items.insert(0, n)
        log.debug("Added notification %s (%s): %s", n.id, n.type, n.title)
        self._emit(self._added_listeners, n)
        self._changed()
        return n

    def mark_read(self, notif_id: str):
        for i, n in enumerate(self._items):
            if n.id == notif_id:
                if not n.read:
                    self._items[i] = n.marked_read()
                    self._changed()
                return

    def remove(self, notif_id: str):
        before = len(self._items)
        self._items = [n for n in self._items if n.id != notif_id]
        if len(self._items) < before:
            self._changed()

    def clear_all(self):
        self._items = []
        self._changed()

    # ── Subscriptions ─────────────────────────────────────────

    def on_added(self, listener):
        """Subscribe listener(Notification); returns an unsubscribe callable."""
        return self._subscribe(self._added_listeners, listener)

    def on_changed(self, listener):
        """Subscribe listener(snapshot); returns an unsubscribe callable."""
        return self._subscribe(self._changed_listeners, listener)

    # ── Helpers ───────────────────────────────────────────────

    def _fresh_id(self) -> str:
        notif_id = self._id_factory()
        while notif_id in self._issued:
            notif_id = self._id_factory()
        self._issued.add(notif_id)
        return notif_id

    def _changed(self):
        self._emit(self._changed_listeners, self.snapshot())

    @staticmethod
    def _subscribe(listeners: list, listener):
        listeners.append(listener)

        def _unsubscribe():
            if listener in listeners:
                listeners.remove(listener)
        return _unsubscribe

    @staticmethod
    def _emit(listeners: list, arg):
        for listener in list(listeners):
            try:
                listener(arg)
            except Exception as exc:
                log.warning("Store listener %s raised: %s",
                            getattr(listener, "__qualname__", listener), exc)
