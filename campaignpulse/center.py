"""
Notification center: the bell, its badge and the drop-down list.

Holds only the open/closed flag. Everything else is read from the store
at render time, and every user action is forwarded to a store operation.
"""
import logging

log = logging.getLogger("campaignpulse.center")

BADGE_CAP = 9


def badge_text(count: int) -> str:
    """Empty for no unread, the count itself up to 9, "9+" beyond."""
    if count <= 0:
        return ""
    return f"{BADGE_CAP}+" if count > BADGE_CAP else str(count)


class NotificationCenter:

    def __init__(self, store, navigate=None):
        self._store = store
        self._navigate = navigate
        self.is_open = False

    # ── Open / closed ─────────────────────────────────────────

    def toggle(self) -> bool:
        self.is_open = not self.is_open
        return self.is_open

    def set_open(self, is_open: bool):
        self.is_open = bool(is_open)

    def pointer_down(self, inside: bool) -> bool:
        """Primary pointer press; one outside the center closes it."""
        if self.is_open and not inside:
            self.is_open = False
        return self.is_open

    # ── Item actions ──────────────────────────────────────────

    def select(self, notif_id: str) -> str | None:
        """
        Click on an item: mark it read if unread, then follow its link.

        Returns the link the browser must load with a full page navigation,
        or None when the item has no link or no longer exists.
        """
        n = self._store.get(notif_id)
        if n is None:
            return None
        if not n.read:
            self._store.mark_read(notif_id)
        if n.link:
            log.debug("Navigating to %s", n.link)
            if self._navigate is not None:
                self._navigate(n.link)
            return n.link
        return None

    def dismiss(self, notif_id: str):
        self._store.remove(notif_id)

    def clear_all(self):
        self._store.clear_all()

    # ── Render ────────────────────────────────────────────────

    @property
    def unread_count(self) -> int:
        return self._store.unread_count()

    @property
    def badge(self) -> str:
        return badge_text(self.unread_count)

    def render(self) -> dict:
        items = self._store.snapshot()
        unread = sum(1 for n in items if not n.read)
        return {
            "open": self.is_open,
            "unread": unread,
            "badge": badge_text(unread),
            "items": [n.to_dict() for n in items],
        }
