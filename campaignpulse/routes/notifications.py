import logging

from flask import Blueprint, current_app, jsonify, request

from campaignpulse.errors import DecodeError
from campaignpulse.models import NotificationInput

log = logging.getLogger("campaignpulse.routes.notifications")

bp = Blueprint("notifications", __name__)


def _session():
    return current_app.extensions["campaignpulse"]


@bp.route("/notifications")
def list_notifications():
    session = _session()
    items = session.call(lambda: session.notifications)
    return jsonify([n.to_dict() for n in items])


@bp.route("/notifications", methods=["POST"])
def add_notification():
    try:
        data = NotificationInput.from_dict(request.get_json(silent=True))
    except DecodeError as exc:
        return jsonify({"error": str(exc)}), 400
    n = _session().call(_session().add_notification, data)
    return jsonify(n.to_dict()), 201


@bp.route("/notifications/<notif_id>/read", methods=["POST"])
def mark_read(notif_id):
    _session().call(_session().mark_as_read, notif_id)
    return jsonify({"ok": True})


@bp.route("/notifications/<notif_id>", methods=["DELETE"])
def delete_notification(notif_id):
    _session().call(_session().remove_notification, notif_id)
    return jsonify({"ok": True})


@bp.route("/notifications", methods=["DELETE"])
def clear_notifications():
    _session().call(_session().clear_all_notifications)
    return jsonify({"ok": True})


# ── Notification center ───────────────────────────────────────

@bp.route("/notifications/center")
def center_state():
    return jsonify(_session().call(_session().center.render))


@bp.route("/notifications/center/toggle", methods=["POST"])
def center_toggle():
    return jsonify({"open": _session().call(_session().center.toggle)})


@bp.route("/notifications/center/pointer", methods=["POST"])
def center_pointer():
    data = request.get_json(silent=True) or {}
    is_open = _session().call(_session().center.pointer_down, bool(data.get("inside", False)))
    return jsonify({"open": is_open})


@bp.route("/notifications/center/clear", methods=["POST"])
def center_clear():
    _session().call(_session().center.clear_all)
    return jsonify({"ok": True})


@bp.route("/notifications/<notif_id>/select", methods=["POST"])
def center_select(notif_id):
    link = _session().call(_session().center.select, notif_id)
    # The dashboard must follow the link with a full page load, never a client-side route
    return jsonify({"navigate": link, "full_reload": link is not None})


@bp.route("/notifications/<notif_id>/dismiss", methods=["POST"])
def center_dismiss(notif_id):
    _session().call(_session().center.dismiss, notif_id)
    return jsonify({"ok": True})
