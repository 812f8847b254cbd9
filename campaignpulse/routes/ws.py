"""
Broadcast hub endpoints, mounted only when the agent also serves /ws.

Clients connect to /ws and receive every notification broadcast through
the hub. POST /api/notifications/test pushes a notification to all of
them, which is handy for checking a dashboard end to end.
"""
import logging

from flask import Blueprint, current_app, jsonify, request
from flask_sock import Sock

from campaignpulse.broadcast import make_notification
from campaignpulse.models import NOTIFICATION_TYPES

log = logging.getLogger("campaignpulse.routes.ws")

bp = Blueprint("hub", __name__)
sock = Sock()   # bound to the Flask app in agent.create_app


def _hub():
    return current_app.extensions["campaignpulse.hub"]


@sock.route("/ws")
def client_ws(ws):
    _hub().serve(ws)


@bp.route("/api/notifications/test", methods=["POST"])
def test_notification():
    data = request.get_json(silent=True) or {}
    ntype = data.get("type") or "info"
    if ntype not in NOTIFICATION_TYPES:
        return jsonify({"error": f"type must be one of {NOTIFICATION_TYPES}"}), 400
    notification = make_notification(
        title=data.get("title") or "Test Notification",
        message=data.get("message") or "This is a test notification",
        type=ntype,
        link=data.get("link"),
        data=data.get("data"),
    )
    sent = _hub().broadcast_notification(notification)
    return jsonify({"success": True, "notification": notification, "clients": sent})
