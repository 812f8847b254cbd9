import logging

from flask import Blueprint, current_app, jsonify, request

log = logging.getLogger("campaignpulse.routes.connection")

bp = Blueprint("connection", __name__)


def _session():
    return current_app.extensions["campaignpulse"]


@bp.route("/status")
def status():
    return jsonify(_session().call(_session().status))


@bp.route("/send", methods=["POST"])
def send():
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({"error": "body must be JSON"}), 400
    return jsonify({"sent": _session().call(_session().send, data)})
