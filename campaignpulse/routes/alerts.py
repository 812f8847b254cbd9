import logging

from flask import Blueprint, Response, current_app, jsonify

log = logging.getLogger("campaignpulse.routes.alerts")

bp = Blueprint("alerts", __name__)


def _session():
    return current_app.extensions["campaignpulse"]


@bp.route("/alerts/toasts")
def list_toasts():
    toasts = _session().call(_session().toasts.snapshot)
    return jsonify([t.to_dict() for t in toasts])


@bp.route("/alerts/toasts/<toast_id>", methods=["DELETE"])
def dismiss_toast(toast_id):
    return jsonify({"ok": _session().call(_session().toasts.dismiss, toast_id)})


@bp.route("/alerts/cue")
def next_cue():
    """Next pending audio cue as WAV; the dashboard polls and plays it."""
    wav = _session().call(_session().audio.pop)
    if wav is None:
        return Response(status=204)
    return Response(wav, mimetype="audio/wav")
