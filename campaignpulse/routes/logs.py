"""
GET /logs — recent pipeline activity.

Query parameters:
  tail       number of entries (1..500, default 200)
  component  comma-separated components, e.g. "connection,router"
  level      minimum level name (DEBUG, INFO, WARNING, ERROR)
  format     "json" (default) or "text"
"""
import logging

from flask import Blueprint, Response, jsonify, request

from campaignpulse.log_buffer import get_recent_logs

log = logging.getLogger("campaignpulse.routes.logs")

bp = Blueprint("logs", __name__)

TAIL_DEFAULT = 200
TAIL_MAX = 500
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@bp.route("/logs")
def get_logs():
    tail = max(1, min(TAIL_MAX, request.args.get("tail", default=TAIL_DEFAULT, type=int)))

    level_name = (request.args.get("level") or "DEBUG").strip().upper()
    if level_name not in LEVELS:
        return jsonify({"error": f"level must be one of {LEVELS}"}), 400

    raw_components = request.args.get("component") or ""
    components = [c for c in raw_components.split(",") if c.strip()] or None

    entries = get_recent_logs(limit=tail, components=components,
                              min_level=getattr(logging, level_name))

    if (request.args.get("format") or "json").strip().lower() == "text":
        return Response("\n".join(e["message"] for e in entries),
                        mimetype="text/plain; charset=utf-8")
    return jsonify({"lines": entries, "components": sorted({e["component"] for e in entries})})
