"""
campaignpulse agent entrypoint.

Builds the Flask app around one NotificationSession, mounts the session
(connects to the dashboard server's push channel) and serves the JSON
routes the dashboard polls. With CAMPAIGNPULSE_SERVE_HUB=1 the agent also
serves /ws itself and acts as the broadcasting server.
"""
import atexit
import logging

from flask import Flask, jsonify

from campaignpulse.broadcast import BroadcastHub
from campaignpulse.config import Settings
from campaignpulse.log_buffer import LOG_FORMAT, install_log_handler
from campaignpulse.loop import LoopNotRunning
from campaignpulse.routes import alerts as alerts_bp
from campaignpulse.routes import connection as connection_bp
from campaignpulse.routes import logs as logs_bp
from campaignpulse.routes import notifications as notifications_bp
from campaignpulse.routes import ws as ws_routes
from campaignpulse.session import NotificationSession

log = logging.getLogger("campaignpulse.agent")


def create_app(settings: Settings | None = None, session: NotificationSession | None = None) -> Flask:
    """
    Flask app bound to one session.

    The session is built but not mounted; the caller decides when the
    connection goes live (main() mounts it before serving).
    """
    settings = settings or Settings.from_env()
    session = session or NotificationSession(settings)

    app = Flask(__name__)
    app.extensions["campaignpulse"] = session
    app.register_blueprint(connection_bp.bp)
    app.register_blueprint(notifications_bp.bp)
    app.register_blueprint(alerts_bp.bp)
    app.register_blueprint(logs_bp.bp)

    @app.errorhandler(LoopNotRunning)
    def _session_not_running(exc):
        return jsonify({"error": "notification session is not mounted"}), 503

    if settings.serve_hub:
        app.extensions["campaignpulse.hub"] = BroadcastHub()
        app.register_blueprint(ws_routes.bp)
        ws_routes.sock.init_app(app)
        log.info("Serving broadcast hub at /ws")
    return app


def main():
    settings = Settings.from_env()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format=LOG_FORMAT)
    install_log_handler()

    app = create_app(settings)
    session = app.extensions["campaignpulse"]
    session.mount()
    atexit.register(session.unmount)

    log.info("Starting agent on %s:%d (origin %s)", settings.host, settings.port, settings.origin)
    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == "__main__":
    main()
