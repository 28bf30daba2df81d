"""
Main application bootstrap file.

This script configures logging, opens the durable store, initializes the
Flask application and the SocketIO server, and registers the HTTP routes and
SocketIO event handlers. It is responsible for starting the server and
bringing all components of the application online.
"""
import logging
from typing import Optional

import debugpy
from flask import Flask, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

from config import DEBUG_MODE, LOG_LEVEL, SERVER_PORT, STORE_PATH, STORE_QUOTA_BYTES
import events
from registry import RegistryManager
from storage import JsonFileStore, KeyValueStore
from tracer import trace


def configure_logging() -> None:
    """Configures the root logger used by every module."""
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")


@trace
def create_app(store: Optional[KeyValueStore] = None, async_mode: str = "eventlet") -> tuple[Flask, SocketIO]:
    """
    Builds the Flask app and SocketIO server around a durable store.

    Args:
        store: The store shared by all clients. Defaults to the JSON file at STORE_PATH.
        async_mode: The SocketIO async mode.

    Returns:
        The (app, socketio) pair, ready to run.
    """
    store = store or JsonFileStore(STORE_PATH, quota_bytes=STORE_QUOTA_BYTES)
    app = Flask(__name__)
    CORS(app)
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode=async_mode)
    registry = RegistryManager(store)

    @app.route("/healthz")
    def healthz():
        """Reports that the server is up."""
        return jsonify({"status": "ok", "clients": len(events.wizard_sessions)})

    @app.route("/api/registry")
    def list_registry():
        """Returns the titles of the saved configurations, most recent first."""
        return jsonify({"entries": registry.summaries()})

    events.register_events(socketio, store)
    return app, socketio


# --- MAIN EXECUTION ---
if __name__ == "__main__":
    configure_logging()
    app, socketio = create_app()
    if DEBUG_MODE:
        debugpy.listen(("0.0.0.0", 5678))
        app.logger.info("Debugpy server listening. Waiting for debugger to attach...")
        debugpy.wait_for_client()
        app.logger.info("Debugger attached.")

    app.logger.info(f"Starting deployment configurator on http://127.0.0.1:{SERVER_PORT}")
    socketio.run(app, port=SERVER_PORT)
