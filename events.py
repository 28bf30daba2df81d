"""
Handles all SocketIO event logic for the application.

This module is the boundary the presentation layer talks to. Each connected
client gets its own WizardEngine; every handler calls into the engine and
then pushes the resulting state back to that client. Analysis and connection
tests run as background tasks so the server stays responsive while they wait
on the network.
"""
import logging
import os
from typing import Any, Callable, Optional

from flask import request
from flask_socketio import SocketIO
from pydantic import ValidationError

from config import LOG_EXPORT_DIR
from session_log import export_logs_csv, filter_logs
from session_models import ActiveSession
from storage import KeyValueStore
from tracer import global_tracer, trace
from wizard import UnknownFieldError, WizardEngine

# --- Module-level state ---
# Holds the engine of every connected client, keyed by socket id.
wizard_sessions: dict[str, ActiveSession] = {}


def _emit_state(socketio: SocketIO, session_id: str) -> None:
    if active := wizard_sessions.get(session_id):
        socketio.emit("session_state_update", active.engine.state(), to=session_id)


def _emit_error(socketio: SocketIO, session_id: str, message: str) -> None:
    socketio.emit("log_message", {"type": "error", "data": message}, to=session_id)


def _make_spawner(socketio: SocketIO, session_id: str) -> Callable[..., Any]:
    """
    Returns a spawn function that runs engine work as a background task and
    pushes the client's state once it finishes.
    """

    def spawn(func: Callable, *args: Any, **kwargs: Any) -> Any:
        def run() -> None:
            try:
                func(*args, **kwargs)
            except Exception as e:
                logging.exception(f"Background task {getattr(func, '__name__', func)} failed for {session_id}: {e}")
            _emit_state(socketio, session_id)

        return socketio.start_background_task(run)

    return spawn


@trace
def register_events(
    socketio: SocketIO,
    store: KeyValueStore,
    fetch: Optional[Callable] = None,
    on_publish: Optional[Callable] = None,
) -> None:
    """
    Registers all SocketIO event handlers with the main application.

    Args:
        socketio: The SocketIO server.
        store: The durable store shared by all clients. Two clients editing
            at once overwrite each other's saved session; the last write wins.
        fetch: Optional replacement for the HTTP JSON fetcher.
        on_publish: Receives the final session when a client publishes.
    """

    def _engine() -> Optional[WizardEngine]:
        session_id = request.sid
        active = wizard_sessions.get(session_id)
        if not active:
            _emit_error(socketio, session_id, "No active session. Please refresh.")
            return None
        return active.engine

    @socketio.on("connect")
    def handle_connect(auth=None) -> None:
        """Creates the client's wizard engine from the saved session, or from defaults."""
        session_id = request.sid
        logging.info(f"Client connected: {session_id}")
        try:
            engine = WizardEngine(store, fetch=fetch, spawn=_make_spawner(socketio, session_id), on_publish=on_publish)
            wizard_sessions[session_id] = ActiveSession(engine=engine, client_id=session_id)
        except Exception as e:
            logging.exception(f"Could not create wizard session for {session_id}: {e}")
            _emit_error(socketio, session_id, "Failed to initialize session.")
            return
        _emit_state(socketio, session_id)

    @socketio.on("disconnect")
    def handle_disconnect(reason=None) -> None:
        """Writes any queued save and forgets the client."""
        session_id = request.sid
        active = wizard_sessions.pop(session_id, None)
        if active:
            active.engine.flush()
            logging.info(f"Client disconnected: {session_id}, Project: {active.name}")

    @socketio.on("request_state")
    def handle_request_state(data=None) -> None:
        _emit_state(socketio, request.sid)

    @socketio.on("set_field")
    def handle_set_field(data: dict) -> None:
        """
        Changes one session field.

        Args:
            data: A dictionary of the form {"key": "target", "value": "plugin"}.
        """
        engine = _engine()
        if not engine:
            return
        key = (data or {}).get("key")
        try:
            engine.set(key, (data or {}).get("value"))
        except UnknownFieldError:
            _emit_error(socketio, request.sid, f"Unknown field: {key}")
            return
        except ValidationError as e:
            logging.warning(f"Rejected value for '{key}': {e}")
            _emit_error(socketio, request.sid, f"Invalid value for {key}.")
            return
        _emit_state(socketio, request.sid)

    @socketio.on("next_step")
    def handle_next_step(data=None) -> None:
        if engine := _engine():
            engine.next_step()
            _emit_state(socketio, request.sid)

    @socketio.on("prev_step")
    def handle_prev_step(data=None) -> None:
        if engine := _engine():
            engine.back()
            _emit_state(socketio, request.sid)

    @socketio.on("undo")
    def handle_undo(data=None) -> None:
        if engine := _engine():
            engine.undo()
            _emit_state(socketio, request.sid)

    @socketio.on("analyze_repo")
    def handle_analyze_repo(data=None) -> None:
        if engine := _engine():
            engine.request_analysis()
            _emit_state(socketio, request.sid)

    @socketio.on("test_connection")
    def handle_test_connection(data=None) -> None:
        if engine := _engine():
            engine.request_connection_test()
            _emit_state(socketio, request.sid)

    @socketio.on("save_profile")
    def handle_save_profile(data=None) -> None:
        if engine := _engine():
            engine.save()
            socketio.emit("registry_update", {"entries": engine.registry.summaries()}, to=request.sid)
            _emit_state(socketio, request.sid)

    @socketio.on("publish")
    def handle_publish(data=None) -> None:
        engine = _engine()
        if not engine:
            return
        final = engine.publish()
        if final is None:
            _emit_error(socketio, request.sid, "Publishing needs a repository URL and the final step.")
            return
        socketio.emit("publish_complete", {"session": final.model_dump(mode="json")}, to=request.sid)
        _emit_state(socketio, request.sid)

    @socketio.on("request_registry")
    def handle_request_registry(data=None) -> None:
        if engine := _engine():
            socketio.emit("registry_update", {"entries": engine.registry.summaries()}, to=request.sid)

    @socketio.on("load_registry_entry")
    def handle_load_registry_entry(data: dict) -> None:
        """
        Loads a saved configuration into the live session.

        Args:
            data: A dictionary of the form {"target_name": "my-theme"}.
        """
        engine = _engine()
        if not engine:
            return
        target_name = (data or {}).get("target_name")
        entry = next((e for e in engine.registry.list() if e.target_name == target_name), None)
        if entry is None:
            _emit_error(socketio, request.sid, f"No saved configuration named '{target_name}'.")
            return
        engine.load_entry(entry)
        _emit_state(socketio, request.sid)

    @socketio.on("clear_registry")
    def handle_clear_registry(data=None) -> None:
        if engine := _engine():
            engine.clear_registry()
            socketio.emit("registry_update", {"entries": []}, to=request.sid)

    @socketio.on("request_logs")
    def handle_request_logs(data=None) -> None:
        """Sends the session log newest first, optionally errors only."""
        if engine := _engine():
            errors_only = bool((data or {}).get("errors_only"))
            logs = filter_logs(engine.session.logs, errors_only=errors_only)
            socketio.emit("log_list", {"logs": [entry.model_dump() for entry in logs]}, to=request.sid)

    @socketio.on("export_logs")
    def handle_export_logs(data=None) -> None:
        """Writes the session log to a CSV audit file and reports where it went."""
        engine = _engine()
        if not engine:
            return
        path = os.path.join(LOG_EXPORT_DIR, f"session_log_{request.sid}.csv")
        try:
            count = export_logs_csv(engine.session.logs, path)
        except OSError as e:
            logging.error(f"Failed to export session log to {path}: {e}")
            _emit_error(socketio, request.sid, "Could not export the session log.")
            return
        logging.info(f"Exported {count} log entries to {path}")
        socketio.emit("logs_exported", {"path": path, "count": count}, to=request.sid)

    @socketio.on("reset_tracer")
    def handle_reset_tracer(data=None) -> None:
        logging.info("Received request to reset global tracer.")
        global_tracer.reset()

    @socketio.on("get_trace_log")
    def handle_get_trace_log(data=None) -> None:
        socketio.emit("trace_log_response", {"trace": global_tracer.get_trace()}, to=request.sid)
