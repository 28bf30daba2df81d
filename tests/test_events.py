import pytest

import events
from deploy_gen import create_app
from storage import InMemoryStore


@pytest.fixture
def server(mocker):
    events.wizard_sessions.clear()
    store = InMemoryStore()
    app, socketio = create_app(store=store, async_mode="threading")
    # Background tasks run on the handler's thread so emitted state is deterministic.
    mocker.patch.object(socketio, "start_background_task", side_effect=lambda func, *a, **k: func(*a, **k))
    yield app, socketio, store
    events.wizard_sessions.clear()


@pytest.fixture
def client(server):
    app, socketio, _ = server
    client = socketio.test_client(app)
    client.get_received()
    yield client
    if client.is_connected():
        client.disconnect()


def _last(received, name):
    matching = [msg["args"][0] for msg in received if msg["name"] == name]
    assert matching, f"no '{name}' event received"
    return matching[-1]


def test_connect_sends_initial_state(server):
    app, socketio, _ = server

    client = socketio.test_client(app)

    state = _last(client.get_received(), "session_state_update")
    assert state["session"]["current_step"] == 1
    assert state["can_undo"] is False
    assert len(events.wizard_sessions) == 1


def test_set_field_pushes_updated_state(client):
    client.emit("set_field", {"key": "target", "value": "plugin"})

    state = _last(client.get_received(), "session_state_update")
    assert state["session"]["target"] == "plugin"
    assert state["session"]["remote_base"] == "/public_html/wp-content/plugins/"
    assert state["history_depth"] == 1


def test_set_field_rejects_unknown_and_invalid_values(client):
    client.emit("set_field", {"key": "favourite_color", "value": "blue"})
    client.emit("set_field", {"key": "protocol", "value": "gopher"})

    errors = [msg["args"][0]["data"] for msg in client.get_received() if msg["name"] == "log_message"]
    assert errors == ["Unknown field: favourite_color", "Invalid value for protocol."]


def test_navigation_and_undo(client):
    client.emit("next_step")
    client.emit("next_step")
    client.emit("undo")

    state = _last(client.get_received(), "session_state_update")
    assert state["session"]["current_step"] == 2
    assert state["history_depth"] == 1


def test_save_profile_then_load_it_back(client):
    # 1. ARRANGE
    client.emit("set_field", {"key": "git_url", "value": "https://github.com/acme/shop-theme.git"})
    client.emit("save_profile")
    registry = _last(client.get_received(), "registry_update")
    client.emit("set_field", {"key": "target_name", "value": "scratch"})

    # 2. ACT
    client.emit("load_registry_entry", {"target_name": "shop-theme"})

    # 3. ASSERT
    assert registry["entries"][0]["target_name"] == "shop-theme"
    state = _last(client.get_received(), "session_state_update")
    assert state["session"]["target_name"] == "shop-theme"


def test_load_unknown_registry_entry_reports_error(client):
    client.emit("load_registry_entry", {"target_name": "nope"})

    error = _last(client.get_received(), "log_message")
    assert error["data"] == "No saved configuration named 'nope'."


def test_publish_before_final_step_reports_error(client):
    client.emit("publish")

    received = client.get_received()
    assert not [msg for msg in received if msg["name"] == "publish_complete"]
    assert _last(received, "log_message")["type"] == "error"


def test_publish_at_final_step_completes(client):
    client.emit("set_field", {"key": "git_url", "value": "https://github.com/acme/shop-theme.git"})
    client.emit("set_field", {"key": "current_step", "value": 5})

    client.emit("publish")

    published = _last(client.get_received(), "publish_complete")
    assert published["session"]["target_name"] == "shop-theme"


def test_request_logs_newest_first(client):
    client.emit("set_field", {"key": "git_url", "value": "https://github.com/acme/shop-theme.git"})
    client.emit("save_profile")
    client.emit("set_field", {"key": "current_step", "value": 5})
    client.emit("publish")
    client.get_received()

    client.emit("request_logs", {"errors_only": False})

    logs = _last(client.get_received(), "log_list")["logs"]
    assert logs[0]["message"] == "Pipeline generated successfully. Ready for download."
    assert logs[-1]["message"] == "Configuration saved to secure registry."


def test_disconnect_forgets_client(server):
    app, socketio, _ = server
    client = socketio.test_client(app)

    client.disconnect()

    assert events.wizard_sessions == {}


def test_http_routes(server):
    app, socketio, store = server
    socketio.test_client(app).emit("save_profile")
    http = app.test_client()

    health = http.get("/healthz").get_json()
    registry = http.get("/api/registry").get_json()

    assert health["status"] == "ok"
    assert registry["entries"] == [
        {"target": "theme", "target_name": "my-project", "remote_base": "/public_html/wp-content/themes/"}
    ]


def test_export_logs_writes_csv(client, mocker, tmp_path):
    mocker.patch.object(events, "LOG_EXPORT_DIR", str(tmp_path))
    client.emit("save_profile")
    client.get_received()

    client.emit("export_logs")

    exported = _last(client.get_received(), "logs_exported")
    assert exported["count"] == 1
    with open(exported["path"], encoding="utf-8") as f:
        assert "Configuration saved to secure registry." in f.read()
