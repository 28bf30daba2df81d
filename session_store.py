"""
Persists the single "current session" through the crypto envelope.

Persistence is best-effort: loading falls back to defaults on any problem and
saving never raises, so neither can interrupt the interactive flow. Saves
requested by the wizard go through a `SaveQueue` of depth one, which makes the
"last write wins, never a partial object" behavior explicit.
"""
import logging
import threading
from typing import Any, Callable, Optional

from pydantic import ValidationError

from config import SESSION_STORAGE_KEY
from data_models import DeploymentConfig, default_session
from security import seal, unseal
from storage import KeyValueStore
from tracer import trace
from utils import run_inline


class DurableSessionStore:
    """Saves and loads one encrypted session value under a fixed key."""

    def __init__(self, store: KeyValueStore, key: str = SESSION_STORAGE_KEY, environment_id: Optional[str] = None):
        self.store = store
        self.key = key
        self.environment_id = environment_id

    @trace
    def load(self) -> DeploymentConfig:
        """
        Returns the saved session shallow-merged over defaults.

        Fields missing from an older snapshot take their default values. An
        absent, undecryptable or malformed snapshot yields the defaults.
        """
        defaults = default_session()
        try:
            token = self.store.get(self.key)
        except Exception as e:
            logging.error(f"Failed to read saved session: {e}")
            return defaults
        if token is None:
            return defaults

        decrypted = unseal(token, self.environment_id)
        if not isinstance(decrypted, dict):
            logging.warning("Saved session could not be decrypted or is not an object. Starting from defaults.")
            return defaults

        merged = {**defaults.model_dump(mode="json"), **decrypted}
        try:
            return DeploymentConfig.model_validate(merged)
        except ValidationError as e:
            logging.warning(f"Saved session failed validation, starting from defaults: {e.error_count()} error(s).")
            return defaults

    @trace
    def save(self, session: DeploymentConfig) -> bool:
        """
        Seals and writes the session. Returns False instead of raising on failure.
        """
        try:
            self.store.set(self.key, seal(session.model_dump(mode="json"), self.environment_id))
            return True
        except Exception as e:
            logging.error(f"Failed to persist session: {e}")
            return False


class SaveQueue:
    """
    A depth-one queue of pending session saves.

    `schedule` records the newest snapshot and, if no drain task is pending,
    spawns one. A snapshot that is superseded before the drain task picks it
    up is never written. The drain task keeps writing until no newer snapshot
    is waiting, so the last scheduled state is always the last one written.
    """

    def __init__(self, session_store: DurableSessionStore, spawn: Callable[..., Any] = run_inline):
        self.session_store = session_store
        self.spawn = spawn
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._pending: Optional[DeploymentConfig] = None
        self._drain_scheduled = False
        self.writes = 0

    def schedule(self, session: DeploymentConfig) -> None:
        snapshot = session.model_copy(deep=True)
        with self._lock:
            self._pending = snapshot
            if self._drain_scheduled:
                return
            self._drain_scheduled = True
        try:
            self.spawn(self._drain)
        except Exception as e:
            # The snapshot stays pending; the next schedule or flush writes it.
            logging.error(f"Could not start session save task: {e}")
            with self._lock:
                self._drain_scheduled = False

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def _drain(self) -> None:
        while True:
            # Taking and writing under one lock keeps writes in schedule order.
            with self._write_lock:
                with self._lock:
                    snapshot = self._pending
                    self._pending = None
                    if snapshot is None:
                        self._drain_scheduled = False
                        return
                self.session_store.save(snapshot)
                self.writes += 1

    def flush(self) -> None:
        """Writes any pending snapshot on the caller's thread."""
        self._drain()
