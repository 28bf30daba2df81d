"""
The wizard state machine: owner of the live session.

`WizardEngine` is the explicit context object every operation goes through.
All field changes funnel into `update`, which pushes the pre-mutation session
onto the undo history, commits the new session, and schedules a durable save,
in that order. History and persistence therefore only ever see sessions that
were actually committed.

The wizard is a five-step linear flow:

    1 source -> 2 analysis -> 3 live connect -> 4 server/path/strategy -> 5 security/review

`next_step` and `back` clamp to that range and are not gated by validation.
Whenever the session sits at step 2 with a repository URL and an unanalyzed
summary (after navigating, entering the URL, loading at startup or loading a
saved profile), the analysis starts, once per URL. "publish" is the exit action, available only at
step 5 with a repository URL.
"""
import logging
import threading
from typing import Any, Callable, Optional

from config import (
    DEFAULT_PLUGIN_PATH,
    DEFAULT_SUMMARY,
    DEFAULT_THEME_PATH,
    HISTORY_LIMIT,
    WP_CONTENT_SEGMENT,
)
from data_models import AnalysisReport, ConnectionReport, DeploymentConfig, LogEntry, LogLevel
from fetcher import JsonFetcher
from history import HistoryManager
from registry import RegistryManager
from repo_analyzer import analyze_repository
from session_log import entries_from_events, make_entry
from session_store import DurableSessionStore, SaveQueue
from site_connection import check_site_connection
from storage import KeyValueStore
from tracer import trace
from utils import run_inline

STEP_SOURCE = 1
STEP_ANALYSIS = 2
STEP_LIVE_CONNECT = 3
STEP_SERVER = 4
STEP_SECURITY = 5
FIRST_STEP, LAST_STEP = STEP_SOURCE, STEP_SECURITY


class UnknownFieldError(KeyError):
    """Raised when a mutation names a field the session does not have."""


def derive_remote_base(remote_base: str, target: str) -> str:
    """
    Returns the remote path to use after switching to `target`.

    Only paths still inside the default wp-content layout are adjusted, and
    only when they are not already specialized for the new target. Custom
    paths are never overwritten.
    """
    if WP_CONTENT_SEGMENT not in remote_base:
        return remote_base
    if target == "theme" and "themes" not in remote_base:
        return DEFAULT_THEME_PATH
    if target == "plugin" and "plugins" not in remote_base:
        return DEFAULT_PLUGIN_PATH
    return remote_base


def derive_target_name(git_url: str) -> Optional[str]:
    """Returns the project name implied by a repository URL, or None."""
    last_part = git_url.split("/")[-1]
    if not last_part:
        return None
    return last_part[: -len(".git")] if last_part.endswith(".git") else last_part


def apply_field(prior: DeploymentConfig, key: str, value: Any) -> DeploymentConfig:
    """
    Returns a new validated session with `key` set to `value`, including the
    fields derived from it.

    Raises:
        UnknownFieldError: If `key` is not a session field.
        pydantic.ValidationError: If `value` is not valid for `key`.
    """
    if key not in DeploymentConfig.model_fields:
        raise UnknownFieldError(key)
    data = prior.model_dump()
    data[key] = value
    if key == "git_url":
        target_name = derive_target_name(str(value or ""))
        if target_name:
            data["target_name"] = target_name
    elif key == "target":
        data["remote_base"] = derive_remote_base(data["remote_base"], value)
    return DeploymentConfig.model_validate(data)


class WizardEngine:
    """
    Owns one user's live session together with its undo history, durable
    storage and registry.

    Args:
        store: The durable key-value store for the session and the registry.
        fetch: Callable returning a `FetchResult` for a URL. Defaults to a `JsonFetcher`.
        spawn: Runs background work (analysis, connection tests, saves).
            Defaults to running it inline.
        on_publish: Receives a copy of the final session when the user publishes.
        environment_id: Overrides the environment string bound into the envelope key.
    """

    def __init__(
        self,
        store: KeyValueStore,
        fetch: Optional[Callable] = None,
        spawn: Callable[..., Any] = run_inline,
        on_publish: Optional[Callable[[DeploymentConfig], Any]] = None,
        environment_id: Optional[str] = None,
        history_limit: int = HISTORY_LIMIT,
    ):
        self.session_store = DurableSessionStore(store, environment_id=environment_id)
        self.save_queue = SaveQueue(self.session_store, spawn)
        self.registry = RegistryManager(store)
        self.history = HistoryManager(history_limit)
        self.fetch = fetch or JsonFetcher()
        self.spawn = spawn
        self.on_publish = on_publish

        self._lock = threading.RLock()
        self._auto_analyzed_urls: set[str] = set()
        self._analyses_in_flight = 0
        self._connections_in_flight = 0
        # Shown next to the site URL field after a failed connection test.
        self.connection_error: Optional[str] = None

        self.session = self.session_store.load()
        logging.info(f"Wizard session loaded at step {self.session.current_step} for '{self.session.target_name}'.")
        # A session restored at the analysis step gets its analysis too.
        self._maybe_auto_analyze()

    # --- Mutation entry point ---

    @trace
    def update(self, derive: Callable[[DeploymentConfig], DeploymentConfig]) -> DeploymentConfig:
        """
        Replaces the session with `derive(prior)`.

        The prior session is pushed onto the history before the new one is
        committed, and a save is scheduled after. If `derive` raises, nothing
        changes.
        """
        with self._lock:
            prior = self.session
            updated = derive(prior)
            self.history.record_before_mutation(prior)
            self.session = updated
        self.save_queue.schedule(updated)
        return updated

    def set(self, key: str, value: Any) -> DeploymentConfig:
        """Sets one session field (plus the fields derived from it)."""
        updated = self.update(lambda prior: apply_field(prior, key, value))
        if key in ("current_step", "git_url"):
            self._maybe_auto_analyze()
        return updated

    def add_log(self, level: LogLevel, source: str, message: str, details: Optional[str] = None) -> LogEntry:
        entry = make_entry(level, source, message, details)
        self._append_logs([entry])
        return entry

    def _append_logs(self, entries: list) -> None:
        if entries:
            self.update(lambda prior: apply_field(prior, "logs", [*prior.logs, *entries]))

    # --- Navigation ---

    @trace
    def next_step(self) -> int:
        self.update(lambda prior: apply_field(prior, "current_step", min(prior.current_step + 1, LAST_STEP)))
        self._maybe_auto_analyze()
        return self.session.current_step

    @trace
    def back(self) -> int:
        self.update(lambda prior: apply_field(prior, "current_step", max(prior.current_step - 1, FIRST_STEP)))
        return self.session.current_step

    def _maybe_auto_analyze(self) -> None:
        with self._lock:
            session = self.session
            if session.current_step != STEP_ANALYSIS or not session.git_url:
                return
            if session.repo_details.summary != DEFAULT_SUMMARY or session.git_url in self._auto_analyzed_urls:
                return
            self._auto_analyzed_urls.add(session.git_url)
        logging.info(f"At analysis step, starting analysis of {session.git_url}.")
        self.spawn(self.analyze)

    # --- Undo ---

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @trace
    def undo(self) -> Optional[DeploymentConfig]:
        """
        Restores the most recent snapshot verbatim, without recording a new
        history entry. Returns the restored session, or None if there was
        nothing to undo.
        """
        with self._lock:
            snapshot = self.history.undo()
            if snapshot is None:
                return None
            self.session = snapshot
        self.save_queue.schedule(snapshot)
        return snapshot

    # --- Analysis and connection test ---

    @property
    def is_analyzing(self) -> bool:
        return self._analyses_in_flight > 0

    @property
    def is_connecting(self) -> bool:
        return self._connections_in_flight > 0

    @trace
    def analyze(self) -> Optional[AnalysisReport]:
        """
        Analyzes the current repository URL and applies the verdict.

        Overlapping calls are not serialized; each applies its own result
        when it finishes. Returns None if no URL is set.
        """
        url = self.session.git_url
        if not url:
            return None
        with self._lock:
            self._analyses_in_flight += 1
        try:
            report = analyze_repository(url, self.fetch)
        finally:
            with self._lock:
                self._analyses_in_flight -= 1
        self.apply_analysis(report)
        return report

    def apply_analysis(self, report: AnalysisReport) -> None:
        """
        Writes an analysis report into the session: its log entries always,
        the repository details when a verdict was reached, and the target
        only when one was produced.
        """
        self._append_logs(entries_from_events(report.events, "Analysis"))
        if report.details is None:
            return
        self.set("repo_details", report.details)
        if report.target:
            self.set("target", report.target)

    def request_analysis(self) -> None:
        """Starts an analysis as background work."""
        if self.session.git_url:
            self.spawn(self.analyze)

    @trace
    def test_connection(self) -> Optional[ConnectionReport]:
        """Tests the live site connection. Returns None if no site URL is set."""
        session = self.session
        if not session.wp_url:
            return None
        with self._lock:
            self._connections_in_flight += 1
        self.connection_error = None
        try:
            report = check_site_connection(session.wp_url, session.wp_connection, self.fetch)
        finally:
            with self._lock:
                self._connections_in_flight -= 1
        self._append_logs(entries_from_events(report.events, "Connection"))
        self.set("wp_connection", report.connection)
        self.connection_error = report.error
        return report

    def request_connection_test(self) -> None:
        """Starts a connection test as background work."""
        if self.session.wp_url:
            self.spawn(self.test_connection)

    # --- Registry, save and publish ---

    @trace
    def save(self) -> bool:
        """
        Saves the session to the registry and persists it immediately.

        Returns False if the registry could not be written.
        """
        session = self.session
        saved = self.registry.save_current(session)
        self.session_store.save(session)
        if saved:
            self.add_log("success", "System", "Configuration saved to secure registry.")
        else:
            self.add_log("error", "System", "Could not write the configuration registry.")
        return saved

    @trace
    def load_entry(self, entry: DeploymentConfig) -> DeploymentConfig:
        """Makes a registry entry the live session. Undoable like any mutation."""
        loaded = self.update(lambda prior: entry.model_copy(deep=True))
        self._maybe_auto_analyze()
        return loaded

    def clear_registry(self) -> None:
        self.registry.clear()

    @property
    def can_publish(self) -> bool:
        return self.session.current_step == LAST_STEP and bool(self.session.git_url)

    @trace
    def publish(self) -> Optional[DeploymentConfig]:
        """
        Persists the session, records it in the registry and hands a copy to
        the external pipeline generator.

        Returns the published session, or None when publishing is not available.
        """
        if not self.can_publish:
            return None
        self.add_log("info", "System", "Starting pipeline generation process...")
        self.session_store.save(self.session)
        self.registry.save_current(self.session)
        self.add_log("success", "System", "Pipeline generated successfully. Ready for download.")
        final = self.session.model_copy(deep=True)
        if self.on_publish:
            self.on_publish(final)
        return final

    def flush(self) -> None:
        """Writes any queued save on the caller's thread."""
        self.save_queue.flush()

    def state(self) -> dict:
        """Returns what the presentation layer needs to render the wizard."""
        return {
            "session": self.session.model_dump(mode="json"),
            "can_undo": self.can_undo,
            "history_depth": len(self.history),
            "can_publish": self.can_publish,
            "is_analyzing": self.is_analyzing,
            "is_connecting": self.is_connecting,
            "connection_error": self.connection_error,
        }
