"""
Defines the core data structures for the application using Pydantic.

This module provides centralized, validated models shared by the wizard, the
analysis engine, the persistence layer and the socket handlers. The root
aggregate is `DeploymentConfig`, the single session a user edits through the
wizard; every other model is either a part of it or a result value returned
by a fallible operation.
"""
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import DEFAULT_SUMMARY, DEFAULT_THEME_PATH

LogLevel = Literal["info", "warning", "error", "success"]
DeployTarget = Literal["theme", "plugin", "custom", "root"]
DEPLOY_TARGETS = ("theme", "plugin", "custom", "root")


class RepoDetails(BaseModel):
    """The verdict of the analysis engine about a source repository."""

    language: str = "PHP"
    framework: str = "WordPress"
    # "High" or "Standard".
    complexity: str = "Standard"
    # Free text explaining how the verdict was reached. The default value marks
    # a repository that has not been analyzed yet.
    summary: str = DEFAULT_SUMMARY
    # Whether the repository looks like part of the WordPress ecosystem.
    is_wordpress: bool = True
    creation_date: str = "-"
    last_commit_date: str = "-"
    # Approximate size, e.g. "12 MB (approx)".
    file_count: str = "-"


class WpConnectionDetails(BaseModel):
    """What the live site reported about itself during the last connection test."""

    status: Literal["idle", "connected", "error"] = "idle"
    site_name: str = ""
    site_description: str = ""
    # "REST API Active" when the wp/v2 namespace is served, otherwise "Legacy".
    version: str = ""
    namespaces: list[str] = Field(default_factory=list)


class LogEntry(BaseModel):
    """
    A single record in the session log. Entries are immutable once created and
    the log is append-only.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    # Human wall clock time, e.g. '02:48:30 PM'.
    timestamp: str
    level: LogLevel
    # The subsystem that emitted the entry, e.g. 'Analysis', 'Connection', 'System'.
    source: str
    message: str
    # Optional diagnostic payload such as a serialized analysis result.
    details: Optional[str] = None


class DeploymentConfig(BaseModel):
    """
    The session: the complete state of one user's pipeline configuration.

    Exactly one exists per active user context. It is replaced wholesale on
    every mutation, so instances are treated as values and never edited in place.
    """

    # Optional identity fields carried by saved profiles.
    id: Optional[str] = None
    name: Optional[str] = None

    git_url: str = ""
    repo_details: RepoDetails = Field(default_factory=RepoDetails)

    # Wizard position: 1 source, 2 analysis, 3 live connect, 4 server/path, 5 security.
    current_step: int = Field(1, ge=1, le=5)

    logs: list[LogEntry] = Field(default_factory=list)

    # Live site used for the connection test.
    wp_url: str = ""
    wp_connection: WpConnectionDetails = Field(default_factory=WpConnectionDetails)

    # Transfer credentials. Sensitive; only ever persisted through the envelope.
    ftp_host: str = ""
    ftp_user: str = ""
    ftp_password: str = ""
    ftp_port: str = ""

    target: DeployTarget = "theme"
    target_name: str = "my-project"
    branch: str = "main"
    protocol: Literal["sftp", "ftp"] = "sftp"
    auth_type: Literal["password", "ssh_key"] = "ssh_key"
    remote_base: str = DEFAULT_THEME_PATH

    notifications: bool = True
    enable_rollback: bool = True
    create_log: bool = True
    dry_run: bool = False

    # "sync" mirrors the repository on the server, "add" only uploads new or changed files.
    deployment_mode: Literal["sync", "add"] = "sync"
    webhook_url: Optional[str] = ""


def default_session() -> DeploymentConfig:
    """Returns a fresh session populated with defaults."""
    return DeploymentConfig()


class FetchResult(BaseModel):
    """
    The outcome of fetching a JSON document over HTTP.

    Failures are values, never exceptions: `error_kind` tells the caller what
    went wrong so it can pick the next fallback.
    """

    ok: bool
    status: Optional[int] = None
    data: Any = None
    # The start of the response body of a non-2xx reply, for diagnostics.
    text: str = ""
    error_kind: Optional[Literal["network", "rate_limited", "http_error", "invalid_json"]] = None
    error: Optional[str] = None


class ReportEvent(BaseModel):
    """A log line produced by a fallible operation, not yet stamped with an id or time."""

    level: LogLevel
    message: str
    details: Optional[str] = None


class AnalysisReport(BaseModel):
    """The outcome of analyzing a repository URL."""

    # None when the analysis failed and the session must keep its prior values.
    details: Optional[RepoDetails] = None
    target: Optional[DeployTarget] = None
    # Which tier produced the verdict.
    tier: Literal["metadata", "heuristic", "none"] = "none"
    events: list[ReportEvent] = Field(default_factory=list)
    error: Optional[str] = None


class ConnectionReport(BaseModel):
    """The outcome of testing the connection to the live site."""

    connection: WpConnectionDetails
    # A user-facing explanation when the test failed.
    error: Optional[str] = None
    events: list[ReportEvent] = Field(default_factory=list)
