"""
Builds, filters and exports the entries of the session log.
"""
import csv
import os
from typing import Iterable, Optional

from data_models import LogEntry, LogLevel, ReportEvent
from utils import get_timestamp, new_entry_id

CSV_HEADER = ["Timestamp", "Level", "Source", "Message", "Details"]


def make_entry(level: LogLevel, source: str, message: str, details: Optional[str] = None) -> LogEntry:
    """Stamps a new log entry with a fresh id and the current time."""
    return LogEntry(id=new_entry_id(), timestamp=get_timestamp(), level=level, source=source, message=message, details=details)


def entries_from_events(events: Iterable[ReportEvent], source: str) -> list[LogEntry]:
    """Turns the events returned by a fallible operation into log entries."""
    return [make_entry(event.level, source, event.message, event.details) for event in events]


def filter_logs(logs: Iterable[LogEntry], errors_only: bool = False) -> list[LogEntry]:
    """Returns the entries newest first, optionally keeping only errors."""
    selected = [entry for entry in logs if not errors_only or entry.level == "error"]
    selected.reverse()
    return selected


def export_logs_csv(logs: Iterable[LogEntry], path: str) -> int:
    """
    Writes the entries, oldest first, to a CSV audit file with every field quoted.

    Returns:
        The number of entries written.
    """
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, quoting=csv.QUOTE_ALL)
        writer.writerow(CSV_HEADER)
        for entry in logs:
            writer.writerow([entry.timestamp, entry.level, entry.source, entry.message, entry.details or ""])
            count += 1
    return count
