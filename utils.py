"""
Provides common, stateless utility functions used across the application.

This module is a collection of simple, reusable helper functions that do not
fit into a more specific module and have no external dependencies other than
standard Python libraries.
"""
import uuid
from datetime import datetime
from typing import Any, Callable


def get_timestamp() -> str:
    """
    Generates a human-readable wall clock timestamp for session log entries.

    Returns:
        A string such as '02:48:30 PM'.
    """
    return datetime.now().strftime("%I:%M:%S %p")


def new_entry_id() -> str:
    """Returns a short opaque token used to identify a log entry."""
    return uuid.uuid4().hex[:9]


def run_inline(func: Callable, *args: Any, **kwargs: Any) -> Any:
    """
    Runs a task immediately on the caller's thread of control.

    This is the default task spawner. The server swaps it for
    `socketio.start_background_task` so the same work runs as a green thread.
    """
    return func(*args, **kwargs)
