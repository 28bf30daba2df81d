"""
Records the execution flow of decorated engine functions as a nested call tree.

Each thread of control (request handler, background analysis, queued save)
keeps its own call stack so concurrent work does not interleave its entries,
while finished root calls are collected into one shared, bounded log.
"""
import copy
import functools
import os
import re
import threading
from collections import deque
from typing import Any, Callable

from config import TRACE_MAX_ENTRIES


def _sanitize_repr(value: Any) -> str:
    """Returns repr(value) without memory addresses and capped in length."""
    rep = re.sub(r"\s+at\s+0x[0-9a-fA-F]+", "", repr(value))
    return rep if len(rep) <= 200 else rep[:197] + "..."


class Tracer:
    """
    Collects a hierarchical log of traced calls.

    Root-level calls are kept in a deque of `max_entries`; nested calls are
    attached to the entry of the call that made them.
    """

    def __init__(self, max_entries: int = TRACE_MAX_ENTRIES):
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._local = threading.local()
        self.reset()

    def reset(self) -> None:
        """Clears the collected trace. Calls already in flight finish untracked."""
        with self._lock:
            self.trace_log: deque = deque(maxlen=self.max_entries)
        self._local = threading.local()

    def _stack(self) -> list:
        if not hasattr(self._local, "stack"):
            self._local.stack = []
        return self._local.stack

    def start_trace(self, module: str, func_name: str) -> None:
        entry = {"function": f"{module}.{func_name}", "nested_calls": []}
        stack = self._stack()
        # Entries reachable from trace_log are only changed under the lock.
        with self._lock:
            if stack:
                stack[-1]["nested_calls"].append(entry)
            else:
                self.trace_log.append(entry)
        stack.append(entry)

    def end_trace(self, return_value: Any, is_exception: bool = False) -> None:
        stack = self._stack()
        if not stack:
            return
        entry = stack.pop()
        outcome = {}
        if is_exception:
            outcome["exception"] = _sanitize_repr(return_value)
        elif return_value is not None:
            is_empty_container = isinstance(return_value, (list, dict, tuple, str)) and not return_value
            if not is_empty_container:
                outcome["return_value"] = _sanitize_repr(return_value)
        with self._lock:
            if not entry["nested_calls"]:
                del entry["nested_calls"]
            entry.update(outcome)

    def get_trace(self) -> list:
        """Returns a deep copy of the collected root-level entries, oldest first."""
        with self._lock:
            return copy.deepcopy(list(self.trace_log))


global_tracer = Tracer()


def trace(func: Callable) -> Callable:
    """Decorator that records entry and exit of `func` in the global tracer."""
    module_name = os.path.splitext(os.path.basename(func.__code__.co_filename))[0]

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        global_tracer.start_trace(module_name, func.__qualname__)
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            global_tracer.end_trace(e, is_exception=True)
            raise
        global_tracer.end_trace(result)
        return result

    return wrapper
