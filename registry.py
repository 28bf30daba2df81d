"""
Manages the registry: a bounded list of named session snapshots for reuse.

Entries are keyed by target name (a newer save replaces an older entry with
the same name), ordered most recent first and capped. The list is stored as
plain JSON under its own key so its titles and paths stay browsable; it is
independent of the encrypted current-session slot.
"""
import json
import logging
from typing import List

from pydantic import ValidationError

from config import REGISTRY_LIMIT, REGISTRY_STORAGE_KEY
from data_models import DeploymentConfig
from storage import KeyValueStore
from tracer import trace


class RegistryManager:
    def __init__(self, store: KeyValueStore, key: str = REGISTRY_STORAGE_KEY, limit: int = REGISTRY_LIMIT):
        self.store = store
        self.key = key
        self.limit = limit

    def _read_raw(self) -> list:
        try:
            raw = self.store.get(self.key)
        except Exception as e:
            logging.error(f"Failed to read registry: {e}")
            return []
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logging.warning(f"Registry is not valid JSON, treating it as empty: {e}")
            return []
        return data if isinstance(data, list) else []

    def list(self) -> List[DeploymentConfig]:
        """Returns the saved entries, most recent first. Malformed entries are skipped."""
        entries = []
        for item in self._read_raw():
            try:
                entries.append(DeploymentConfig.model_validate(item))
            except ValidationError as e:
                # One corrupted entry must not hide the rest of the registry.
                logging.warning(f"Skipping registry entry due to validation error: {e.error_count()} error(s).")
        return entries

    def summaries(self) -> List[dict]:
        """Returns the browsable titles of the saved entries, most recent first."""
        return [
            {"target": entry.target, "target_name": entry.target_name, "remote_base": entry.remote_base}
            for entry in self.list()
        ]

    @trace
    def save_current(self, session: DeploymentConfig) -> bool:
        """
        Saves `session` as the newest entry, replacing any entry with the same
        target name and dropping entries beyond the cap.

        Returns False if the list could not be written.
        """
        kept = [entry for entry in self.list() if entry.target_name != session.target_name]
        entries = [session, *kept][: self.limit]
        payload = json.dumps([entry.model_dump(mode="json") for entry in entries])
        try:
            self.store.set(self.key, payload)
            return True
        except Exception as e:
            logging.error(f"Failed to write registry: {e}")
            return False

    @trace
    def clear(self) -> None:
        try:
            self.store.remove(self.key)
        except Exception as e:
            logging.error(f"Failed to clear registry: {e}")
