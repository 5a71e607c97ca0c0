"""
Session identity.

The agent keys everything by a session id the client generates once and then
reuses. Storage is any MutableMapping: a dict in tests, FileStorage on disk.
"""

import json
import os
import uuid
from collections.abc import MutableMapping
from typing import Dict, Iterator

SESSION_KEY = "sessionId"


def ensure_session_id(storage: MutableMapping) -> str:
    """Return the stored session id, creating and persisting one on first use."""
    session_id = storage.get(SESSION_KEY)
    if session_id:
        return session_id
    session_id = str(uuid.uuid4())
    storage[SESSION_KEY] = session_id
    return session_id


def clear_session_id(storage: MutableMapping) -> None:
    """Sign-out hook: the next ensure_session_id() starts a new session."""
    storage.pop(SESSION_KEY, None)


class FileStorage(MutableMapping):
    """
    String key/value store persisted as a JSON object.

    Every write rewrites the file; reads always go to disk so two clients
    sharing a file see each other's session id.
    """

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"[Client] Ignoring unreadable state file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def __getitem__(self, key: str) -> str:
        return self._load()[key]

    def __setitem__(self, key: str, value: str):
        data = self._load()
        data[key] = value
        self._save(data)

    def __delitem__(self, key: str):
        data = self._load()
        del data[key]
        self._save(data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._load())

    def __len__(self) -> int:
        return len(self._load())
