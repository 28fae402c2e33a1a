"""
Preferences
===========

Process-wide player preferences (name, auth token, key bindings).

Stores are injected where they are needed; nothing in the engine reads
preferences from globals.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)


PLAYER_NAME = 'player_name'
AUTH_TOKEN = 'auth_token'


class PreferenceStore(Protocol):
    """Read/write key-value store."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryPreferenceStore:
    """Preferences held in memory for the life of the process."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._values: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class JsonPreferenceStore:
    """
    Preferences persisted as a JSON object.

    The file is read once on construction and rewritten on every change.
    A missing file starts empty; an unreadable one is logged and ignored.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._values: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable preferences {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring preferences {self.path}: not a JSON object")
            return {}
        return data

    def _save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._values, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
        self._save()

    def delete(self, key: str) -> None:
        if key in self._values:
            del self._values[key]
            self._save()
