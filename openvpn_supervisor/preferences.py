"""Persistent intended-state preferences.

Stores, per configuration, whether the administrator wants its daemon
running, plus the global "enabled" toggle. Values are read from disk on
every call so changes made by other processes are always seen.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional, Union

from .identity import ConfigIdentity
from .platform import get_preferences_file

log = logging.getLogger(__name__)

KEY_OPENVPN_ENABLED = "openvpn_enabled"
INTENDED_STATE_PREFIX = "intended_state:"


class PreferencesError(Exception):
    """Preferences could not be written."""
    pass


def intended_state_key(identity: ConfigIdentity) -> str:
    """Preference key holding the intended state of a config."""
    return f"{INTENDED_STATE_PREFIX}{identity.path}"


class Preferences:
    """JSON file backed key/value store."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else get_preferences_file()
        self._lock = threading.Lock()

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            log.error(f"Cannot read preferences {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            log.error(f"Ignoring malformed preferences {self.path}")
            return {}
        return data

    def _save(self, data: dict) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data, indent=2, sort_keys=True))
            os.replace(tmp, self.path)
        except OSError as e:
            raise PreferencesError(f"Cannot write preferences {self.path}: {e}") from e

    def get_boolean(self, key: str, default: bool = False) -> bool:
        with self._lock:
            value = self._load().get(key, default)
        return bool(value)

    def put_boolean(self, key: str, value: bool) -> None:
        with self._lock:
            data = self._load()
            data[key] = bool(value)
            self._save(data)

    def get_intended_state(self, identity: ConfigIdentity) -> bool:
        """Whether the daemon for a config should be running (default False)."""
        return self.get_boolean(intended_state_key(identity), False)

    def set_intended_state(self, identity: ConfigIdentity, intended: bool) -> None:
        self.put_boolean(intended_state_key(identity), intended)

    def is_enabled(self) -> bool:
        return self.get_boolean(KEY_OPENVPN_ENABLED, False)

    def set_enabled(self, enabled: bool) -> None:
        self.put_boolean(KEY_OPENVPN_ENABLED, enabled)
