"""
Local state and the credential store.

LocalStore is the client's equivalent of browser key-value storage: a small
YAML file holding the access token, the user profile and a few UI
continuity ids (last recommendation, uploaded documents). It is read once on
construction and rewritten on every change.

CredentialStore sits on top of it and owns the single `access_token` key.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

TOKEN_KEY = "access_token"
USER_KEY = "user"


class LocalStore:
    """Persistent key-value store. path=None keeps everything in memory."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path).expanduser() if path else None
        self._data: dict[str, Any] = self._read()

    def _read(self) -> dict:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed state file %s", self.path)
            return {}
        return data

    def _write(self):
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                yaml.safe_dump(self._data, f, default_flow_style=False, allow_unicode=True)
            os.chmod(self.path, 0o600)
        except OSError as e:
            logger.error(
                "Failed to persist state to %s: %s (writable=%s)",
                self.path, e, os.access(self.path.parent, os.W_OK),
            )

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        self._data[key] = value
        self._write()

    def remove(self, key: str):
        if key in self._data:
            del self._data[key]
            self._write()

    def __contains__(self, key: str) -> bool:
        return key in self._data


class CredentialStore:
    """
    Holds the current bearer token.

    At most one token is active; None means unauthenticated. The store does
    not validate tokens and has no side effects beyond its own storage:
    what happens after a clear is for callers to decide.
    """

    def __init__(self, store: LocalStore | None = None):
        self._store = store if store is not None else LocalStore()

    def set(self, token: str):
        self._store.set(TOKEN_KEY, token)

    def get(self) -> str | None:
        token = self._store.get(TOKEN_KEY)
        return token or None

    def clear(self):
        self._store.remove(TOKEN_KEY)

    @property
    def present(self) -> bool:
        return self.get() is not None

    def __repr__(self) -> str:
        return f"<CredentialStore present={self.present}>"
