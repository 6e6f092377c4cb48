"""
Key/value stores with distinct lifetimes.

- ``MemoryStore``: process memory only, gone when the process exits.
- ``SessionStore``: survives between commands of one login session; lives in
  the user's runtime directory and is wiped by panic.
- ``PersistentStore``: long-lived preferences file in the home directory.
"""

from __future__ import annotations

import getpass
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Protocol describing the storage behaviour the application needs."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...


class MemoryStore:
    """Store that never leaves process memory."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


class _JsonFileStore:
    """String values kept in one JSON object on disk, owner-readable only."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as file_handle:
                data = json.load(file_handle)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable store %s: %s", self.path, exc)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring store %s: root is not an object", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as file_handle:
                json.dump(data, file_handle)
            self.path.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not write store %s: %s", self.path, exc)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def clear(self) -> None:
        if self.path.exists():
            try:
                self.path.unlink()
            except OSError as exc:
                logger.warning("Could not remove store %s: %s", self.path, exc)


class SessionStore(_JsonFileStore):
    """Session-lifetime store in the per-user runtime directory."""

    def __init__(self, path: Optional[Path] = None) -> None:
        super().__init__(path or default_session_path())

    def _load(self) -> Dict[str, str]:
        if self.path.parent.exists() and not self._directory_is_private():
            return {}
        return super()._load()

    def _save(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Could not create session directory %s: %s", self.path.parent, exc)
            return

        if self._directory_is_private():
            super()._save(data)

    def _directory_is_private(self) -> bool:
        """
        The session directory must be a real directory owned by this user.

        A shared temp dir lets other users pre-create it; such a directory is
        never read from or written to.
        """
        directory = self.path.parent
        try:
            info = directory.lstat()
        except OSError as exc:
            logger.warning("Cannot inspect session directory %s: %s", directory, exc)
            return False

        if directory.is_symlink() or not directory.is_dir():
            logger.warning("Refusing session directory %s: not a plain directory", directory)
            return False
        if hasattr(os, "getuid") and info.st_uid != os.getuid():
            logger.warning("Refusing session directory %s: owned by another user", directory)
            return False
        return True


class PersistentStore(_JsonFileStore):
    """Long-lived preferences store."""

    def __init__(self, path: Optional[Path] = None) -> None:
        super().__init__(path or Path.home() / ".calendaroverlay" / "preferences.json")


def default_session_path() -> Path:
    """Runtime directory of the login session, else a per-user temp dir."""
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir:
        return Path(runtime_dir) / "calendaroverlay" / "session.json"
    return Path(tempfile.gettempdir()) / f"calendaroverlay-{getpass.getuser()}" / "session.json"
