"""Local persistent key-value storage."""

import json
import logging
import os
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class LocalStorage(Protocol):
    """Key-value scope available only in interactive contexts."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    """Storage kept in process memory."""

    def __init__(self, data: Optional[dict[str, Any]] = None) -> None:
        self.data: dict[str, Any] = dict(data or {})

    def get(self, key: str) -> Optional[Any]:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStorage:
    """Storage persisted as a single JSON object on disk."""

    def __init__(self, path: str) -> None:
        """
        Initialize file storage.

        Args:
            path: Path of the JSON file (created on first write)
        """
        self.path = path
        self.data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if os.path.exists(self.path):
            try:
                with open(self.path, "r") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    return data
                logger.warning(f"Ignoring malformed storage file {self.path}")
            except (json.JSONDecodeError, ValueError) as e:
                # If file is corrupted, start fresh
                logger.warning(f"Could not load storage file {self.path}: {e}")
        return {}

    def _save(self) -> None:
        with open(self.path, "w") as f:
            json.dump(self.data, f, indent=2, default=str)
        # Restrictive permissions, the file may hold identity data
        os.chmod(self.path, 0o600)

    def get(self, key: str) -> Optional[Any]:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value
        self._save()

    def remove(self, key: str) -> None:
        if key in self.data:
            del self.data[key]
            self._save()
