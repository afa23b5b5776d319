"""Local key-value persistence backed by a single private JSON file."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from .exceptions import PersistenceError

LOGGER = logging.getLogger(__name__)

API_KEY = "chat_api_key"
MODEL = "chat_model"
SYSTEM_PROMPT = "chat_system_prompt"
PROVIDER = "chat_provider"
CONVERSATION = "chat_conversation"


class KeyValueStorage:
    """Synchronous JSON-document store with an in-memory read cache.

    Every ``set``/``remove``/``clear`` rewrites the whole document. A failed
    write raises :class:`PersistenceError` and leaves the cache untouched, so
    the cache never claims durability the file does not have.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._cache: dict[str, Any] | None = None

    def _enforce_permissions(self, path: Path, mode: int = 0o600) -> None:
        if os.name != "posix":
            return
        try:
            path.chmod(mode)
        except OSError:
            pass

    def _load(self) -> dict[str, Any]:
        if self._cache is not None:
            return self._cache
        data: dict[str, Any] = {}
        if self.path.exists():
            try:
                payload = json.loads(self.path.read_text(encoding="utf-8"))
                if isinstance(payload, dict):
                    data = payload
                else:
                    LOGGER.warning(
                        "storage.invalid_document",
                        extra={"event": "storage.invalid_document", "path": str(self.path)},
                    )
            except (OSError, ValueError) as exc:
                LOGGER.warning(
                    "storage.read_failed",
                    extra={
                        "event": "storage.read_failed",
                        "path": str(self.path),
                        "reason": str(exc),
                    },
                )
        self._cache = data
        return data

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._enforce_permissions(self.path.parent, 0o700)
            staging = self.path.with_name(self.path.name + ".tmp")
            staging.write_text(
                json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True),
                encoding="utf-8",
            )
            self._enforce_permissions(staging)
            staging.replace(self.path)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Unable to write {self.path}: {exc}") from exc

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for ``key`` or ``default``."""
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Persist ``value`` under ``key``."""
        updated = dict(self._load())
        updated[key] = value
        self._write(updated)
        self._cache = updated

    def remove(self, key: str) -> None:
        """Delete ``key`` if present."""
        current = self._load()
        if key not in current:
            return
        updated = {k: v for k, v in current.items() if k != key}
        self._write(updated)
        self._cache = updated

    def clear(self) -> None:
        """Delete every key."""
        self._write({})
        self._cache = {}
