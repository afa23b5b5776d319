"""Ordered, persisted conversation log."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
import logging

from . import storage as keys
from .errors import ErrorKind, classify
from .exceptions import PersistenceError
from .models import Message
from .storage import KeyValueStorage

LOGGER = logging.getLogger(__name__)


class ConversationStore:
    """Source of truth for what has been said.

    Responsibilities:
    - Assign monotonically increasing message ids
    - Persist the whole log synchronously on every mutation
    - Degrade to memory-only when the write fails, reporting it once per failure
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        on_degraded: Callable[[ErrorKind], None] | None = None,
    ) -> None:
        self.storage = storage
        self._messages: list[Message] = []
        self._last_id = 0
        self._on_degraded = on_degraded

    def on_degraded(self, callback: Callable[[ErrorKind], None]) -> None:
        """Register callback for non-fatal persistence failures."""
        self._on_degraded = callback

    def __len__(self) -> int:
        return len(self._messages)

    def all(self) -> list[Message]:
        """Return the log, oldest first."""
        return list(self._messages)

    def append(self, message: Message) -> Message:
        """Assign the next id, persist, and return the stored copy.

        No deduplication: identical content appended twice yields two
        messages.
        """
        self._last_id += 1
        stored = replace(message, id=self._last_id)
        self._messages.append(stored)
        self._persist()
        return stored

    def clear(self) -> None:
        """Empty the log and reset the id counter."""
        self._messages = []
        self._last_id = 0
        self._persist()

    def restore(self) -> list[Message]:
        """Load the persisted log into memory, replacing current contents."""
        payload = self.storage.get(keys.CONVERSATION, [])
        restored: list[Message] = []
        if isinstance(payload, list):
            for item in payload:
                if not isinstance(item, dict):
                    continue
                try:
                    restored.append(Message.from_dict(item))
                except (TypeError, ValueError) as exc:
                    LOGGER.warning(
                        "conversation.restore_skipped",
                        extra={"event": "conversation.restore_skipped", "reason": str(exc)},
                    )
        self._messages = restored
        self._last_id = max((message.id for message in restored), default=0)
        LOGGER.info(
            "conversation.restored",
            extra={"event": "conversation.restored", "count": len(restored)},
        )
        return self.all()

    def _persist(self) -> None:
        try:
            self.storage.set(keys.CONVERSATION, [m.to_dict() for m in self._messages])
        except PersistenceError as exc:
            kind = classify(exc)
            LOGGER.warning(
                "conversation.persist_failed",
                extra={
                    "event": "conversation.persist_failed",
                    "error": str(exc),
                    "count": len(self._messages),
                },
            )
            if self._on_degraded is not None:
                self._on_degraded(kind)
