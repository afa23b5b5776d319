"""Value types shared by the attachment pipeline, store, controller and session."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from .errors import REJECTION_CODES, ErrorCode, ErrorKind


class Role(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Attachment:
    """A validated image encoded as a ``data:`` URL, ready for transmission."""

    name: str
    mime_type: str
    size_bytes: int
    encoded_data: str
    id: str = field(default_factory=lambda: uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "encoded_data": self.encoded_data,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Attachment:
        return cls(
            id=str(payload.get("id") or uuid4().hex),
            name=str(payload.get("name", "")),
            mime_type=str(payload.get("mime_type", "")),
            size_bytes=int(payload.get("size_bytes", 0)),
            encoded_data=str(payload.get("encoded_data", "")),
        )


@dataclass(frozen=True)
class Message:
    """One immutable turn in the conversation.

    ``id`` is 0 until the conversation store assigns one on append. A message
    must carry text or at least one attachment, unless it is a synthesized
    assistant error turn.
    """

    role: Role
    text: str = ""
    attachments: tuple[Attachment, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: int = 0
    is_error: bool = False

    def __post_init__(self) -> None:
        if not self.text.strip() and not self.attachments and not self.is_error:
            raise ValueError("A message needs text or at least one attachment.")
        if self.is_error and self.role is not Role.ASSISTANT:
            raise ValueError("Only assistant messages may carry an error.")

    @classmethod
    def error(cls, kind: ErrorKind) -> Message:
        """Build the synthesized assistant turn that records a failed send."""
        return cls(role=Role.ASSISTANT, text=kind.message, is_error=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "text": self.text,
            "attachments": [item.to_dict() for item in self.attachments],
            "timestamp": self.timestamp.isoformat(),
            "is_error": self.is_error,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Message:
        raw_timestamp = payload.get("timestamp")
        try:
            timestamp = datetime.fromisoformat(str(raw_timestamp))
        except ValueError:
            timestamp = datetime.now(UTC)
        attachments = payload.get("attachments") or []
        return cls(
            id=int(payload.get("id", 0)),
            role=Role(str(payload.get("role", "")).strip().lower()),
            text=str(payload.get("text") or ""),
            attachments=tuple(
                Attachment.from_dict(item) for item in attachments if isinstance(item, dict)
            ),
            timestamp=timestamp,
            is_error=bool(payload.get("is_error", False)),
        )


@dataclass(frozen=True)
class Rejection:
    """A file (or a whole batch) refused by the attachment pipeline."""

    reason: str
    file_name: str = ""
    detail: str = ""

    @property
    def kind(self) -> ErrorKind:
        return ErrorKind(REJECTION_CODES.get(self.reason, ErrorCode.UNKNOWN), detail=self.detail)

    @property
    def message(self) -> str:
        text = self.kind.message
        return f'File "{self.file_name}": {text}' if self.file_name else text


@dataclass(frozen=True)
class StagingResult:
    """Outcome of one ``stage`` call: partial success is allowed."""

    accepted: tuple[Attachment, ...] = ()
    rejected: tuple[Rejection, ...] = ()


@dataclass(frozen=True)
class Settings:
    """Request-time snapshot of the user's persisted preferences."""

    api_key: str
    model: str
    system_prompt: str
    provider: str
    endpoint: str


@dataclass(frozen=True)
class Completed:
    """The endpoint returned assistant text."""

    text: str


@dataclass(frozen=True)
class Cancelled:
    """The request was aborted by a cancel or a newer send."""


@dataclass(frozen=True)
class Failed:
    """The request failed; ``error`` is the classified kind."""

    error: ErrorKind


Outcome = Completed | Cancelled | Failed
