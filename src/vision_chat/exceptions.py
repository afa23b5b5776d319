"""Domain exception hierarchy for the vision chat client."""

from __future__ import annotations


class VisionChatError(RuntimeError):
    """Base class for all domain-level chat errors."""


class ConfigValidationError(VisionChatError):
    """Raised when configuration cannot be validated safely."""


class MissingCredentialError(VisionChatError):
    """Raised when no API key is stored."""


class MissingModelError(VisionChatError):
    """Raised when no model identifier can be resolved."""


class HttpStatusError(VisionChatError):
    """Raised when the endpoint answers with a non-success status."""

    def __init__(self, status: int, message: str = "") -> None:
        self.status = status
        self.message = message
        super().__init__(f"API error ({status}): {message}" if message else f"API error ({status})")


class MalformedResponseError(VisionChatError):
    """Raised when a success body lacks ``choices[0].message.content``."""


class RequestTimeoutError(VisionChatError):
    """Raised when a connection probe exceeds its wall-clock budget."""


class AttachmentReadError(VisionChatError):
    """Raised when a staged file cannot be read."""


class PersistenceError(VisionChatError):
    """Raised when the key-value store cannot be read or written."""
