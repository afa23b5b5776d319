"""Error taxonomy and the classifier that maps raw failures onto it.

Every failure that reaches the user passes through :func:`classify`. The
function is pure: it inspects the exception and returns an :class:`ErrorKind`
whose :attr:`ErrorKind.message` is the fixed, user-facing rendering.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import json

import httpx

from .exceptions import (
    AttachmentReadError,
    HttpStatusError,
    MalformedResponseError,
    MissingCredentialError,
    MissingModelError,
    PersistenceError,
    RequestTimeoutError,
)


class ErrorCode(str, Enum):
    """Stable identifiers for every user-facing error category."""

    MISSING_CREDENTIAL = "MissingCredential"
    MISSING_MODEL = "MissingModel"
    NETWORK_UNREACHABLE = "NetworkUnreachable"
    INVALID_CREDENTIAL = "InvalidCredential"
    FORBIDDEN = "Forbidden"
    RATE_LIMITED = "RateLimited"
    SERVER_UNAVAILABLE = "ServerUnavailable"
    HTTP_ERROR = "HttpError"
    MALFORMED_RESPONSE = "MalformedResponse"
    ATTACHMENT_READ_FAILED = "AttachmentReadFailed"
    TOO_MANY_FILES = "TooManyFiles"
    TOO_LARGE = "TooLarge"
    UNSUPPORTED_TYPE = "UnsupportedType"
    PERSISTENCE_DEGRADED = "PersistenceDegraded"
    TIMEOUT = "Timeout"
    UNKNOWN = "Unknown"


_FIXED_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.MISSING_CREDENTIAL: "Please set your API key in Settings before sending messages.",
    ErrorCode.MISSING_MODEL: "Please enter a model name in Settings.",
    ErrorCode.NETWORK_UNREACHABLE: "Network connection failed. Please check your internet connection.",
    ErrorCode.INVALID_CREDENTIAL: "Invalid API key. Please check your API key in Settings.",
    ErrorCode.FORBIDDEN: "Access forbidden. Please verify your API key permissions.",
    ErrorCode.RATE_LIMITED: "Rate limit exceeded. Please wait a moment before trying again.",
    ErrorCode.SERVER_UNAVAILABLE: "Server error. The AI service is temporarily unavailable.",
    ErrorCode.MALFORMED_RESPONSE: "Invalid response from server. Please try again.",
    ErrorCode.ATTACHMENT_READ_FAILED: "File error: could not read the selected file.",
    ErrorCode.UNSUPPORTED_TYPE: "File is not supported. Only images are allowed.",
    ErrorCode.PERSISTENCE_DEGRADED: (
        "Could not save conversation history. "
        "Recent messages may not survive a restart."
    ),
    ErrorCode.TIMEOUT: "Connection test timed out.",
}

DEFAULT_UNKNOWN_MESSAGE = "An unexpected error occurred"

# Rejection reasons used by the attachment pipeline.
REJECTION_CODES: dict[str, ErrorCode] = {
    "TooManyFiles": ErrorCode.TOO_MANY_FILES,
    "TooLarge": ErrorCode.TOO_LARGE,
    "UnsupportedType": ErrorCode.UNSUPPORTED_TYPE,
    "ReadFailed": ErrorCode.ATTACHMENT_READ_FAILED,
}


@dataclass(frozen=True)
class ErrorKind:
    """A classified failure.

    ``status`` is only set for HTTP-derived kinds. ``detail`` carries the
    parameter of parameterised kinds: the server message for ``HttpError``,
    the raw text for ``Unknown`` and the configured limit for attachment
    rejections.
    """

    code: ErrorCode
    status: int | None = None
    detail: str = ""

    @property
    def message(self) -> str:
        """Return the fixed user-facing rendering of this kind."""
        if self.code is ErrorCode.HTTP_ERROR:
            prefix = f"API error ({self.status})"
            return f"{prefix}: {self.detail}" if self.detail else prefix
        if self.code is ErrorCode.TOO_MANY_FILES:
            return f"Maximum {self.detail or 10} files allowed at once."
        if self.code is ErrorCode.TOO_LARGE:
            if self.detail:
                return f"File is too large. Maximum size is {self.detail}."
            return "File is too large."
        if self.code is ErrorCode.UNKNOWN:
            return self.detail or DEFAULT_UNKNOWN_MESSAGE
        return _FIXED_MESSAGES[self.code]


def kind_for_status(status: int, message: str = "") -> ErrorKind:
    """Map a non-success HTTP status onto its error category."""
    if status == 401:
        return ErrorKind(ErrorCode.INVALID_CREDENTIAL, status=status)
    if status == 403:
        return ErrorKind(ErrorCode.FORBIDDEN, status=status)
    if status == 429:
        return ErrorKind(ErrorCode.RATE_LIMITED, status=status)
    if 500 <= status <= 599:
        return ErrorKind(ErrorCode.SERVER_UNAVAILABLE, status=status)
    return ErrorKind(ErrorCode.HTTP_ERROR, status=status, detail=message.strip())


def classify(raw_error: BaseException) -> ErrorKind:
    """Return the :class:`ErrorKind` for a raw failure. First match wins."""
    if isinstance(raw_error, httpx.TransportError):
        return ErrorKind(ErrorCode.NETWORK_UNREACHABLE)

    if isinstance(raw_error, HttpStatusError):
        return kind_for_status(raw_error.status, raw_error.message)
    if isinstance(raw_error, httpx.HTTPStatusError):
        return kind_for_status(raw_error.response.status_code, raw_error.response.reason_phrase)

    if isinstance(raw_error, (MalformedResponseError, json.JSONDecodeError)):
        return ErrorKind(ErrorCode.MALFORMED_RESPONSE)

    if isinstance(raw_error, AttachmentReadError):
        return ErrorKind(ErrorCode.ATTACHMENT_READ_FAILED)

    if isinstance(raw_error, PersistenceError):
        return ErrorKind(ErrorCode.PERSISTENCE_DEGRADED)

    if isinstance(raw_error, RequestTimeoutError):
        return ErrorKind(ErrorCode.TIMEOUT)

    if isinstance(raw_error, MissingCredentialError):
        return ErrorKind(ErrorCode.MISSING_CREDENTIAL)
    if isinstance(raw_error, MissingModelError):
        return ErrorKind(ErrorCode.MISSING_MODEL)

    return ErrorKind(ErrorCode.UNKNOWN, detail=str(raw_error).strip())
