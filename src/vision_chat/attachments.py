"""Attachment staging: validation, concurrent reading and inline encoding.

Files selected by the user are validated (batch count, size, MIME type),
read concurrently, and encoded as self-describing ``data:`` URLs. Accepted
attachments are held in an ordered staging set until the next send.
"""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Callable, Sequence
import logging
import mimetypes
from pathlib import Path
from typing import Protocol

from .exceptions import AttachmentReadError
from .models import Attachment, Rejection, StagingResult

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_COUNT = 10
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MiB
DEFAULT_ALLOWED_PREFIXES: tuple[str, ...] = ("image/",)


class FileHandle(Protocol):
    """A user-selected file whose bytes can be read asynchronously."""

    name: str
    size: int
    mime_type: str

    async def read(self) -> bytes: ...


class LocalFile:
    """File handle for a path on the local filesystem."""

    def __init__(self, path: str | Path, mime_type: str | None = None) -> None:
        self.path = Path(path).expanduser()
        self.name = self.path.name
        try:
            self.size = self.path.stat().st_size
        except OSError:
            # Unreadable files are reported when read, not when selected.
            self.size = 0
        guessed, _ = mimetypes.guess_type(self.name)
        self.mime_type = mime_type or guessed or ""

    async def read(self) -> bytes:
        return await asyncio.to_thread(self.path.read_bytes)


def encode_data_url(mime_type: str, data: bytes) -> str:
    """Return ``data`` as a ``data:<mime>;base64,...`` URL."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def format_size_limit(max_bytes: int) -> str:
    """Render a byte ceiling the way users expect to read it (``10MB``)."""
    return f"{max_bytes / (1024 * 1024):g}MB"


class AttachmentPipeline:
    """Validate, encode and stage image attachments for the next send."""

    def __init__(
        self,
        *,
        max_count: int = DEFAULT_MAX_COUNT,
        max_bytes: int = DEFAULT_MAX_BYTES,
        allowed_type_prefixes: Sequence[str] = DEFAULT_ALLOWED_PREFIXES,
    ) -> None:
        self.max_count = max(1, max_count)
        self.max_bytes = max(1, max_bytes)
        self.allowed_type_prefixes = tuple(p.lower() for p in allowed_type_prefixes)
        self._pending: dict[str, Attachment] = {}
        self._on_added: Callable[[Attachment], None] | None = None
        self._on_removed: Callable[[str], None] | None = None

    def on_thumbnail_added(self, callback: Callable[[Attachment], None]) -> None:
        """Register callback fired once per accepted attachment."""
        self._on_added = callback

    def on_thumbnail_removed(self, callback: Callable[[str], None]) -> None:
        """Register callback fired with the id of each unstaged attachment."""
        self._on_removed = callback

    @property
    def pending(self) -> tuple[Attachment, ...]:
        """Staged attachments in selection order."""
        return tuple(self._pending.values())

    def has_pending(self) -> bool:
        return bool(self._pending)

    def validate(self, handle: FileHandle) -> Rejection | None:
        """Return a rejection for ``handle`` or ``None`` when it may be read."""
        if handle.size > self.max_bytes:
            return Rejection(
                "TooLarge", file_name=handle.name, detail=format_size_limit(self.max_bytes)
            )
        mime_type = (handle.mime_type or "").lower()
        if not mime_type or not mime_type.startswith(self.allowed_type_prefixes):
            return Rejection("UnsupportedType", file_name=handle.name)
        return None

    async def _encode(self, handle: FileHandle) -> Attachment:
        try:
            data = await handle.read()
        except OSError as exc:
            raise AttachmentReadError(f"Failed to read file: {exc}") from exc
        if len(data) > self.max_bytes:
            raise _SizeExceeded(len(data))
        return Attachment(
            name=handle.name,
            mime_type=handle.mime_type.lower(),
            size_bytes=len(data),
            encoded_data=encode_data_url(handle.mime_type.lower(), data),
        )

    async def stage(self, files: Sequence[FileHandle]) -> StagingResult:
        """Validate and encode ``files``; accepted ones join the staging set.

        An oversized batch is refused as a whole. Otherwise each file stands
        alone: a rejected or unreadable file never affects its neighbours.
        """
        if not files:
            return StagingResult()

        if len(files) > self.max_count:
            LOGGER.warning(
                "attachments.rejected",
                extra={
                    "event": "attachments.rejected",
                    "reason": "TooManyFiles",
                    "count": len(files),
                    "max_count": self.max_count,
                },
            )
            return StagingResult(
                rejected=(Rejection("TooManyFiles", detail=str(self.max_count)),)
            )

        rejected: list[Rejection] = []
        readable: list[FileHandle] = []
        for handle in files:
            rejection = self.validate(handle)
            if rejection is None:
                readable.append(handle)
            else:
                rejected.append(rejection)

        results = await asyncio.gather(
            *(self._encode(handle) for handle in readable), return_exceptions=True
        )

        accepted: list[Attachment] = []
        for handle, result in zip(readable, results):
            if isinstance(result, Attachment):
                accepted.append(result)
            elif isinstance(result, _SizeExceeded):
                rejected.append(
                    Rejection(
                        "TooLarge",
                        file_name=handle.name,
                        detail=format_size_limit(self.max_bytes),
                    )
                )
            else:
                rejected.append(Rejection("ReadFailed", file_name=handle.name))
                LOGGER.warning(
                    "attachments.read_failed",
                    extra={
                        "event": "attachments.read_failed",
                        "file": handle.name,
                        "error_type": type(result).__name__,
                        "error": str(result),
                    },
                )

        for rejection in rejected:
            if rejection.reason != "ReadFailed":
                LOGGER.info(
                    "attachments.rejected",
                    extra={
                        "event": "attachments.rejected",
                        "reason": rejection.reason,
                        "file": rejection.file_name,
                    },
                )

        for attachment in accepted:
            self._pending[attachment.id] = attachment
            self._notify(self._on_added, attachment)

        return StagingResult(accepted=tuple(accepted), rejected=tuple(rejected))

    def unstage(self, attachment_id: str) -> bool:
        """Remove one pending attachment. Returns False when the id is unknown."""
        if self._pending.pop(attachment_id, None) is None:
            return False
        self._notify(self._on_removed, attachment_id)
        return True

    def clear(self) -> None:
        """Empty the staging set."""
        removed = list(self._pending)
        self._pending.clear()
        for attachment_id in removed:
            self._notify(self._on_removed, attachment_id)

    @staticmethod
    def _notify(callback: Callable | None, value: object) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception as exc:
            LOGGER.error(f"Thumbnail callback error: {exc}")


class _SizeExceeded(Exception):
    """Bytes read exceed the ceiling even though the declared size did not."""

    def __init__(self, size: int) -> None:
        super().__init__(f"read {size} bytes")
        self.size = size
