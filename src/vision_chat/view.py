"""Outbound notifications from the chat core to whatever renders it."""

from __future__ import annotations

import logging
from typing import Literal

from .models import Attachment, Message

LOGGER = logging.getLogger(__name__)

NoticeLevel = Literal["info", "success", "warning"]


class ChatView:
    """UI collaborator. Every method is fire-and-forget and defaults to a no-op.

    Subclass and override what your toolkit renders; the session never
    reads a return value.
    """

    def render_message(self, message: Message) -> None:
        pass

    def render_error(self, text: str) -> None:
        pass

    def notify(self, text: str, level: NoticeLevel = "info") -> None:
        pass

    def set_loading(self, loading: bool) -> None:
        pass

    def thumbnail_added(self, attachment: Attachment) -> None:
        pass

    def thumbnail_removed(self, attachment_id: str) -> None:
        pass

    def conversation_cleared(self) -> None:
        pass


class LoggingChatView(ChatView):
    """Headless view that records every notification in the log."""

    def render_message(self, message: Message) -> None:
        LOGGER.info(
            "view.message",
            extra={
                "event": "view.message",
                "message_id": message.id,
                "role": message.role.value,
                "attachments": len(message.attachments),
                "is_error": message.is_error,
            },
        )

    def render_error(self, text: str) -> None:
        LOGGER.warning("view.error", extra={"event": "view.error", "text": text})

    def notify(self, text: str, level: NoticeLevel = "info") -> None:
        LOGGER.info("view.notice", extra={"event": "view.notice", "level": level, "text": text})

    def set_loading(self, loading: bool) -> None:
        LOGGER.debug("view.loading", extra={"event": "view.loading", "loading": loading})

    def thumbnail_added(self, attachment: Attachment) -> None:
        LOGGER.debug(
            "view.thumbnail_added",
            extra={"event": "view.thumbnail_added", "attachment_id": attachment.id},
        )

    def thumbnail_removed(self, attachment_id: str) -> None:
        LOGGER.debug(
            "view.thumbnail_removed",
            extra={"event": "view.thumbnail_removed", "attachment_id": attachment_id},
        )

    def conversation_cleared(self) -> None:
        LOGGER.info("view.cleared", extra={"event": "view.cleared"})
