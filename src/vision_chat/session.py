"""Session façade: the single entry point used by a UI layer.

The session owns the conversation store, attachment pipeline, request
controller and settings for one application run, and translates user
intents (send, cancel, clear, test connection) into calls on them. Results
flow back to the UI exclusively through :class:`~vision_chat.view.ChatView`.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
import logging
from typing import Any

import httpx

from .attachments import AttachmentPipeline, FileHandle
from .config import StorageConfig
from .controller import RequestController
from .conversation import ConversationStore
from .errors import ErrorKind
from .models import Completed, Failed, Message, Outcome, Role, StagingResult
from .settings import SettingsStore
from .storage import KeyValueStorage
from .view import ChatView, LoggingChatView

LOGGER = logging.getLogger(__name__)

EMPTY_SEND_WARNING = "Please enter a message or select an image to send."


class ChatSession:
    """Coordinate one conversation between a UI and the completion endpoint."""

    def __init__(
        self,
        *,
        store: ConversationStore,
        pipeline: AttachmentPipeline,
        controller: RequestController,
        settings: SettingsStore,
        view: ChatView | None = None,
    ) -> None:
        self.store = store
        self.pipeline = pipeline
        self.controller = controller
        self.settings = settings
        self.view = view or LoggingChatView()

        self.pipeline.on_thumbnail_added(self.view.thumbnail_added)
        self.pipeline.on_thumbnail_removed(self.view.thumbnail_removed)
        self.store.on_degraded(self._report_degraded)

    @property
    def messages(self) -> list[Message]:
        return self.store.all()

    def restore(self) -> list[Message]:
        """Load the persisted conversation and render it."""
        messages = self.store.restore()
        for message in messages:
            self._notify(self.view.render_message, message)
        return messages

    async def stage_files(self, files: Sequence[FileHandle]) -> StagingResult:
        """Validate and stage user-selected files for the next send."""
        result = await self.pipeline.stage(files)
        for rejection in result.rejected:
            self._notify(self.view.render_error, rejection.message)
        if result.accepted:
            count = len(self.pipeline.pending)
            self._notify(self.view.notify, f"{count} image(s) ready to send.", "info")
        return result

    def unstage(self, attachment_id: str) -> bool:
        return self.pipeline.unstage(attachment_id)

    async def send_intent(self, text: str) -> Outcome | None:
        """Send ``text`` plus all staged attachments.

        Returns ``None`` when there was nothing to send. Every failure is
        recorded in the transcript as an assistant turn; cancellation is not.
        """
        text = text.strip()
        attachments = self.pipeline.pending
        if not text and not attachments:
            self._notify(self.view.notify, EMPTY_SEND_WARNING, "warning")
            return None

        # Staged files belong to this attempt whatever its fate.
        self.pipeline.clear()
        self.controller.cancel()

        settings = self.settings.load()
        precondition = self.controller.validate(settings)
        if precondition is not None:
            self._record_failure(precondition)
            return Failed(precondition)

        self._append(Message(role=Role.USER, text=text, attachments=attachments))
        self._notify(self.view.set_loading, True)
        try:
            outcome = await self.controller.send(text, attachments, settings)
        finally:
            # A newer send may own the loading indicator by now.
            if not self.controller.is_in_flight():
                self._notify(self.view.set_loading, False)

        if isinstance(outcome, Completed):
            self._append(Message(role=Role.ASSISTANT, text=outcome.text))
        elif isinstance(outcome, Failed):
            self._record_failure(outcome.error)
        return outcome

    def cancel_intent(self) -> bool:
        """Abort the in-flight send, if any. Never reported as an error."""
        cancelled = self.controller.cancel()
        self._notify(self.view.set_loading, False)
        if cancelled:
            self._notify(self.view.notify, "Request cancelled", "info")
        return cancelled

    def clear_intent(self) -> None:
        """Forget the whole conversation and any staged files."""
        self.controller.cancel()
        self.store.clear()
        self.pipeline.clear()
        self._notify(self.view.set_loading, False)
        self._notify(self.view.conversation_cleared)
        self._notify(self.view.notify, "Conversation cleared", "info")
        LOGGER.info("session.cleared", extra={"event": "session.cleared"})

    async def test_connection_intent(self) -> Outcome:
        """Probe the endpoint with the current settings."""
        self._notify(self.view.set_loading, True)
        try:
            outcome = await self.controller.test_connection(self.settings.load())
        finally:
            if not self.controller.is_in_flight():
                self._notify(self.view.set_loading, False)

        if isinstance(outcome, Failed):
            self._notify(self.view.render_error, outcome.error.message)
        else:
            self._notify(self.view.notify, "API connection successful!", "success")
        return outcome

    async def aclose(self) -> None:
        await self.controller.aclose()

    def _append(self, message: Message) -> Message:
        stored = self.store.append(message)
        self._notify(self.view.render_message, stored)
        return stored

    def _record_failure(self, kind: ErrorKind) -> None:
        self._append(Message.error(kind))
        self._notify(self.view.render_error, kind.message)

    def _report_degraded(self, kind: ErrorKind) -> None:
        self._notify(self.view.notify, kind.message, "warning")

    @staticmethod
    def _notify(callback: Callable[..., None], *args: object) -> None:
        try:
            callback(*args)
        except Exception as exc:
            LOGGER.error(
                "session.view_failed",
                extra={
                    "event": "session.view_failed",
                    "callback": getattr(callback, "__name__", repr(callback)),
                    "error": str(exc),
                },
            )


def build_session(
    config: dict[str, Any],
    view: ChatView | None = None,
    client: httpx.AsyncClient | None = None,
) -> ChatSession:
    """Construct a session and all of its collaborators from loaded config.

    Logging is left to the embedding application: call
    ``configure_logging(config["logging"])`` once at startup, before building
    the session.
    """
    api_cfg = config.get("api", {})
    attachments_cfg = config.get("attachments", {})
    storage = KeyValueStorage(config.get("storage", {}).get("path", StorageConfig().path))

    controller = RequestController(
        client,
        temperature=float(api_cfg.get("temperature", 0.7)),
        max_completion_tokens=int(api_cfg.get("max_completion_tokens", 2000)),
        request_timeout=float(api_cfg.get("request_timeout_seconds", 120.0)),
        connection_test_timeout=float(api_cfg.get("connection_test_timeout_seconds", 10.0)),
    )
    pipeline = AttachmentPipeline(
        max_count=int(attachments_cfg.get("max_count", 10)),
        max_bytes=int(attachments_cfg.get("max_bytes", 10 * 1024 * 1024)),
        allowed_type_prefixes=attachments_cfg.get("allowed_type_prefixes", ["image/"]),
    )
    return ChatSession(
        store=ConversationStore(storage),
        pipeline=pipeline,
        controller=controller,
        settings=SettingsStore(storage, api_cfg),
        view=view,
    )
