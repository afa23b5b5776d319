"""End-to-end tests for the session facade with a mocked endpoint."""

from __future__ import annotations

import asyncio
from pathlib import Path
import tempfile
import unittest
from unittest import mock

import httpx

from vision_chat.config import DEFAULT_CONFIG, StorageConfig
from vision_chat.errors import ErrorCode
from vision_chat.exceptions import PersistenceError
from vision_chat.models import Attachment, Cancelled, Completed, Failed, Message, Role
from vision_chat.session import EMPTY_SEND_WARNING, build_session
from vision_chat.view import ChatView

MIB = 1024 * 1024


class RecordingView(ChatView):
    """Collects every notification the session emits."""

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.errors: list[str] = []
        self.notices: list[tuple[str, str]] = []
        self.loading: list[bool] = []
        self.thumbnails: list[str] = []
        self.removed: list[str] = []
        self.cleared = 0

    def render_message(self, message: Message) -> None:
        self.messages.append(message)

    def render_error(self, text: str) -> None:
        self.errors.append(text)

    def notify(self, text: str, level: str = "info") -> None:
        self.notices.append((level, text))

    def set_loading(self, loading: bool) -> None:
        self.loading.append(loading)

    def thumbnail_added(self, attachment: Attachment) -> None:
        self.thumbnails.append(attachment.id)

    def thumbnail_removed(self, attachment_id: str) -> None:
        self.removed.append(attachment_id)

    def conversation_cleared(self) -> None:
        self.cleared += 1


class FakeFile:
    def __init__(self, name: str, size: int | None = None, data: bytes = b"\x89PNG") -> None:
        self.name = name
        self.mime_type = "image/png"
        self.data = data
        self.size = len(data) if size is None else size

    async def read(self) -> bytes:
        return self.data


async def wait_for(condition) -> None:
    for _ in range(100):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


class SessionTestCase(unittest.IsolatedAsyncioTestCase):
    """Shared fixture: a session over temporary storage and a mock transport."""

    async def asyncSetUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.requests: list[httpx.Request] = []
        self.status = 200
        self.reply = "hi there"
        self.gate: asyncio.Event | None = None

        async def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if self.gate is not None:
                await self.gate.wait()
            if self.status != 200:
                return httpx.Response(self.status, json={"error": {"message": "slow down"}})
            return httpx.Response(
                200, json={"choices": [{"message": {"content": self.reply}}]}
            )

        self.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        config = dict(DEFAULT_CONFIG)
        config["storage"] = {"path": str(Path(self._temp_dir.name) / "storage.json")}
        self.config = config
        self.view = RecordingView()
        self.session = build_session(config, view=self.view, client=self.client)

    async def asyncTearDown(self) -> None:
        await self.session.aclose()
        await self.client.aclose()
        self._temp_dir.cleanup()

    def set_credential(self) -> None:
        self.session.settings.save_api_key("gsk_test_0123456789")

    def transcript(self) -> list[tuple[Role, str]]:
        return [(m.role, m.text) for m in self.session.messages]


class SendScenarioTests(SessionTestCase):
    """Validate the main send paths end to end."""

    async def test_successful_send_records_both_turns(self) -> None:
        self.set_credential()
        outcome = await self.session.send_intent("hello")

        self.assertEqual(outcome, Completed("hi there"))
        self.assertEqual(
            self.transcript(), [(Role.USER, "hello"), (Role.ASSISTANT, "hi there")]
        )
        self.assertEqual([m.id for m in self.session.messages], [1, 2])
        self.assertEqual(self.view.loading, [True, False])
        self.assertEqual(self.view.errors, [])

    async def test_missing_credential_records_only_the_error_turn(self) -> None:
        outcome = await self.session.send_intent("hello")

        self.assertIsInstance(outcome, Failed)
        self.assertEqual(outcome.error.code, ErrorCode.MISSING_CREDENTIAL)
        self.assertEqual(self.requests, [])
        self.assertEqual(len(self.session.messages), 1)
        error_turn = self.session.messages[0]
        self.assertEqual(error_turn.role, Role.ASSISTANT)
        self.assertTrue(error_turn.is_error)
        self.assertEqual(self.view.errors, [outcome.error.message])

    async def test_rate_limit_appends_fixed_message(self) -> None:
        self.set_credential()
        self.status = 429
        with self.assertLogs("vision_chat.controller", level="WARNING"):
            outcome = await self.session.send_intent("hello")

        self.assertEqual(outcome.error.code, ErrorCode.RATE_LIMITED)
        last = self.session.messages[-1]
        self.assertEqual(last.role, Role.ASSISTANT)
        self.assertTrue(last.is_error)
        self.assertEqual(
            last.text, "Rate limit exceeded. Please wait a moment before trying again."
        )

    async def test_cancel_before_reply_appends_nothing(self) -> None:
        self.set_credential()
        self.gate = asyncio.Event()
        pending = asyncio.create_task(self.session.send_intent("hello"))
        for _ in range(100):
            if self.session.controller.is_in_flight():
                break
            await asyncio.sleep(0)

        self.assertTrue(self.session.cancel_intent())
        self.assertEqual(await pending, Cancelled())
        self.assertEqual(self.transcript(), [(Role.USER, "hello")])
        self.assertEqual(self.view.errors, [])
        self.assertIn(("info", "Request cancelled"), self.view.notices)
        self.assertFalse(self.view.loading[-1])

    async def test_empty_send_is_refused_with_warning(self) -> None:
        self.set_credential()
        outcome = await self.session.send_intent("   ")
        self.assertIsNone(outcome)
        self.assertEqual(self.requests, [])
        self.assertEqual(self.session.messages, [])
        self.assertEqual(self.view.notices, [("warning", EMPTY_SEND_WARNING)])

    async def test_attachments_are_sent_once_then_cleared(self) -> None:
        self.set_credential()
        await self.session.stage_files([FakeFile("a.png"), FakeFile("b.png")])
        self.assertIn(("info", "2 image(s) ready to send."), self.view.notices)

        await self.session.send_intent("")
        user_turn = self.session.messages[0]
        self.assertEqual([a.name for a in user_turn.attachments], ["a.png", "b.png"])
        self.assertEqual(self.session.pipeline.pending, ())
        self.assertEqual(len(self.view.removed), 2)

        await self.session.send_intent("follow up")
        self.assertEqual(self.session.messages[-2].attachments, ())

    async def test_degraded_persistence_is_reported_but_send_succeeds(self) -> None:
        self.set_credential()
        with mock.patch.object(
            self.session.store.storage, "set", side_effect=PersistenceError("read-only")
        ):
            with self.assertLogs("vision_chat.conversation", level="WARNING"):
                outcome = await self.session.send_intent("hello")

        self.assertIsInstance(outcome, Completed)
        self.assertEqual(len(self.session.messages), 2)
        warnings = [text for level, text in self.view.notices if level == "warning"]
        self.assertTrue(warnings)
        self.assertTrue(all("Could not save conversation history" in w for w in warnings))


class StagingScenarioTests(SessionTestCase):
    """Validate rejection reporting through the view."""

    async def test_oversized_file_is_rejected_without_thumbnail(self) -> None:
        result = await self.session.stage_files([FakeFile("huge.png", size=11 * MIB)])

        self.assertEqual(result.rejected[0].reason, "TooLarge")
        self.assertEqual(self.session.pipeline.pending, ())
        self.assertEqual(self.view.thumbnails, [])
        self.assertEqual(len(self.view.errors), 1)
        self.assertIn("huge.png", self.view.errors[0])

    async def test_unstage_notifies_view(self) -> None:
        result = await self.session.stage_files([FakeFile("a.png")])
        attachment_id = result.accepted[0].id
        self.assertEqual(self.view.thumbnails, [attachment_id])

        self.assertTrue(self.session.unstage(attachment_id))
        self.assertEqual(self.view.removed, [attachment_id])


class LifecycleTests(SessionTestCase):
    """Validate clear, restore and the connection probe."""

    async def test_clear_empties_everything(self) -> None:
        self.set_credential()
        await self.session.send_intent("hello")
        await self.session.stage_files([FakeFile("a.png")])

        self.session.clear_intent()
        self.assertEqual(self.session.messages, [])
        self.assertEqual(self.session.pipeline.pending, ())
        self.assertEqual(self.view.cleared, 1)
        self.assertIn(("info", "Conversation cleared"), self.view.notices)

        await self.session.send_intent("again")
        self.assertEqual(self.session.messages[0].id, 1)

    async def test_restore_rerenders_persisted_conversation(self) -> None:
        self.set_credential()
        await self.session.send_intent("hello")

        view = RecordingView()
        restored = build_session(self.config, view=view, client=self.client)
        messages = restored.restore()

        self.assertEqual([m.text for m in messages], ["hello", "hi there"])
        self.assertEqual([m.text for m in view.messages], ["hello", "hi there"])

    async def test_connection_probe_success_notifies(self) -> None:
        self.set_credential()
        outcome = await self.session.test_connection_intent()
        self.assertIsInstance(outcome, Completed)
        self.assertIn(("success", "API connection successful!"), self.view.notices)
        self.assertEqual(self.session.messages, [])

    async def test_connection_probe_failure_renders_error(self) -> None:
        outcome = await self.session.test_connection_intent()
        self.assertEqual(outcome.error.code, ErrorCode.MISSING_CREDENTIAL)
        self.assertEqual(self.view.errors, [outcome.error.message])
        self.assertEqual(self.session.messages, [])

    async def test_clear_cancels_in_flight_send(self) -> None:
        self.set_credential()
        self.gate = asyncio.Event()
        pending = asyncio.create_task(self.session.send_intent("one"))
        await wait_for(self.session.controller.is_in_flight)

        self.session.clear_intent()
        self.gate.set()

        self.assertEqual(await pending, Cancelled())
        self.assertEqual(self.session.messages, [])
        self.assertEqual(self.view.errors, [])
        self.assertFalse(self.view.loading[-1])

    async def test_second_send_supersedes_the_first(self) -> None:
        self.set_credential()
        self.gate = asyncio.Event()
        first = asyncio.create_task(self.session.send_intent("one"))
        await wait_for(self.session.controller.is_in_flight)

        second = asyncio.create_task(self.session.send_intent("two"))
        await wait_for(lambda: len(self.session.messages) == 2)
        self.gate.set()

        self.assertEqual(await first, Cancelled())
        self.assertEqual(await second, Completed("hi there"))
        self.assertEqual(
            self.transcript(),
            [(Role.USER, "one"), (Role.USER, "two"), (Role.ASSISTANT, "hi there")],
        )
        self.assertEqual(self.view.loading, [True, True, False])
        self.assertEqual(self.view.errors, [])

    async def test_failing_view_does_not_break_send(self) -> None:
        class BrokenView(RecordingView):
            def render_message(self, message: Message) -> None:
                raise RuntimeError("widget gone")

        self.set_credential()
        session = build_session(self.config, view=BrokenView(), client=self.client)
        with self.assertLogs("vision_chat.session", level="ERROR") as logs:
            outcome = await session.send_intent("hi")

        self.assertEqual(outcome, Completed("hi there"))
        self.assertEqual(len(self.requests), 1)
        self.assertEqual([m.text for m in session.messages], ["hi", "hi there"])
        self.assertTrue(any("session.view_failed" in line for line in logs.output))

    async def test_storage_defaults_to_configured_state_path(self) -> None:
        session = build_session({"api": DEFAULT_CONFIG["api"]}, client=self.client)
        self.assertEqual(
            session.store.storage.path, Path(StorageConfig().path).expanduser()
        )


if __name__ == "__main__":
    unittest.main()
