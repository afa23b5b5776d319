"""Request lifecycle: one outstanding chat-completion request at a time."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any

import httpx

from .errors import ErrorCode, ErrorKind, classify
from .exceptions import HttpStatusError, MalformedResponseError, RequestTimeoutError
from .models import Attachment, Cancelled, Completed, Failed, Outcome, Settings

LOGGER = logging.getLogger(__name__)

DEFAULT_INSTRUCTION = "Please analyze the uploaded files."
PROBE_PROMPT = "Hello"
PROBE_MAX_COMPLETION_TOKENS = 16
MAX_ERROR_DETAIL_CHARS = 500


class RequestStatus(str, Enum):
    """Lifecycle of the single live request."""

    IDLE = "idle"
    IN_FLIGHT = "in-flight"
    CANCELLED = "cancelled"


class CancellationHandle:
    """Cooperative abort token for one outbound request."""

    def __init__(self) -> None:
        self.requested = False
        self._task: asyncio.Task[Any] | None = None

    def bind(self, task: asyncio.Task[Any]) -> None:
        self._task = task

    def cancel(self) -> None:
        self.requested = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


@dataclass(frozen=True)
class RequestState:
    status: RequestStatus = RequestStatus.IDLE
    handle: CancellationHandle | None = None


class RequestController:
    """Build, issue and cancel chat-completion requests.

    Starting a send always cancels the previous one first, so at most one
    request is ever live. A superseded send resolves ``Cancelled`` even if
    its response already arrived.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        temperature: float = 0.7,
        max_completion_tokens: int = 2000,
        request_timeout: float = 120.0,
        connection_test_timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=request_timeout)
        self.temperature = temperature
        self.max_completion_tokens = max_completion_tokens
        self.request_timeout = request_timeout
        self.connection_test_timeout = connection_test_timeout
        self._state = RequestState()

    @property
    def state(self) -> RequestState:
        return self._state

    def is_in_flight(self) -> bool:
        return self._state.status is RequestStatus.IN_FLIGHT

    async def aclose(self) -> None:
        """Cancel any live request and close the owned HTTP client."""
        self.cancel()
        if self._owns_client:
            await self._client.aclose()

    def cancel(self) -> bool:
        """Abort the in-flight request. Returns False when nothing was live."""
        handle = self._state.handle
        if self._state.status is not RequestStatus.IN_FLIGHT or handle is None:
            return False
        self._state = RequestState(RequestStatus.CANCELLED, handle)
        handle.cancel()
        LOGGER.info("request.cancelled", extra={"event": "request.cancelled"})
        return True

    @staticmethod
    def validate(settings: Settings) -> ErrorKind | None:
        """Return the precondition failure for ``settings``, if any."""
        if not settings.api_key.strip():
            return ErrorKind(ErrorCode.MISSING_CREDENTIAL)
        if not settings.model.strip():
            return ErrorKind(ErrorCode.MISSING_MODEL)
        return None

    def build_payload(
        self, text: str, attachments: Sequence[Attachment], settings: Settings
    ) -> dict[str, Any]:
        """Build the JSON body: optional system entry, then one multi-part user entry."""
        messages: list[dict[str, Any]] = []
        if settings.system_prompt.strip():
            messages.append({"role": "system", "content": settings.system_prompt.strip()})

        parts: list[dict[str, Any]] = []
        if text.strip():
            parts.append({"type": "text", "text": text.strip()})
        for attachment in attachments:
            parts.append({"type": "image_url", "image_url": {"url": attachment.encoded_data}})
        if not parts:
            parts.append({"type": "text", "text": DEFAULT_INSTRUCTION})
        messages.append({"role": "user", "content": parts})

        return {
            "model": settings.model.strip(),
            "messages": messages,
            "temperature": self.temperature,
            "max_completion_tokens": self.max_completion_tokens,
            "stream": False,
        }

    async def send(
        self, text: str, attachments: Sequence[Attachment], settings: Settings
    ) -> Outcome:
        """Issue one chat completion and resolve it to an outcome.

        Request failures never raise; only the caller's own cancellation
        propagates.
        """
        self.cancel()

        precondition = self.validate(settings)
        if precondition is not None:
            LOGGER.info(
                "request.rejected",
                extra={"event": "request.rejected", "error_code": precondition.code.value},
            )
            return Failed(precondition)

        payload = self.build_payload(text, attachments, settings)
        handle = CancellationHandle()
        task = asyncio.create_task(self._post(settings, payload))
        handle.bind(task)
        self._state = RequestState(RequestStatus.IN_FLIGHT, handle)
        LOGGER.info(
            "request.start",
            extra={
                "event": "request.start",
                "provider": settings.provider,
                "model": payload["model"],
                "attachments": len(attachments),
            },
        )

        outcome: Outcome
        try:
            completion = await task
        except asyncio.CancelledError:
            if not handle.requested:
                # Our caller was cancelled, not the request.
                raise
            outcome = Cancelled()
        except Exception as exc:
            outcome = Cancelled() if handle.requested else self._failed(exc)
        else:
            outcome = Cancelled() if handle.requested else Completed(completion)
        finally:
            if self._state.handle is handle:
                self._state = RequestState()

        if isinstance(outcome, Completed):
            LOGGER.info(
                "request.completed",
                extra={"event": "request.completed", "chars": len(outcome.text)},
            )
        return outcome

    async def test_connection(self, settings: Settings) -> Outcome:
        """Send a fixed probe, racing it against a wall-clock timeout.

        Independent of the send lifecycle: it neither cancels nor is
        cancelled by a regular send.
        """
        precondition = self.validate(settings)
        if precondition is not None:
            return Failed(precondition)

        payload = {
            "model": settings.model.strip(),
            "messages": [{"role": "user", "content": PROBE_PROMPT}],
            "max_completion_tokens": PROBE_MAX_COMPLETION_TOKENS,
            "stream": False,
        }
        task = asyncio.create_task(self._post(settings, payload))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.connection_test_timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task not in done:
            task.cancel()
            # The probe may settle between the timer and the cancel; the timer still wins.
            await asyncio.gather(task, return_exceptions=True)
            LOGGER.warning(
                "request.probe_timeout",
                extra={
                    "event": "request.probe_timeout",
                    "timeout_seconds": self.connection_test_timeout,
                },
            )
            return Failed(classify(RequestTimeoutError("Connection test timed out")))

        try:
            completion = task.result()
        except Exception as exc:
            return self._failed(exc)
        return Completed(completion)

    async def _post(self, settings: Settings, payload: dict[str, Any]) -> str:
        response = await self._client.post(
            settings.endpoint,
            json=payload,
            headers={
                "Authorization": f"Bearer {settings.api_key.strip()}",
                "Content-Type": "application/json",
            },
            timeout=self.request_timeout,
        )
        if not response.is_success:
            raise HttpStatusError(response.status_code, self._error_detail(response))
        return self._extract_completion(response)

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        """Best-effort server message from an error body."""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                return error["message"].strip()
            if isinstance(error, str) and error.strip():
                return error.strip()
            if isinstance(body.get("message"), str):
                return body["message"].strip()
        try:
            text = response.text.strip()
        except UnicodeDecodeError:
            text = ""
        return text[:MAX_ERROR_DETAIL_CHARS] or response.reason_phrase

    @staticmethod
    def _extract_completion(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponseError("Response body is not JSON.") from exc

        choices = body.get("choices") if isinstance(body, dict) else None
        first = choices[0] if isinstance(choices, list) and choices else None
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise MalformedResponseError("Response has no choices[0].message.content.")
        return content

    @staticmethod
    def _failed(exc: Exception) -> Failed:
        kind = classify(exc)
        LOGGER.warning(
            "request.failed",
            extra={
                "event": "request.failed",
                "error_code": kind.code.value,
                "status": kind.status,
                "error_type": type(exc).__name__,
            },
        )
        return Failed(kind)
