"""Exam-screen client: keeps a local countdown in step with the server timer.

One `ExamSyncLoop` belongs to one exam screen. It runs two periodic tasks:
an authoritative refresh that asks the server for the remaining time, and a
cosmetic one-second countdown between refreshes. Only the server decides when
an attempt ends; the local counter is overwritten on every refresh.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from app.core.config import settings
from app.core.timer import timer_status

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"submitted", "expired", "completed"}

Callback = Callable[..., Union[None, Awaitable[None]]]


class ApiError(Exception):
    """Non-2xx reply from the exam API, carrying the error envelope."""

    def __init__(self, status_code: int, code: str, message: str, action: str = "none", details: Optional[dict] = None):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.action = action
        self.details = details or {}
        super().__init__(f"{status_code} {code}: {message}")

    @property
    def retryable(self) -> bool:
        return self.action == "retry" or self.status_code >= 500


async def _call(callback: Optional[Callback], *args) -> None:
    if callback is None:
        return
    outcome = callback(*args)
    if inspect.isawaitable(outcome):
        await outcome


class AttemptApiClient:

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self._client.request(method, path, **kwargs)
        if response.status_code >= 400:
            try:
                error = response.json().get("error", {})
            except ValueError:
                error = {}
            raise ApiError(
                response.status_code,
                error.get("code", f"HTTP_{response.status_code}"),
                error.get("message", response.text),
                error.get("action", "none"),
                error.get("details"),
            )
        return response.json().get("data")

    async def get_timer(self, attempt_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/attempts/{attempt_id}/timer")

    async def save_answer(
        self, attempt_id: int, question_id: int, answer: Optional[str], current_question_index: Optional[int] = None
    ) -> Dict[str, Any]:
        payload = {"question_id": question_id, "answer": answer}
        if current_question_index is not None:
            payload["current_question_index"] = current_question_index
        return await self._request("PUT", f"/attempts/{attempt_id}/answers", json=payload)

    async def submit(self, attempt_id: int) -> Dict[str, Any]:
        return await self._request("POST", f"/attempts/{attempt_id}/submit")

    async def release_camera(self, attempt_id: int) -> Dict[str, Any]:
        return await self._request("PATCH", f"/attempts/{attempt_id}/camera", json={"enabled": False})

    async def aclose(self) -> None:
        await self._client.aclose()


class AnswerSaveDebouncer:
    """
    Coalesces rapid edits into one save per question.

    Each question keeps only its latest value; a save goes out once the
    question has been quiet for `delay` seconds. Saves are upserts on the
    server, so a transport failure is simply retried. An edit stays queued
    until the server confirms it or rejects it outright.
    """

    def __init__(
        self,
        api: AttemptApiClient,
        attempt_id: int,
        *,
        delay: float = settings.ANSWER_SAVE_DEBOUNCE_SECONDS,
        max_retries: int = 3,
        retry_backoff: float = 0.5,
        on_not_active: Optional[Callback] = None,
    ):
        self.api = api
        self.attempt_id = attempt_id
        self.delay = delay
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.on_not_active = on_not_active
        self.closing = False
        self.rejected = False
        self._latest: Dict[int, Dict[str, Any]] = {}
        self._timers: Dict[int, asyncio.Task] = {}

    @property
    def pending(self) -> int:
        return len(self._latest)

    def schedule(self, question_id: int, answer: Optional[str], current_question_index: Optional[int] = None) -> None:
        if self.closing:
            logger.debug(f"Dropping save for question {question_id}: attempt is closing")
            return
        self._latest[question_id] = {"answer": answer, "current_question_index": current_question_index}
        previous = self._timers.pop(question_id, None)
        if previous:
            previous.cancel()
        self._timers[question_id] = asyncio.create_task(self._save_later(question_id))

    async def _save_later(self, question_id: int) -> None:
        await asyncio.sleep(self.delay)
        self._timers.pop(question_id, None)
        await self._send(question_id)

    async def _send(self, question_id: int) -> None:
        payload = self._latest.pop(question_id, None)
        if payload is None:
            return

        for attempt in range(1, self.max_retries + 1):
            try:
                await self.api.save_answer(
                    self.attempt_id, question_id, payload["answer"], payload["current_question_index"]
                )
                return
            except httpx.TransportError as exc:
                logger.warning(f"Save for question {question_id} failed ({exc}), attempt {attempt}/{self.max_retries}")
            except ApiError as exc:
                if exc.code == "ATTEMPT_NOT_ACTIVE":
                    self.closing = True
                    self.rejected = True
                    self._latest.clear()
                    await _call(self.on_not_active)
                    return
                if not exc.retryable:
                    logger.error(f"Save for question {question_id} rejected: {exc}")
                    return
                logger.warning(f"Save for question {question_id} deferred ({exc}), attempt {attempt}/{self.max_retries}")
            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_backoff * attempt)

        # Keep the value for the next flush unless a newer edit replaced it.
        self._latest.setdefault(question_id, payload)

    async def flush(self) -> bool:
        """Send every queued edit now. Returns False while any edit is still unconfirmed."""
        if self.rejected:
            self._latest.clear()
            return True
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()
        await asyncio.gather(*(self._send(qid) for qid in list(self._latest)))
        return not self._latest

    def seal(self) -> None:
        """Stop taking new edits but keep the queued ones for `flush`."""
        self.closing = True
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()

    def close(self) -> None:
        self.closing = True
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()
        self._latest.clear()


@dataclass
class SyncState:
    remaining_seconds: Optional[int] = None
    timer_status: Optional[str] = None
    attempt_status: Optional[str] = None
    server_time: Optional[str] = None
    online: bool = True


class ExamSyncLoop:

    def __init__(
        self,
        api: AttemptApiClient,
        attempt_id: int,
        *,
        refresh_interval: float = settings.CLIENT_REFRESH_INTERVAL_SECONDS,
        tick_interval: float = settings.CLIENT_TICK_INTERVAL_SECONDS,
        on_update: Optional[Callback] = None,
        on_closed: Optional[Callback] = None,
    ):
        self.api = api
        self.attempt_id = attempt_id
        self.refresh_interval = refresh_interval
        self.tick_interval = tick_interval
        self.on_update = on_update
        self.on_closed = on_closed
        self.state = SyncState()
        self.answers = AnswerSaveDebouncer(api, attempt_id, on_not_active=self._handle_not_active)
        self.closing = False
        self.closed = False
        self.submit_result: Optional[Dict[str, Any]] = None
        self._pending_submit = False
        self._camera_released = False
        self._tasks: list = []
        self._background: Optional[asyncio.Task] = None
        self._refresh_lock = asyncio.Lock()
        self._submit_lock = asyncio.Lock()

    async def __aenter__(self) -> "ExamSyncLoop":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def acquire(self) -> None:
        if self._tasks:
            raise RuntimeError("ExamSyncLoop is already running")
        self._tasks = [
            asyncio.create_task(self._refresh_loop()),
            asyncio.create_task(self._tick_loop()),
        ]

    async def release(self) -> None:
        """Tear down both tasks and give the camera back. Safe to call more than once."""
        self.closing = True
        self.closed = True
        self.answers.close()
        await self._cancel_tasks()
        await self._release_camera()

    async def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        others = [t for t in self._tasks if t is not current and not t.done()]
        for task in others:
            task.cancel()
        if others:
            await asyncio.gather(*others, return_exceptions=True)

    async def _release_camera(self) -> None:
        if self._camera_released:
            return
        self._camera_released = True
        try:
            await self.api.release_camera(self.attempt_id)
        except (httpx.TransportError, ApiError) as exc:
            # The server also drops the camera flag when the attempt closes.
            logger.warning(f"Could not release camera for attempt {self.attempt_id}: {exc}")

    async def _refresh_loop(self) -> None:
        while not self.closed:
            await self.refresh_once()
            if self.closed:
                break
            await asyncio.sleep(self.refresh_interval)

    async def _tick_loop(self) -> None:
        while not self.closed:
            await asyncio.sleep(self.tick_interval)
            await self.tick_once()

    async def refresh_once(self) -> None:
        async with self._refresh_lock:
            if self.closed:
                return
            if self._pending_submit:
                await self.submit()
                return

            try:
                data = await self.api.get_timer(self.attempt_id)
            except httpx.TransportError as exc:
                if self.state.online:
                    logger.warning(f"Timer refresh for attempt {self.attempt_id} failed, going offline: {exc}")
                self.state.online = False
                return
            except ApiError as exc:
                logger.error(f"Timer refresh for attempt {self.attempt_id} rejected: {exc}")
                if exc.action == "redirect_to_result":
                    await self.submit()
                return

            self.state.online = True
            if self.closing:
                return

            self.state.remaining_seconds = data["remaining_seconds"]
            self.state.timer_status = data["timer_status"]
            self.state.attempt_status = data["attempt_status"]
            self.state.server_time = data.get("server_time")
            await _call(self.on_update, self.state)

        if self.state.timer_status == "expired" or self.state.attempt_status in TERMINAL_STATUSES:
            await self.submit()

    async def tick_once(self) -> None:
        if self.closed or self.state.remaining_seconds is None:
            return
        if self.state.remaining_seconds > 0:
            self.state.remaining_seconds -= 1
            self.state.timer_status = timer_status(self.state.remaining_seconds).value
            await _call(self.on_update, self.state)
        if self.state.remaining_seconds == 0 and self.state.online and not self.closing:
            await self.refresh_once()

    async def submit(self) -> Optional[Dict[str, Any]]:
        """Submit the attempt once; also the path taken when time runs out."""
        async with self._submit_lock:
            if self.closed:
                return self.submit_result

            self.closing = True
            self.answers.seal()
            if not await self.answers.flush():
                logger.warning(
                    f"Submit for attempt {self.attempt_id} waits on {self.answers.pending} unsaved answer(s)"
                )
                self.state.online = False
                self._pending_submit = True
                return None
            self.answers.close()

            try:
                result = await self.api.submit(self.attempt_id)
            except httpx.TransportError as exc:
                logger.warning(f"Submit for attempt {self.attempt_id} failed, will retry on next refresh: {exc}")
                self.state.online = False
                self._pending_submit = True
                return None
            except ApiError as exc:
                if exc.retryable:
                    self._pending_submit = True
                    return None
                logger.error(f"Submit for attempt {self.attempt_id} rejected: {exc}")
                result = None

            self._pending_submit = False
            self.submit_result = result
            if result:
                self.state.attempt_status = result.get("status")
            self.state.remaining_seconds = 0
            self.state.timer_status = "expired"
            self.closed = True

        await self._cancel_tasks()
        await self._release_camera()
        await _call(self.on_closed, self.submit_result)
        return self.submit_result

    async def _handle_not_active(self) -> None:
        if not self.closed:
            self._background = asyncio.create_task(self.submit())
