"""Generic controller for operations submitted to the remote service.

Subclasses supply the submit shape and the result normalizer. The base
class owns the state machine, the generation token that turns late
responses into no-ops, background tasks, and teardown.

Every reset, resubmission or close bumps the generation. Code that
resumes after an ``await`` checks ``_is_current(generation)`` before
touching state, so a response that arrives for an abandoned operation is
dropped on the floor instead of being applied.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import Any, Generic, TypeVar

from imgsearch_console.client import RemoteClient
from imgsearch_console.errors import ImageSearchError, ValidationError
from imgsearch_console.notifications import NotificationCenter
from imgsearch_console.types import ErrorDetail, Operation, OperationState, Severity

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")
ControllerListener = Callable[["RemoteOperationController[Any]"], None]


class RemoteOperationController(ABC, Generic[ResultT]):
    name = "operation"
    initial_state = OperationState.SUBMITTING

    def __init__(
        self,
        *,
        client: RemoteClient,
        notifications: NotificationCenter,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._notifications = notifications
        self._clock = clock
        self._operation = Operation()
        self._generation = 0
        self._tasks: set[asyncio.Task[Any]] = set()
        self._listeners: list[ControllerListener] = []
        self._settled = asyncio.Event()
        self._settled.set()
        self._closed = False

    # -- Public state ---------------------------------------------------------

    @property
    def operation(self) -> Operation:
        return self._operation

    @property
    def state(self) -> OperationState:
        return self._operation.state

    @property
    def notifications(self) -> NotificationCenter:
        return self._notifications

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: ControllerListener) -> Callable[[], None]:
        """Register a re-render callback; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # -- User actions ---------------------------------------------------------

    async def submit(self, payload: Any = None) -> Operation:
        """Start a new operation.

        Ignored while one is already in flight. Local validation failures
        become a warning notification and leave the operation untouched;
        every other failure moves the operation to ``Failed``. Nothing is
        raised to the caller.
        """
        if self._closed:
            logger.warning("%s: submit after close ignored", self.name)
            return self._operation
        if self.state.is_in_flight:
            logger.warning("%s: submit ignored, operation already %s", self.name, self.state.value)
            return self._operation

        try:
            self.validate(payload)
        except ValidationError as e:
            logger.info("%s: rejected locally: %s", self.name, e.message)
            self._notifications.show(e.message, Severity.WARNING)
            return self._operation

        generation = self._begin()
        try:
            self._client.require_base_url()
            await self._execute(payload, generation)
        except asyncio.CancelledError:
            # Cancelled by the caller: back to Idle, keeping local input.
            if self._is_current(generation):
                logger.info("%s: submission cancelled", self.name)
                self._reset_operation()
                self._on_cancel()
                self._emit()
            raise
        except ImageSearchError as e:
            if self._is_current(generation):
                self._fail(e)
            else:
                logger.debug("%s: discarding failure for stale generation %d", self.name, generation)
        except Exception as e:
            logger.exception("%s: unexpected failure", self.name)
            if self._is_current(generation):
                self._fail(ImageSearchError(f"Unexpected error: {e}"))
        return self._operation

    async def retry(self, payload: Any = None) -> Operation:
        """Explicit user retry. Starts a fresh operation from a terminal state."""
        return await self.submit(payload)

    def reset(self) -> None:
        """Return to ``Idle`` ("try again" / "start new"), abandoning in-flight work."""
        self._reset_operation()
        self._on_reset()
        logger.info("%s: reset", self.name)
        self._emit()

    async def wait_until_settled(self, timeout: float | None = None) -> Operation:
        """Wait until the current operation is no longer in flight."""
        await asyncio.wait_for(self._settled.wait(), timeout)
        return self._operation

    async def aclose(self) -> None:
        """Tear down: stop all timers and ignore any response still on the wire."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        pending = self._cancel_tasks()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._on_close()
        self._settled.set()
        self._listeners.clear()
        logger.debug("%s: closed", self.name)

    async def __aenter__(self) -> RemoteOperationController[ResultT]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- Hooks ----------------------------------------------------------------

    def validate(self, payload: Any) -> None:
        """Raise ValidationError if the submission cannot be attempted."""

    @abstractmethod
    async def _execute(self, payload: Any, generation: int) -> None: ...

    @abstractmethod
    def success_notification(self, result: ResultT) -> tuple[str, Severity]: ...

    def failure_text(self, error: ImageSearchError) -> str:
        return error.message

    def _on_begin(self) -> None:
        pass

    def _on_failure(self, error: ImageSearchError) -> None:
        pass

    def _on_cancel(self) -> None:
        pass

    def _on_reset(self) -> None:
        pass

    def _on_close(self) -> None:
        pass

    # -- State machine --------------------------------------------------------

    def _begin(self) -> int:
        self._cancel_tasks()
        self._generation += 1
        self._operation = Operation(state=self.initial_state)
        self._settled.clear()
        self._on_begin()
        logger.info("%s: submitting (generation %d)", self.name, self._generation)
        self._emit()
        return self._generation

    def _reset_operation(self) -> None:
        self._generation += 1
        self._cancel_tasks()
        self._operation = Operation()
        self._settled.set()

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _transition(self, state: OperationState) -> bool:
        """Move to ``state``; returns whether the state actually changed."""
        changed = self._operation.state is not state
        if changed:
            logger.info(
                "%s: %s -> %s", self.name, self._operation.state.value, state.value
            )
        self._operation.state = state
        return changed

    def _succeed(self, result: ResultT) -> None:
        self._transition(OperationState.SUCCEEDED)
        self._operation._result = result
        self._finish()
        text, severity = self.success_notification(result)
        self._notifications.show(text, severity)
        self._emit()

    def _fail(self, error: ImageSearchError) -> None:
        self._transition(OperationState.FAILED)
        self._operation._error = ErrorDetail(kind=error.kind, message=error.message, raw=error.detail)
        logger.warning("%s failed (%s): %s", self.name, error.kind.value, error.message)
        self._on_failure(error)
        self._finish()
        self._notifications.show(self.failure_text(error), Severity.ERROR)
        self._emit()

    def _finish(self) -> None:
        self._cancel_tasks()
        self._settled.set()

    # -- Owned background tasks -----------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=f"{self.name}:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s: background task %s crashed", self.name, task.get_name(), exc_info=exc)

    def _cancel_tasks(self) -> list[asyncio.Task[Any]]:
        """Cancel every owned task except the one currently running."""
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        cancelled: list[asyncio.Task[Any]] = []
        for task in list(self._tasks):
            if task is current or task.done():
                continue
            task.cancel()
            cancelled.append(task)
        return cancelled

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("%s: listener failed", self.name)
