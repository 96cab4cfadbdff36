"""Training job controller: submit, then poll the remote job to completion.

Two owned timers run while the job is live:
- the poll loop (one status request per interval while Queued/Active)
- the metrics loop (recomputes elapsed/throughput/ETA while Active)

Both are cancelled on success, failure, reset and close. Poll responses
carry a sequence number and are only applied in issue order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from imgsearch_console.client import RemoteClient
from imgsearch_console.config import (
    IMGSEARCH_METRICS_INTERVAL_SECONDS,
    IMGSEARCH_POLL_INTERVAL_SECONDS,
    IMGSEARCH_POLL_MAX_FAILURES,
)
from imgsearch_console.controllers.base import RemoteOperationController
from imgsearch_console.errors import (
    ImageSearchError,
    ProtocolError,
    RemoteJobError,
    TransportError,
)
from imgsearch_console.metrics import compute_metrics
from imgsearch_console.models import TrainStatusResponse
from imgsearch_console.notifications import NotificationCenter
from imgsearch_console.types import (
    JobMetrics,
    OperationState,
    Progress,
    Severity,
    TrainingSummary,
)

logger = logging.getLogger(__name__)

# Remote status string -> local state
STATUS_MAP: dict[str, OperationState] = {
    "queued": OperationState.QUEUED,
    "running": OperationState.ACTIVE,
    "done": OperationState.SUCCEEDED,
    "error": OperationState.FAILED,
}

_LIVE_STATES = (OperationState.QUEUED, OperationState.ACTIVE)


class TrainingJobController(RemoteOperationController[TrainingSummary]):
    name = "training"
    initial_state = OperationState.SUBMITTING

    def __init__(
        self,
        *,
        client: RemoteClient,
        notifications: NotificationCenter,
        poll_interval: float = IMGSEARCH_POLL_INTERVAL_SECONDS,
        metrics_interval: float = IMGSEARCH_METRICS_INTERVAL_SECONDS,
        max_poll_failures: int = IMGSEARCH_POLL_MAX_FAILURES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(client=client, notifications=notifications, clock=clock)
        self._poll_interval = poll_interval
        self._metrics_interval = metrics_interval
        self._max_poll_failures = max_poll_failures
        self._poll_task: asyncio.Task[None] | None = None
        self._metrics_task: asyncio.Task[None] | None = None
        self._clear_job_state()

    def _clear_job_state(self) -> None:
        self._metrics = JobMetrics()
        self._status_message = ""
        self._remote_message = ""
        self._issued_seq = 0
        self._applied_seq = 0
        self._poll_failures = 0
        self._poll_task = None
        self._metrics_task = None

    @property
    def metrics(self) -> JobMetrics:
        return self._metrics

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def remote_message(self) -> str:
        """Free-form detail the remote attached to its last status."""
        return self._remote_message

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    # -- Submission -----------------------------------------------------------

    async def _execute(self, payload: Any, generation: int) -> None:
        self._status_message = "Starting training job..."
        job_id = await self._client.start_training()
        if not self._is_current(generation):
            logger.info("training: discarding job id %s for abandoned submission", job_id)
            return

        op = self._operation
        op.correlation_id = job_id
        op._progress = Progress()
        self._transition(OperationState.QUEUED)
        self._status_message = "Job is queued and waiting to start."
        logger.info("training: job %s accepted", job_id)
        self._notifications.show(f"Training job {job_id} submitted.", Severity.SUCCESS)
        self._emit()
        self.start_polling()

    def start_polling(self) -> bool:
        """Start the poll loop for the current job.

        No-op (returns False) when the job is terminal, has no id, or is
        already being polled.
        """
        op = self._operation
        if self._closed or op.state not in _LIVE_STATES or not op.correlation_id:
            return False
        if self.is_polling:
            logger.debug("training: poll loop already running for %s", op.correlation_id)
            return False
        self._poll_task = self._spawn(
            self._poll_loop(self._generation, op.correlation_id), name="poll"
        )
        return True

    async def _poll_loop(self, generation: int, job_id: str) -> None:
        while self._is_current(generation) and self.state in _LIVE_STATES:
            await asyncio.sleep(self._poll_interval)
            if not self._is_current(generation):
                return
            try:
                await self._poll_once(generation, job_id)
            except Exception as e:
                logger.exception("training: status poll for %s crashed", job_id)
                if self._is_current(generation):
                    self._fail(ImageSearchError(f"Unexpected error while checking job status: {e}"))
                return

    async def _poll_once(self, generation: int, job_id: str) -> None:
        self._issued_seq += 1
        seq = self._issued_seq
        try:
            status = await self._client.training_status(job_id)
        except TransportError as e:
            if not self._is_current(generation):
                return
            self._poll_failures += 1
            logger.warning(
                "training: status poll %d/%d for %s failed: %s",
                self._poll_failures,
                self._max_poll_failures,
                job_id,
                e.message,
            )
            if self._poll_failures >= self._max_poll_failures:
                self._fail(
                    TransportError(
                        f"Lost contact with training job after {self._poll_failures} "
                        f"failed status checks: {e.message}",
                        status_code=e.status_code,
                        body_excerpt=e.body_excerpt,
                        detail=e.detail,
                    )
                )
            return
        except ProtocolError as e:
            if self._is_current(generation):
                self._fail(e)
            return

        if not self._is_current(generation) or self._operation.correlation_id != job_id:
            logger.debug("training: discarding status for abandoned job %s", job_id)
            return
        if seq <= self._applied_seq:
            logger.debug("training: discarding out-of-order status #%d", seq)
            return
        self._applied_seq = seq
        self._poll_failures = 0
        self._apply_status(job_id, status)

    def _apply_status(self, job_id: str, status: TrainStatusResponse) -> None:
        mapped = STATUS_MAP.get(status.status or "")
        if mapped is None:
            reported = "no" if not status.status else f"unknown ({status.status!r})"
            self._fail(ProtocolError(f"Server returned {reported} status for job {job_id}."))
            return

        op = self._operation
        op._progress = Progress(
            processed=status.processed,
            total=status.total,
            percent=status.progress,
        )
        self._remote_message = status.message or ""

        if mapped is OperationState.QUEUED:
            self._transition(OperationState.QUEUED)
            self._status_message = "Job is queued and waiting to start."
            self._emit()
        elif mapped is OperationState.ACTIVE:
            first_start = op.started_at is None
            if first_start:
                op.started_at = self._clock()
            changed = self._transition(OperationState.ACTIVE)
            self._status_message = f"Processing: {status.processed}/{status.total} images"
            self._refresh_metrics()
            if first_start:
                self._notifications.show("Training started.", Severity.SUCCESS)
            if changed:
                self._start_metrics()
            self._emit()
        elif mapped is OperationState.SUCCEEDED:
            self._refresh_metrics()
            self._status_message = f"Training complete! Processed {status.processed} images."
            self._succeed(
                TrainingSummary(
                    job_id=job_id,
                    processed=status.processed,
                    total=status.total,
                    message=status.message,
                )
            )
        else:
            self._refresh_metrics()
            self._fail(
                RemoteJobError(
                    f"Error: {status.message or 'An unknown error occurred during training.'}",
                    detail=status.message,
                )
            )

    # -- Metrics --------------------------------------------------------------

    def _start_metrics(self) -> None:
        if self._metrics_task is not None and not self._metrics_task.done():
            return
        self._metrics_task = self._spawn(self._metrics_loop(self._generation), name="metrics")

    async def _metrics_loop(self, generation: int) -> None:
        while self._is_current(generation) and self.state is OperationState.ACTIVE:
            await asyncio.sleep(self._metrics_interval)
            if not self._is_current(generation) or self.state is not OperationState.ACTIVE:
                return
            self._refresh_metrics()
            self._emit()

    def _refresh_metrics(self) -> None:
        op = self._operation
        # No epoch yet means the job never became active; keep metrics at rest.
        if op.started_at is None:
            return
        progress = op._progress or Progress()
        elapsed = max(0.0, self._clock() - op.started_at)
        self._metrics = compute_metrics(progress.processed, progress.total, elapsed)

    # -- Hooks ----------------------------------------------------------------

    def success_notification(self, result: TrainingSummary) -> tuple[str, Severity]:
        return f"Training complete! Processed {result.processed} images.", Severity.SUCCESS

    def failure_text(self, error: ImageSearchError) -> str:
        if self._operation.correlation_id is None:
            return f"Error starting job: {error.message}"
        return error.message

    def _on_failure(self, error: ImageSearchError) -> None:
        self._status_message = self.failure_text(error)

    def _on_begin(self) -> None:
        self._clear_job_state()

    def _on_cancel(self) -> None:
        self._clear_job_state()

    def _on_reset(self) -> None:
        self._clear_job_state()

    def _on_close(self) -> None:
        self._clear_job_state()
