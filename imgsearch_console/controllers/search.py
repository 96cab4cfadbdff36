"""Similarity search: one image in, one ranked result list out."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Sequence
from typing import Any

from imgsearch_console.client import RemoteClient
from imgsearch_console.controllers.base import RemoteOperationController
from imgsearch_console.errors import ImageSearchError, TransportError, ValidationError
from imgsearch_console.intake import FileIntake, PreviewHandle
from imgsearch_console.models import SearchHit
from imgsearch_console.notifications import NotificationCenter
from imgsearch_console.types import OperationState, RankedResult, SelectedFile, Severity

logger = logging.getLogger(__name__)


def _clamp_score(score: float) -> float:
    if not math.isfinite(score):
        return 0.0
    return min(1.0, max(0.0, score))


def normalize_hits(hits: Sequence[SearchHit]) -> list[RankedResult]:
    """Clamp scores to [0, 1] and rank by descending score (stable for ties)."""
    ranked = [RankedResult(locator=h.path, score=_clamp_score(h.score)) for h in hits]
    ranked.sort(key=lambda r: r.score, reverse=True)
    return ranked


class ImageSearchController(RemoteOperationController[list[RankedResult]]):
    name = "search"
    initial_state = OperationState.ACTIVE  # no server-side job to queue behind

    def __init__(
        self,
        *,
        client: RemoteClient,
        notifications: NotificationCenter,
        intake: FileIntake,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(client=client, notifications=notifications, clock=clock)
        self._intake = intake
        self._selected: SelectedFile | None = None
        self._preview: PreviewHandle | None = None

    @property
    def selected_file(self) -> SelectedFile | None:
        return self._selected

    @property
    def preview(self) -> PreviewHandle | None:
        return self._preview

    @property
    def results(self) -> list[RankedResult]:
        return list(self._operation.result or [])

    def select_file(self, file: SelectedFile) -> bool:
        """Hold ``file`` as the search input, replacing any earlier selection."""
        if self._closed:
            return False
        if self.state.is_in_flight:
            logger.info("search: selection ignored while a search is running")
            return False
        if not self._intake.is_allowed(file):
            self._notifications.show(
                f"Invalid file format. Allowed: {self._intake.allowed_list()}", Severity.ERROR
            )
            return False

        self._release_selection()
        self._selected = file
        self._preview = self._intake.open_preview(file)
        # Results from an earlier query no longer match the new input.
        self._reset_operation()
        self._notifications.clear()
        self._emit()
        return True

    def validate(self, payload: Any) -> None:
        file = payload if payload is not None else self._selected
        if file is None:
            raise ValidationError("Please select an image first")
        if not isinstance(file, SelectedFile) or not file.content:
            raise ValidationError("Please select an image first")
        if not self._intake.is_allowed(file):
            raise ValidationError(f"Invalid file format. Allowed: {self._intake.allowed_list()}")

    async def _execute(self, payload: Any, generation: int) -> None:
        file: SelectedFile = payload if payload is not None else self._selected
        self._notifications.clear()
        hits = await self._client.compare_image(file)
        if not self._is_current(generation):
            logger.info("search: discarding %d result(s) for abandoned query", len(hits))
            return
        self._succeed(normalize_hits(hits))

    def success_notification(self, result: list[RankedResult]) -> tuple[str, Severity]:
        if result:
            return f"Found {len(result)} similar images!", Severity.SUCCESS
        # An empty result is a valid answer, not an error.
        return "No similar images found.", Severity.WARNING

    def failure_text(self, error: ImageSearchError) -> str:
        if isinstance(error, TransportError) and error.status_code is not None:
            return f"Search failed. Server returned: {error.body_excerpt or error.status_code}"
        return error.message

    def _release_selection(self) -> None:
        if self._preview is not None:
            self._preview.release()
        self._preview = None
        self._selected = None

    def _on_reset(self) -> None:
        self._release_selection()

    def _on_close(self) -> None:
        self._release_selection()
