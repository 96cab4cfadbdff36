"""Batch upload queue.

Items are validated on selection, held with a preview each, and sent as
one combined request. The backend acknowledges the batch as a whole, so
the outcome is all-or-nothing: success drops every item, failure keeps
them so the user can retry without selecting the files again.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from imgsearch_console.client import RemoteClient
from imgsearch_console.controllers.base import RemoteOperationController
from imgsearch_console.errors import ImageSearchError, TransportError, ValidationError
from imgsearch_console.intake import FileIntake, PreviewHandle
from imgsearch_console.notifications import NotificationCenter
from imgsearch_console.types import (
    ItemStatus,
    OperationState,
    SelectedFile,
    Severity,
    UploadReport,
)

logger = logging.getLogger(__name__)


@dataclass
class QueuedItem:
    id: int
    file: SelectedFile
    preview: PreviewHandle
    status: ItemStatus = ItemStatus.QUEUED


class UploadQueueController(RemoteOperationController[UploadReport]):
    name = "upload"
    initial_state = OperationState.ACTIVE

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
        self._items: list[QueuedItem] = []
        self._ids = itertools.count()

    @property
    def items(self) -> tuple[QueuedItem, ...]:
        return tuple(self._items)

    def add_files(self, selection: Iterable[SelectedFile]) -> list[QueuedItem]:
        """Queue the acceptable files; report how many were rejected."""
        if self._closed:
            return []
        if self.state.is_in_flight:
            self._notifications.show(
                "Upload in progress. Add more files once it finishes.", Severity.WARNING
            )
            return []

        self._notifications.clear()
        intake = self._intake.partition(selection)
        if intake.rejected:
            self._notifications.show(
                f"{len(intake.rejected)} file(s) rejected. "
                f"Allowed formats: {self._intake.allowed_list()}.",
                Severity.WARNING,
            )

        added = [
            QueuedItem(
                id=next(self._ids),
                file=f,
                preview=self._intake.open_preview(f),
            )
            for f in intake.accepted
        ]
        self._items.extend(added)
        if added:
            logger.info("upload: queued %d file(s), %d pending", len(added), len(self._items))
        self._emit()
        return added

    def remove_item(self, item_id: int) -> bool:
        """Drop one item and release its preview. Disabled while uploading."""
        if self.state.is_in_flight:
            logger.info("upload: remove of item %d ignored while uploading", item_id)
            return False
        for i, item in enumerate(self._items):
            if item.id == item_id:
                del self._items[i]
                item.preview.release()
                self._notifications.clear()
                self._emit()
                return True
        return False

    def clear_items(self) -> int:
        """Drop every item and release all previews. Disabled while uploading."""
        if self.state.is_in_flight:
            return 0
        count = self._release_all()
        self._emit()
        return count

    def validate(self, payload: Any) -> None:
        if not self._items:
            raise ValidationError("Please select at least one file before uploading.")

    async def _execute(self, payload: Any, generation: int) -> None:
        batch = list(self._items)
        for item in batch:
            item.status = ItemStatus.PENDING
        self._notifications.clear()
        self._emit()

        await self._client.upload([item.file for item in batch])
        if not self._is_current(generation):
            logger.info("upload: discarding acknowledgement for abandoned batch")
            return

        for item in batch:
            item.status = ItemStatus.READY
        report = UploadReport(file_names=tuple(item.file.name for item in batch))
        self._release_all()
        self._succeed(report)

    def success_notification(self, result: UploadReport) -> tuple[str, Severity]:
        return f"Successfully uploaded {result.count} file(s)!", Severity.SUCCESS

    def failure_text(self, error: ImageSearchError) -> str:
        if isinstance(error, TransportError) and error.status_code is not None:
            return "Upload failed. Please try again."
        return error.message

    def _on_failure(self, error: ImageSearchError) -> None:
        for item in self._items:
            item.status = ItemStatus.FAILED

    def _release_all(self) -> int:
        items, self._items = self._items, []
        for item in items:
            item.preview.release()
        return len(items)

    def _on_cancel(self) -> None:
        for item in self._items:
            item.status = ItemStatus.QUEUED

    def _on_reset(self) -> None:
        self._release_all()

    def _on_close(self) -> None:
        self._release_all()
