"""View sessions: the owners of controllers and notification channels.

A ``View`` pairs one controller with its own notification center.
Closing the view is the equivalent of navigating away: every timer stops,
in-flight responses are ignored on arrival and previews are released.
``Console`` wires views to a shared ``RemoteClient`` and closes whatever
is still open when it shuts down.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import httpx

from imgsearch_console.client import RemoteClient
from imgsearch_console.config import ConsoleConfig
from imgsearch_console.controllers.base import RemoteOperationController
from imgsearch_console.controllers.search import ImageSearchController
from imgsearch_console.controllers.training import TrainingJobController
from imgsearch_console.controllers.upload import UploadQueueController
from imgsearch_console.intake import FileIntake, PreviewStore
from imgsearch_console.notifications import NotificationCenter

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=RemoteOperationController[Any])


@dataclass
class View(Generic[C]):
    name: str
    controller: C
    notifications: NotificationCenter
    _on_close: Callable[[View[C]], None] | None = None
    closed: bool = False

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.controller.aclose()
        self.notifications.close()
        if self._on_close is not None:
            self._on_close(self)
        logger.debug("View %s closed", self.name)

    async def __aenter__(self) -> View[C]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class Console:
    def __init__(
        self,
        config: ConsoleConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        preview_store: PreviewStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.client = RemoteClient(
            config.api_base_url,
            timeout=config.request_timeout_seconds,
            error_body_limit=config.error_body_limit,
            transport=transport,
        )
        self.intake = FileIntake(
            allowed_extensions=config.allowed_extensions,
            preview_store=preview_store,
        )
        self._clock = clock
        self._views: list[View[Any]] = []

    def _notifications(self) -> NotificationCenter:
        return NotificationCenter(ttl_seconds=self.config.notification_ttl_seconds)

    def _register(self, name: str, controller: C, notifications: NotificationCenter) -> View[C]:
        view = View(name=name, controller=controller, notifications=notifications, _on_close=self._forget)
        self._views.append(view)
        logger.debug("View %s opened", name)
        return view

    def _forget(self, view: View[Any]) -> None:
        if view in self._views:
            self._views.remove(view)

    def open_training(self) -> View[TrainingJobController]:
        notifications = self._notifications()
        controller = TrainingJobController(
            client=self.client,
            notifications=notifications,
            poll_interval=self.config.poll_interval_seconds,
            metrics_interval=self.config.metrics_interval_seconds,
            max_poll_failures=self.config.poll_max_failures,
            clock=self._clock,
        )
        return self._register("training", controller, notifications)

    def open_search(self) -> View[ImageSearchController]:
        notifications = self._notifications()
        controller = ImageSearchController(
            client=self.client,
            notifications=notifications,
            intake=self.intake,
            clock=self._clock,
        )
        return self._register("search", controller, notifications)

    def open_upload(self) -> View[UploadQueueController]:
        notifications = self._notifications()
        controller = UploadQueueController(
            client=self.client,
            notifications=notifications,
            intake=self.intake,
            clock=self._clock,
        )
        return self._register("upload", controller, notifications)

    @property
    def open_views(self) -> list[View[Any]]:
        return list(self._views)

    async def aclose(self) -> None:
        for view in list(self._views):
            await view.aclose()
        await self.client.aclose()

    async def __aenter__(self) -> Console:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
