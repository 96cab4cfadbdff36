"""Single-slot transient notification channel.

A new notification overwrites the current one and cancels its dismissal
timer, so only the latest message is ever visible and only its own timer
can dismiss it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from imgsearch_console.config import IMGSEARCH_NOTIFICATION_TTL_SECONDS
from imgsearch_console.types import Notification, Severity

logger = logging.getLogger(__name__)

NotificationListener = Callable[[Notification | None], None]


class NotificationCenter:
    def __init__(self, *, ttl_seconds: float = IMGSEARCH_NOTIFICATION_TTL_SECONDS) -> None:
        self._ttl = ttl_seconds
        self._current: Notification | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._listeners: list[NotificationListener] = []
        self._closed = False

    @property
    def current(self) -> Notification | None:
        return self._current

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def show(self, text: str, severity: Severity) -> Notification | None:
        """Replace the current notification and restart the dismissal timer.

        Outside a running event loop the message is shown without a
        dismissal timer and stays until replaced or cleared. Returns
        ``None`` once the center has been closed.
        """
        if self._closed:
            logger.debug("Dropping notification after close: %s", text)
            return None

        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        self._cancel_timer()

        created_at = loop.time() if loop is not None else time.monotonic()
        notification = Notification(text=text, severity=severity, created_at=created_at)
        self._current = notification
        if loop is not None:
            self._timer = loop.call_later(self._ttl, self._expire, notification)
        else:
            logger.debug("No running event loop; notification will not auto-dismiss")

        log = logger.warning if severity is Severity.ERROR else logger.info
        log("Notification [%s]: %s", severity.value, text)
        self._emit()
        return notification

    def clear(self) -> None:
        """Cancel the timer and empty the slot immediately."""
        self._cancel_timer()
        if self._current is not None:
            self._current = None
            self._emit()

    def close(self) -> None:
        """Clear and refuse further notifications (owning view torn down)."""
        self.clear()
        self._closed = True
        self._listeners.clear()

    def _expire(self, notification: Notification) -> None:
        # A replaced notification's timer is cancelled, but keep the identity
        # check so an expiry can only ever dismiss the message it was armed for.
        if self._current is not notification:
            return
        self._timer = None
        self._current = None
        self._emit()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._current)
            except Exception:
                logger.exception("Notification listener failed")
