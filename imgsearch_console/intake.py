"""File intake: extension filtering and preview handles.

Preview handles stand in for browser object URLs. They are scarce, owned
by exactly one holder, and must be released exactly once.
"""

from __future__ import annotations

import base64
import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from imgsearch_console.config import IMGSEARCH_ALLOWED_EXTENSIONS
from imgsearch_console.types import SelectedFile

logger = logging.getLogger(__name__)


class PreviewStore(Protocol):
    def create(self, file: SelectedFile) -> str: ...

    def revoke(self, url: str) -> None: ...


class InMemoryPreviewStore:
    """Keeps a ``data:`` URL per live preview, keyed by an opaque handle URL."""

    def __init__(self) -> None:
        self._live: dict[str, str] = {}

    def create(self, file: SelectedFile) -> str:
        url = f"preview:{uuid.uuid4().hex}"
        encoded = base64.b64encode(file.content).decode("ascii")
        self._live[url] = f"data:{file.content_type};base64,{encoded}"
        return url

    def resolve(self, url: str) -> str | None:
        return self._live.get(url)

    def revoke(self, url: str) -> None:
        if self._live.pop(url, None) is None:
            logger.warning("Revoking unknown or already revoked preview %s", url)

    @property
    def live_count(self) -> int:
        return len(self._live)


class PreviewHandle:
    """Owned reference to one preview; ``release()`` revokes it at most once."""

    def __init__(self, store: PreviewStore, url: str) -> None:
        self._store = store
        self.url = url
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        """Revoke the preview. Returns ``False`` if it was already released."""
        if self._released:
            return False
        self._released = True
        self._store.revoke(self.url)
        return True

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"PreviewHandle({self.url!r}, {state})"


@dataclass(frozen=True)
class IntakeResult:
    accepted: list[SelectedFile] = field(default_factory=list)
    rejected: list[SelectedFile] = field(default_factory=list)


class FileIntake:
    def __init__(
        self,
        *,
        allowed_extensions: Sequence[str] = tuple(IMGSEARCH_ALLOWED_EXTENSIONS),
        preview_store: PreviewStore | None = None,
    ) -> None:
        self.allowed_extensions = tuple(ext.lower().lstrip(".") for ext in allowed_extensions)
        self.preview_store: PreviewStore = preview_store or InMemoryPreviewStore()

    def is_allowed(self, file: SelectedFile) -> bool:
        return bool(file.extension) and file.extension in self.allowed_extensions

    def partition(self, selection: Iterable[SelectedFile]) -> IntakeResult:
        """Split a selection into accepted and rejected files, keeping order."""
        result = IntakeResult()
        for f in selection:
            (result.accepted if self.is_allowed(f) else result.rejected).append(f)
        if result.rejected:
            logger.info(
                "Rejected %d of %d selected file(s): %s",
                len(result.rejected),
                len(result.accepted) + len(result.rejected),
                ", ".join(f.name for f in result.rejected),
            )
        return result

    def open_preview(self, file: SelectedFile) -> PreviewHandle:
        return PreviewHandle(self.preview_store, self.preview_store.create(file))

    def allowed_list(self) -> str:
        return ", ".join(self.allowed_extensions)

    def accept_filter(self) -> str:
        """The same allow-list, in file-picker ``accept`` form."""
        return ",".join(f".{ext}" for ext in self.allowed_extensions)


def read_selection(paths: Iterable[str | Path]) -> list[SelectedFile]:
    """Load files from disk into memory, skipping paths that are not files."""
    selected: list[SelectedFile] = []
    for raw in paths:
        p = Path(raw)
        if not p.is_file():
            logger.warning("Skipping %s: not a file", p)
            continue
        selected.append(SelectedFile.from_path(p))
    return selected
