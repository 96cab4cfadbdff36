from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class OperationState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    QUEUED = "queued"
    ACTIVE = "active"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationState.SUCCEEDED, OperationState.FAILED)

    @property
    def is_in_flight(self) -> bool:
        return self in (OperationState.SUBMITTING, OperationState.QUEUED, OperationState.ACTIVE)


class Severity(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"


class ItemStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    READY = "ready"
    FAILED = "failed"


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    REMOTE = "remote"  # the remote job itself reported failure


@dataclass(frozen=True)
class Progress:
    processed: int = 0
    total: int = 0
    percent: float = 0.0  # as reported by the remote, 0-100


@dataclass(frozen=True)
class ErrorDetail:
    kind: ErrorKind
    message: str
    raw: str | None = None  # transport detail, already truncated


@dataclass(frozen=True)
class Notification:
    text: str
    severity: Severity
    created_at: float  # loop time


@dataclass(frozen=True)
class SelectedFile:
    """A file picked by the user, held fully in memory."""

    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        _, dot, ext = self.name.rpartition(".")
        return ext.lower() if dot else ""

    @classmethod
    def from_path(cls, path: str | Path) -> SelectedFile:
        p = Path(path)
        content_type, _ = mimetypes.guess_type(p.name)
        return cls(
            name=p.name,
            content=p.read_bytes(),
            content_type=content_type or "application/octet-stream",
        )


@dataclass(frozen=True)
class RankedResult:
    locator: str  # server-side image path
    score: float  # 0..1


@dataclass(frozen=True)
class TrainingSummary:
    job_id: str
    processed: int
    total: int
    message: str | None = None


@dataclass(frozen=True)
class UploadReport:
    file_names: tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.file_names)


@dataclass(frozen=True)
class JobMetrics:
    elapsed_seconds: int = 0
    throughput: float = 0.0  # items per second
    eta_seconds: int | None = None  # None means unknown, not zero


_PROGRESS_STATES = frozenset(
    {
        OperationState.QUEUED,
        OperationState.ACTIVE,
        OperationState.SUCCEEDED,
        OperationState.FAILED,
    }
)


@dataclass
class Operation:
    """One remote-tracked unit of work.

    Only the field that is live for the current state is exposed; the
    accessors return ``None`` for everything else so stale values from an
    earlier state can never leak into the presentation layer.
    """

    state: OperationState = OperationState.IDLE
    correlation_id: str | None = None
    started_at: float | None = None
    _progress: Progress | None = field(default=None, repr=False)
    _result: Any = field(default=None, repr=False)
    _error: ErrorDetail | None = field(default=None, repr=False)

    @property
    def progress(self) -> Progress | None:
        return self._progress if self.state in _PROGRESS_STATES else None

    @property
    def result(self) -> Any:
        return self._result if self.state is OperationState.SUCCEEDED else None

    @property
    def error(self) -> ErrorDetail | None:
        return self._error if self.state is OperationState.FAILED else None
