"""Plain-text rendering of controller state for the CLI.

Reads only the fields that are live for the current operation state.
"""

from __future__ import annotations

from collections.abc import Sequence

from imgsearch_console.controllers.search import ImageSearchController
from imgsearch_console.controllers.training import TrainingJobController
from imgsearch_console.controllers.upload import QueuedItem, UploadQueueController
from imgsearch_console.metrics import format_duration, format_file_size, format_throughput
from imgsearch_console.types import Notification, OperationState, RankedResult, Severity

_SEVERITY_PREFIX = {
    Severity.SUCCESS: "OK",
    Severity.WARNING: "WARN",
    Severity.ERROR: "ERROR",
}


def render_notification(notification: Notification | None) -> str:
    if notification is None:
        return ""
    return f"[{_SEVERITY_PREFIX[notification.severity]}] {notification.text}"


def render_training(controller: TrainingJobController) -> str:
    op = controller.operation
    state = op.state
    if state is OperationState.IDLE:
        return "Ready to train."
    if state is OperationState.SUBMITTING:
        return "Starting training job..."

    parts = [f"[{state.value}] {controller.status_message}"]
    progress = op.progress
    if state in (OperationState.QUEUED, OperationState.ACTIVE) and progress is not None:
        parts.append(f"{progress.percent:g}%")
        parts.append(f"Processed {progress.processed} of {progress.total} images")
    if state is OperationState.ACTIVE:
        m = controller.metrics
        parts.append(f"Elapsed {format_duration(m.elapsed_seconds)}")
        parts.append(f"Speed {format_throughput(m.throughput)}")
        parts.append(f"ETA {format_duration(m.eta_seconds)}")
    line = " | ".join(parts)
    if controller.remote_message:
        line += f"\n  Status Detail: {controller.remote_message}"
    return line


def render_results(results: Sequence[RankedResult]) -> str:
    if not results:
        return "No similar images found."
    width = len(str(len(results)))
    return "\n".join(
        f"{i:>{width}}. {r.score * 100:5.1f}%  {r.locator}" for i, r in enumerate(results, 1)
    )


def render_search(controller: ImageSearchController) -> str:
    op = controller.operation
    selected = controller.selected_file
    header = f"Query: {selected.name} ({format_file_size(selected.size)})" if selected else "No image selected."
    if op.state is OperationState.ACTIVE:
        return f"{header}\nSearching..."
    if op.state is OperationState.SUCCEEDED:
        return f"{header}\n{render_results(controller.results)}"
    if op.state is OperationState.FAILED and op.error is not None:
        return f"{header}\nSearch failed: {op.error.message}"
    return header


def render_item(item: QueuedItem) -> str:
    return f"#{item.id} {item.file.name} ({format_file_size(item.file.size)}) [{item.status.value}]"


def render_upload(controller: UploadQueueController) -> str:
    op = controller.operation
    items = controller.items
    lines = [f"Upload queue: {len(items)} file(s)"]
    lines.extend(f"  {render_item(item)}" for item in items)
    if op.state is OperationState.ACTIVE:
        lines.append("Uploading...")
    elif op.state is OperationState.SUCCEEDED and op.result is not None:
        lines.append(f"Uploaded {op.result.count} file(s).")
    elif op.state is OperationState.FAILED and op.error is not None:
        lines.append(f"Upload failed: {op.error.message}")
    return "\n".join(lines)
