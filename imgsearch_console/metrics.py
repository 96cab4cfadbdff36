"""Derived training metrics: throughput, ETA and display formatting.

Pure functions, no hidden state. Boundary values are defined rather than
left to float arithmetic: zero elapsed time gives zero throughput, and an
ETA that cannot be computed is ``None`` (unknown), never ``0``.
"""

from __future__ import annotations

import math

from imgsearch_console.types import JobMetrics


def throughput_per_second(processed: int, elapsed_seconds: float) -> float:
    """Items processed per second; ``0.0`` when no time has elapsed."""
    if elapsed_seconds <= 0 or processed <= 0:
        return 0.0
    return processed / elapsed_seconds


def estimate_remaining_seconds(processed: int, total: int, throughput: float) -> int | None:
    """Seconds left at the current rate, or ``None`` when unknown."""
    if total <= 0 or processed <= 0 or throughput <= 0 or not math.isfinite(throughput):
        return None
    remaining = max(0, total - processed)
    return math.ceil(remaining / throughput)


def compute_metrics(processed: int, total: int, elapsed_seconds: float) -> JobMetrics:
    """Compute throughput and ETA for a running job.

    Args:
        processed: Items the remote reports as done.
        total: Items the remote reports in the job (0 when not known yet).
        elapsed_seconds: Wall-clock time since the job became active.

    Returns:
        JobMetrics with whole elapsed seconds, throughput and ETA.
    """
    elapsed = max(0, int(elapsed_seconds))
    rate = throughput_per_second(processed, elapsed)
    return JobMetrics(
        elapsed_seconds=elapsed,
        throughput=rate,
        eta_seconds=estimate_remaining_seconds(processed, total, rate),
    )


def format_duration(seconds: int | float | None, *, unknown: str = "...") -> str:
    """Render seconds as ``HH:MM:SS``. Hours are not capped at 24 or 99."""
    if seconds is None:
        return unknown
    secs = max(0, int(seconds))
    hours, rem = divmod(secs, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_throughput(rate: float) -> str:
    return f"{rate:.2f} img/s"


def format_file_size(num_bytes: int) -> str:
    """Human-readable size with base-1024 units (``0 Bytes`` for empty files)."""
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = 0
    while i < len(units) - 1 and num_bytes >= 1024 ** (i + 1):
        i += 1
    value = round(num_bytes / (1024**i), 2)
    return f"{value:g} {units[i]}"
