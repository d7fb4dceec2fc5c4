"""
Aggregate run metrics.

compute_metrics() is a PURE function of (items, phase, start_time, now):
no incremental state, no clock reads. Calling it twice with the same
inputs yields equal results.

Weighting:
- weight = duration / time_scale when time_scale is set,
  else duration, else 1
- processed weight: done → weight, processing|uploading → weight × progress/100

Every ratio whose denominator is zero is reported as None ("unknown"),
never NaN or infinity.
"""

from datetime import datetime
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict

from ..jobs.models import RunPhase, TaskStatus, TrackedItem


_IN_FLIGHT = (TaskStatus.PROCESSING, TaskStatus.UPLOADING)


class JobMetrics(BaseModel):
    """Snapshot of aggregate progress for one observed list."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    # Counts
    total_count: int = 0
    completed_count: int = 0
    error_count: int = 0
    skipped_count: int = 0

    # Progress
    total_weight: float = 0.0
    processed_weight: float = 0.0
    global_progress: float = 0.0  # 0-100

    # Sizes (bytes)
    total_original_bytes: int = 0
    current_encoded_bytes: int = 0
    projected_total_bytes: Optional[float] = None
    reduction_rate_percent: Optional[float] = None

    # Time
    elapsed_seconds: float = 0.0
    throughput_weight_per_second: Optional[float] = None
    eta_seconds: Optional[float] = None

    # Speed
    realtime_speed_multiplier: Optional[float] = None  # Converting phase only
    current_speed_bps: Optional[float] = None

    # Lifecycle
    has_active_job: bool = False
    is_finished: bool = False


def _safe_div(numerator: float, denominator: float) -> Optional[float]:
    if denominator == 0:
        return None
    return numerator / denominator


def compute_metrics(
    items: Sequence[TrackedItem],
    phase: RunPhase,
    start_time: Optional[datetime],
    now: datetime,
) -> JobMetrics:
    """
    Compute aggregate metrics for the observed list.

    Args:
        items: Task list while converting, source list otherwise
        phase: Current run phase
        start_time: When the run started (None = no run)
        now: Observation time

    Returns:
        JobMetrics snapshot
    """
    total_weight = 0.0
    processed_weight = 0.0
    total_original = 0
    encoded = 0
    consumed_duration = 0.0

    for item in items:
        weight = item.weight
        total_weight += weight
        total_original += item.size

        if item.status == TaskStatus.DONE:
            processed_weight += weight
            encoded += item.encoded_size
            consumed_duration += item.duration
        elif item.status in _IN_FLIGHT:
            fraction = min(max(item.progress, 0.0), 100.0) / 100.0
            processed_weight += weight * fraction
            encoded += item.encoded_size
            if item.status == TaskStatus.PROCESSING:
                consumed_duration += item.duration * fraction

    global_progress = 0.0
    if total_weight > 0:
        global_progress = 100.0 * processed_weight / total_weight

    # Projection: declared sizes win, else extrapolate from progress
    if any(item.expected_size is not None for item in items):
        projected = float(sum(
            item.encoded_size if item.status == TaskStatus.DONE
            else (item.expected_size if item.expected_size is not None else item.size)
            for item in items
        ))
    elif global_progress > 0:
        projected = encoded / (global_progress / 100.0)
    else:
        projected = float(total_original)

    ratio = _safe_div(total_original - projected, total_original)
    reduction = None if ratio is None else 100.0 * ratio

    elapsed = 0.0
    if start_time is not None:
        elapsed = max((now - start_time).total_seconds(), 0.0)

    throughput = _safe_div(processed_weight, elapsed)
    eta = None
    if throughput:
        eta = (total_weight - processed_weight) / throughput

    speed = None
    if phase == RunPhase.CONVERTING:
        speed = _safe_div(consumed_duration, elapsed)

    completed = sum(1 for item in items if item.status == TaskStatus.DONE)
    errors = sum(1 for item in items if item.status == TaskStatus.ERROR)
    skipped = sum(1 for item in items if item.status == TaskStatus.SKIPPED)

    has_active = any(
        item.status in _IN_FLIGHT or item.status == TaskStatus.WAITING for item in items
    )

    return JobMetrics(
        total_count=len(items),
        completed_count=completed,
        error_count=errors,
        skipped_count=skipped,
        total_weight=total_weight,
        processed_weight=processed_weight,
        global_progress=global_progress,
        total_original_bytes=total_original,
        current_encoded_bytes=encoded,
        projected_total_bytes=projected,
        reduction_rate_percent=reduction,
        elapsed_seconds=elapsed,
        throughput_weight_per_second=throughput,
        eta_seconds=eta,
        realtime_speed_multiplier=speed,
        current_speed_bps=_safe_div(encoded, elapsed),
        has_active_job=has_active,
        is_finished=len(items) > 0 and not has_active,
    )


SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(size: Optional[float]) -> str:
    """Byte count in 1024 steps for the run summary, e.g. 1536 → "1.5 KB"."""
    if size is None:
        return "unknown"

    value = float(size)
    for unit in SIZE_UNITS:
        if value < 1024 or unit == SIZE_UNITS[-1]:
            break
        value /= 1024

    if unit == "B":
        return f"{int(value)} B"
    return f"{value:.1f} {unit}"
