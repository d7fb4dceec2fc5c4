"""Run monitoring: aggregate progress, size projection, ETA and speed."""

from .metrics import JobMetrics, compute_metrics

__all__ = ["JobMetrics", "compute_metrics"]
