"""
Metrics Collection for Delivery-Note Reconciliation

Collects and exposes metrics for:
- Reconciliation runs (completed, failed, escalated to anomaly, last failure)
- Alerts raised, by kind
- Line control statuses, by status
- Processing times (average, p95)

Metrics are held in memory for the lifetime of the process.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Optional, Any


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class ReconciliationMetrics:
    """Counters for reconciliation runs."""
    completed: int = 0
    failed: int = 0
    anomalies: int = 0
    alerts: int = 0

    alerts_by_kind: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    lines_by_status: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    last_failure: Optional[Dict[str, Any]] = None


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: str = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: str = None) -> float:
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_reconciliation_completed(
            note_id=42,
            alert_count=2,
            alerts_by_kind={"PRICE_VARIANCE": 1, "MISSING_PRICE": 1},
            duration_ms=3.2,
        )
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.reconciliation = ReconciliationMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def reset(self) -> None:
        """Drop every counter and sample."""
        with self._lock:
            self.reconciliation = ReconciliationMetrics()
            self.timings = TimingMetrics()

    # =========================================================================
    # Reconciliation Metrics
    # =========================================================================

    def record_reconciliation_completed(
        self,
        note_id: Optional[int],
        alert_count: int,
        alerts_by_kind: Optional[Dict[str, int]] = None,
        lines_by_status: Optional[Dict[str, int]] = None,
        duration_ms: float = None,
    ):
        """Record a finished reconciliation pass."""
        with self._lock:
            self.reconciliation.completed += 1
            self.reconciliation.alerts += alert_count
            if alert_count > 0:
                self.reconciliation.anomalies += 1
            for kind, count in (alerts_by_kind or {}).items():
                self.reconciliation.alerts_by_kind[kind] += count
            for status, count in (lines_by_status or {}).items():
                self.reconciliation.lines_by_status[status] += count

            if duration_ms is not None:
                self.timings.add_sample(duration_ms, "reconciliation")

    def record_reconciliation_failed(self, note_id: Optional[int], error: str = None):
        """Record a reconciliation that raised, keeping it as the last failure."""
        with self._lock:
            self.reconciliation.failed += 1
            self.reconciliation.last_failure = {
                "note_id": note_id,
                "error": error,
                "at": datetime.now(timezone.utc).isoformat(),
            }

    # =========================================================================
    # Timing Metrics
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "reconciliation": {
                    "completed": self.reconciliation.completed,
                    "failed": self.reconciliation.failed,
                    "anomalies": self.reconciliation.anomalies,
                    "alerts": self.reconciliation.alerts,
                    "alerts_by_kind": dict(self.reconciliation.alerts_by_kind),
                    "lines_by_status": dict(self.reconciliation.lines_by_status),
                    "last_failure": dict(self.reconciliation.last_failure) if self.reconciliation.last_failure else None,
                },
                "timings": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_stage": {
                        stage: {
                            "average_ms": self.timings.get_average(stage),
                            "p95_ms": self.timings.get_p95(stage),
                        }
                        for stage in self.timings.by_stage.keys()
                    },
                },
            }


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()


def record_reconciliation_completed(
    note_id: Optional[int],
    alert_count: int,
    alerts_by_kind: Optional[Dict[str, int]] = None,
    lines_by_status: Optional[Dict[str, int]] = None,
    duration_ms: float = None,
):
    """Record a finished reconciliation pass."""
    get_metrics().record_reconciliation_completed(
        note_id, alert_count, alerts_by_kind, lines_by_status, duration_ms
    )


def record_reconciliation_failed(note_id: Optional[int], error: str = None):
    """Record a reconciliation that raised."""
    get_metrics().record_reconciliation_failed(note_id, error)


def record_processing_time(stage: str, duration_ms: float):
    """Record a processing time sample."""
    get_metrics().record_processing_time(stage, duration_ms)
