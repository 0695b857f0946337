"""
Metrics Collection for Counterparty Resolution

Collects and exposes in-process metrics for:
- Resolutions by kind and strategy (ALIAS, FUZZY, CREATED, NONE)
- Creation conflicts (lost provisioning races)
- Store errors by operation
- Resolution times (average, p95)
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, Any


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class ResolutionCounts:
    """Counts of resolution outcomes."""
    total: int = 0
    conflicts: int = 0
    store_errors: int = 0

    # kind -> strategy -> count
    by_kind: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: defaultdict(int)))

    # operation -> count
    errors_by_operation: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    # Raw timing samples (keep last N for percentile calculations)
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
    Thread-safe metrics collector for counterparty resolution.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_resolution("customer", "ALIAS", duration_ms=3.2)
        metrics.record_conflict("customer")
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.resolutions = ResolutionCounts()
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

    def record_resolution(self, kind: str, strategy: str, duration_ms: float = None):
        """Record one resolution outcome."""
        with self._lock:
            self.resolutions.total += 1
            self.resolutions.by_kind[kind][strategy] += 1
            if duration_ms is not None:
                self.timings.add_sample(duration_ms, f"resolve.{kind}")

    def record_conflict(self, kind: str):
        """Record a lost create+learn race."""
        with self._lock:
            self.resolutions.conflicts += 1
            self.resolutions.by_kind[kind]["CONFLICT"] += 1

    def record_store_error(self, operation: str):
        """Record a store failure surfaced to the caller."""
        with self._lock:
            self.resolutions.store_errors += 1
            self.resolutions.errors_by_operation[operation] += 1

    def get_strategy_count(self, kind: str, strategy: str) -> int:
        with self._lock:
            return self.resolutions.by_kind.get(kind, {}).get(strategy, 0)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "resolutions": {
                    "total": self.resolutions.total,
                    "conflicts": self.resolutions.conflicts,
                    "store_errors": self.resolutions.store_errors,
                    "by_kind": {k: dict(v) for k, v in self.resolutions.by_kind.items()},
                    "errors_by_operation": dict(self.resolutions.errors_by_operation),
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


def record_resolution(kind: str, strategy: str, duration_ms: float = None):
    """Record one resolution outcome."""
    get_metrics().record_resolution(kind, strategy, duration_ms)


def record_conflict(kind: str):
    """Record a lost create+learn race."""
    get_metrics().record_conflict(kind)


def record_store_error(operation: str):
    """Record a store failure surfaced to the caller."""
    get_metrics().record_store_error(operation)
