"""
Observability Metrics
Cycle phase timings, cache hit counters and P50/P95 cycle durations
"""
from typing import Dict, List, Any, Optional
import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
import statistics
import threading
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


@dataclass
class PhaseMetric:
    """Metrics for a single cycle phase"""
    phase_name: str
    start_time: float
    end_time: float = 0.0
    duration_ms: float = 0.0
    item_count: int = 0
    success: bool = False
    error_message: Optional[str] = None


@dataclass
class CycleMetrics:
    """Complete metrics for one generation cycle"""
    generation: int
    force_refresh: bool
    start_time: float
    end_time: float = 0.0
    total_duration_ms: float = 0.0
    phases: List[PhaseMetric] = field(default_factory=list)
    candidates: int = 0
    cache_hits: int = 0
    fallbacks: int = 0
    outcome: str = "running"


class MetricsCollector:
    """Collects and aggregates restock cycle metrics"""

    OUTCOMES = ("settled", "well_stocked", "failed", "superseded")

    def __init__(self, max_phase_duration_ms: float = 30000):
        self.active_cycles: Dict[int, CycleMetrics] = {}
        self.historical_metrics = deque(maxlen=500)
        self.phase_timings = defaultdict(list)  # phase_name -> [duration_ms]
        self.counters = {
            "cycles_started": 0,
            "cycles_settled": 0,
            "cycles_well_stocked": 0,
            "cycles_failed": 0,
            "cycles_superseded": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "fallbacks": 0,
        }
        self.max_phase_duration_ms = max_phase_duration_ms
        self._lock = threading.Lock()

    def start_cycle(self, generation: int, force_refresh: bool = False) -> None:
        with self._lock:
            self.active_cycles[generation] = CycleMetrics(
                generation=generation,
                force_refresh=force_refresh,
                start_time=time.time(),
            )
            self.counters["cycles_started"] += 1
        logger.debug("Started metrics tracking for cycle %s", generation)

    @asynccontextmanager
    async def phase_timer(self, generation: int, phase_name: str, item_count: int = 0):
        """Context manager timing one phase of a cycle"""
        phase = PhaseMetric(phase_name=phase_name, start_time=time.time(), item_count=item_count)
        try:
            yield phase
            phase.success = True
        except Exception as e:
            phase.error_message = str(e)
            logger.error(f"Phase {phase_name} failed for cycle {generation}: {e}")
            raise
        finally:
            phase.end_time = time.time()
            phase.duration_ms = (phase.end_time - phase.start_time) * 1000
            with self._lock:
                cycle = self.active_cycles.get(generation)
                if cycle is not None:
                    cycle.phases.append(phase)
                self.phase_timings[phase_name].append(phase.duration_ms)
            if phase.duration_ms > self.max_phase_duration_ms:
                logger.warning(
                    f"Phase {phase_name} exceeded threshold: {phase.duration_ms:.2f}ms > {self.max_phase_duration_ms}ms"
                )

    def record_cache_split(self, generation: int, hits: int, misses: int) -> None:
        with self._lock:
            self.counters["cache_hits"] += hits
            self.counters["cache_misses"] += misses
            cycle = self.active_cycles.get(generation)
            if cycle is not None:
                cycle.candidates = hits + misses
                cycle.cache_hits = hits

    def record_fallback(self, generation: int) -> None:
        with self._lock:
            self.counters["fallbacks"] += 1
            cycle = self.active_cycles.get(generation)
            if cycle is not None:
                cycle.fallbacks += 1

    def finish_cycle(self, generation: int, outcome: str) -> Dict[str, Any]:
        """Close a cycle and return its summary"""
        if outcome not in self.OUTCOMES:
            raise ValueError(f"Unknown cycle outcome: {outcome}")
        with self._lock:
            cycle = self.active_cycles.pop(generation, None)
            if cycle is None:
                logger.warning(f"No cycle metrics found for generation: {generation}")
                return {}
            cycle.end_time = time.time()
            cycle.total_duration_ms = (cycle.end_time - cycle.start_time) * 1000
            cycle.outcome = outcome
            self.counters[f"cycles_{outcome}"] += 1
            self.historical_metrics.append(cycle)
            return self._generate_cycle_summary(cycle)

    def get_phase_diagnostics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                phase: self._calculate_phase_stats(timings)
                for phase, timings in self.phase_timings.items()
                if timings
            }

    def get_performance_summary(self) -> Dict[str, Any]:
        """Counters plus duration percentiles over the last 100 finished cycles"""
        with self._lock:
            recent = list(self.historical_metrics)[-100:]
            lookups = self.counters["cache_hits"] + self.counters["cache_misses"]
            summary: Dict[str, Any] = {
                "counters": dict(self.counters),
                "active_cycles": len(self.active_cycles),
                "cache_hit_rate": round(self.counters["cache_hits"] / lookups, 3) if lookups else 0.0,
            }
            durations = [c.total_duration_ms for c in recent]
            if durations:
                summary["performance"] = {
                    "avg_duration_ms": round(statistics.mean(durations), 2),
                    "p50_duration_ms": round(statistics.median(durations), 2),
                    "p95_duration_ms": round(self._percentile(durations, 95), 2),
                    "max_duration_ms": round(max(durations), 2),
                }
            return summary

    # Private helper methods

    def _calculate_phase_stats(self, timings: List[float]) -> Dict[str, Any]:
        return {
            "count": len(timings),
            "avg_ms": round(statistics.mean(timings), 2),
            "median_ms": round(statistics.median(timings), 2),
            "p95_ms": round(self._percentile(timings, 95), 2),
            "max_ms": round(max(timings), 2),
        }

    def _percentile(self, data: List[float], percentile: float) -> float:
        """Calculate percentile of data"""
        if not data:
            return 0
        sorted_data = sorted(data)
        index = (percentile / 100) * (len(sorted_data) - 1)
        if index.is_integer():
            return sorted_data[int(index)]
        lower = sorted_data[int(index)]
        upper = sorted_data[int(index) + 1]
        return lower + (upper - lower) * (index - int(index))

    def _generate_cycle_summary(self, cycle: CycleMetrics) -> Dict[str, Any]:
        return {
            "generation": cycle.generation,
            "outcome": cycle.outcome,
            "force_refresh": cycle.force_refresh,
            "total_duration_ms": round(cycle.total_duration_ms, 2),
            "candidates": cycle.candidates,
            "cache_hits": cycle.cache_hits,
            "fallbacks": cycle.fallbacks,
            "phases": [
                {
                    "name": phase.phase_name,
                    "duration_ms": round(phase.duration_ms, 2),
                    "item_count": phase.item_count,
                    "success": phase.success,
                }
                for phase in cycle.phases
            ],
        }


# Global metrics collector instance
metrics_collector = MetricsCollector()
