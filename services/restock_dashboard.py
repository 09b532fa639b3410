"""
Restock dashboard orchestration.

One generation cycle walks through these phases, publishing an immutable
DashboardSnapshot after each step:

    idle -> summarizing -> cache_splitting -> dispatching -> settled
                 |                                  \\
                 +-> well_stocked (no candidates)    +-> failed (unexpected error)

Every publish is tagged with the cycle's generation token. Only the newest
cycle may publish or notify; late results from a superseded cycle are
dropped (their cache writes still land, since cache keys are derived from the
product state they were computed for).
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Iterable, List, Optional, Sequence, Set, Tuple

from schemas import (
    CacheStats,
    DashboardRecommendation,
    DashboardSnapshot,
    DashboardSummary,
    Product,
    RecommendationRequest,
    RecommendationResult,
    RestockSuggestionPayload,
)
from services.batch_processor import BatchOutcome, BatchProcessor
from services.candidates import (
    derive_priority,
    select_restock_candidates,
    sort_recommendations,
    summarize_candidates,
)
from services.debounce import Debouncer
from services.notifications import NotificationLog, NotificationSink
from services.obs.metrics import MetricsCollector, metrics_collector
from services.restock_advisor import OpenAIRestockAdvisor, RecommendationService
from services.restock_cache import RestockCache
from services.storage import build_cache_store
from settings import load_settings

logger = logging.getLogger(__name__)

WELL_STOCKED_MESSAGE = "All products are currently well-stocked!"
FAILURE_MESSAGE = "Failed to generate restock report"

FALLBACK_ANALYZER_SUMMARY = "Analysis temporarily unavailable"
FALLBACK_RESTOCK_SUGGESTION = "Manual review recommended"
FALLBACK_REORDER_MESSAGE = "Please check this item manually"

# Progress markers; dispatching spreads linearly between them.
PROGRESS_SUMMARY = 20.0
PROGRESS_CACHE_SPLIT = 40.0
PROGRESS_DISPATCH_END = 90.0
PROGRESS_DONE = 100.0

SnapshotListener = Callable[[DashboardSnapshot], None]


def fallback_result(product: Product) -> RecommendationResult:
    return RecommendationResult(
        analyzer_summary=FALLBACK_ANALYZER_SUMMARY,
        restock_suggestion=FALLBACK_RESTOCK_SUGGESTION,
        reorder_message=FALLBACK_REORDER_MESSAGE,
        priority=derive_priority(product.stock),
    )


def completion_message(candidate_count: int, cache_hits: int) -> str:
    hit_rate = cache_hits / candidate_count * 100 if candidate_count else 0
    return f"Generated restock report for {candidate_count} items ({hit_rate:.0f}% from cache)"


class RestockDashboard:
    """
    Turns the current product list into a progressively published, sorted
    set of restock recommendations.

    Public API:
      - update_products(products)          debounced regeneration
      - generate_report(force_refresh)     run one cycle, return final snapshot
      - start_report(force_refresh)        run one cycle in the background
      - clear_cache() / clear_cache_and_refresh()
      - refresh_cache_stats()
      - snapshot / subscribe(listener)
      - shutdown()
    """

    def __init__(
        self,
        service: RecommendationService,
        cache: RestockCache,
        notifier: Optional[NotificationSink] = None,
        *,
        batch_processor: Optional[BatchProcessor] = None,
        metrics: Optional[MetricsCollector] = None,
        debounce_seconds: float = 1.0,
        candidate_limit: int = 15,
        alert_floor: int = 10,
    ) -> None:
        self.service = service
        self.cache = cache
        self.notify: NotificationSink = notifier if notifier is not None else NotificationLog()
        self.batch_processor = batch_processor or BatchProcessor(max_concurrency=3)
        self.metrics = metrics or MetricsCollector()
        self.candidate_limit = candidate_limit
        self.alert_floor = alert_floor

        self._products: Tuple[Product, ...] = ()
        self._generation = 0
        self._snapshot = DashboardSnapshot()
        self._listeners: List[SnapshotListener] = []
        self._cycles: Set[asyncio.Task] = set()
        self._trigger = Debouncer(self._on_products_changed, debounce_seconds)

    @classmethod
    def from_settings(
        cls,
        service: Optional[RecommendationService] = None,
        notifier: Optional[NotificationSink] = None,
    ) -> "RestockDashboard":
        settings = load_settings()
        cache = RestockCache(
            build_cache_store(settings.cache_database_url),
            ttl_seconds=settings.cache_ttl_seconds,
            prefix=settings.cache_prefix,
        )
        return cls(
            service or OpenAIRestockAdvisor(),
            cache,
            notifier if notifier is not None else NotificationLog(settings.notification_history),
            batch_processor=BatchProcessor(
                max_concurrency=settings.max_concurrency,
                item_timeout=settings.item_timeout_seconds,
            ),
            metrics=metrics_collector,
            debounce_seconds=settings.debounce_seconds,
            candidate_limit=settings.candidate_limit,
            alert_floor=settings.alert_floor,
        )

    # ------------------------------------------------------------------
    # Published state
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> DashboardSnapshot:
        return self._snapshot

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def products(self) -> Tuple[Product, ...]:
        return self._products

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a listener for every accepted publish; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self, generation: int, **changes: Any) -> bool:
        if generation != self._generation:
            logger.debug(
                "Discarding stale publish from cycle %s (active cycle %s)",
                generation,
                self._generation,
            )
            return False

        current = self._snapshot
        if "progress" in changes and current.generation == generation:
            changes["progress"] = max(current.progress, changes["progress"])

        self._snapshot = current.evolve(generation=generation, **changes)
        for listener in list(self._listeners):
            listener(self._snapshot)
        return True

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def update_products(self, products: Iterable[Product]) -> None:
        """Replace the product list and schedule a debounced regeneration."""
        self._products = tuple(products)
        self._trigger()

    def _on_products_changed(self):
        return self.generate_report()

    def _begin_cycle(self, force_refresh: bool) -> int:
        self._generation += 1
        self.metrics.start_cycle(self._generation, force_refresh)
        logger.info(
            "Restock cycle %s starting (products=%d, force_refresh=%s)",
            self._generation,
            len(self._products),
            force_refresh,
        )
        return self._generation

    async def generate_report(self, force_refresh: bool = False) -> DashboardSnapshot:
        """Run one full cycle and return the snapshot visible when it ends."""
        generation = self._begin_cycle(force_refresh)
        await self._run_cycle(generation, self._products, force_refresh)
        return self._snapshot

    def start_report(self, force_refresh: bool = False) -> int:
        """Start a cycle as a background task; returns its generation token."""
        generation = self._begin_cycle(force_refresh)
        task = asyncio.get_running_loop().create_task(
            self._run_cycle(generation, self._products, force_refresh)
        )
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)
        return generation

    # ------------------------------------------------------------------
    # Cache controls
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        self.cache.clear()
        self._publish(self._generation, cache_stats=CacheStats())

    def clear_cache_and_refresh(self) -> int:
        self.clear_cache()
        return self.start_report(force_refresh=True)

    def refresh_cache_stats(self) -> CacheStats:
        stats = self.cache.stats()
        self._publish(self._generation, cache_stats=stats)
        return stats

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def _run_cycle(self, generation: int, products: Sequence[Product], force_refresh: bool) -> None:
        try:
            outcome, message = await self._execute(generation, products, force_refresh)
            severity = "success"
        except Exception:
            logger.exception("Error generating restock report (cycle %s)", generation)
            # Keep whatever was already published visible.
            self._publish(
                generation,
                phase="failed",
                loading=False,
                progress=PROGRESS_DONE,
                error=FAILURE_MESSAGE,
            )
            outcome, message, severity = "failed", FAILURE_MESSAGE, "error"

        self._finish(generation, outcome, message, severity)

    async def _execute(
        self,
        generation: int,
        products: Sequence[Product],
        force_refresh: bool,
    ) -> Tuple[str, str]:
        candidates = select_restock_candidates(
            products, limit=self.candidate_limit, alert_floor=self.alert_floor
        )

        if not candidates:
            self._publish(
                generation,
                phase="well_stocked",
                summary=DashboardSummary(
                    total_products=len(products),
                    needs_restock=0,
                    critical_items=0,
                    weekly_priority=0,
                ),
                recommendations=(),
                loading=False,
                progress=PROGRESS_DONE,
                message=WELL_STOCKED_MESSAGE,
                error=None,
                last_generated=datetime.now(timezone.utc),
            )
            return "well_stocked", WELL_STOCKED_MESSAGE

        async with self.metrics.phase_timer(generation, "summarizing", len(candidates)):
            self._publish(
                generation,
                phase="summarizing",
                summary=summarize_candidates(products, candidates),
                recommendations=(),
                loading=True,
                progress=PROGRESS_SUMMARY,
                message=None,
                error=None,
            )

        async with self.metrics.phase_timer(generation, "cache_splitting", len(candidates)):
            if force_refresh:
                self.cache.clear()
            cached_hits, needs_fetch = self._split_cached(candidates, force_refresh)
            self.metrics.record_cache_split(generation, len(cached_hits), len(needs_fetch))
            self._publish(
                generation,
                phase="cache_splitting",
                recommendations=tuple(sort_recommendations(cached_hits)),
                loading=bool(needs_fetch),
                progress=PROGRESS_CACHE_SPLIT,
            )

        if needs_fetch:
            async with self.metrics.phase_timer(generation, "dispatching", len(needs_fetch)):
                await self._dispatch(generation, cached_hits, needs_fetch)

        message = completion_message(len(candidates), len(cached_hits))
        self._publish(
            generation,
            phase="settled",
            loading=False,
            progress=PROGRESS_DONE,
            message=message,
            last_generated=datetime.now(timezone.utc),
            cache_stats=self.cache.stats(),
        )
        return "settled", message

    def _split_cached(
        self, candidates: Sequence[Product], force_refresh: bool
    ) -> Tuple[List[DashboardRecommendation], List[Product]]:
        cached_hits: List[DashboardRecommendation] = []
        needs_fetch: List[Product] = []
        for product in candidates:
            cached = None if force_refresh else self.cache.lookup(product)
            if cached is not None:
                cached_hits.append(DashboardRecommendation(product, cached, from_cache=True))
            else:
                needs_fetch.append(product)
        return cached_hits, needs_fetch

    async def _fetch_recommendation(self, product: Product) -> DashboardRecommendation:
        request = RecommendationRequest.from_product(product)
        raw = await self.service.get_restock_suggestion(request)
        payload = RestockSuggestionPayload.model_validate(raw)
        result = RecommendationResult(
            analyzer_summary=payload.analyzer_summary,
            restock_suggestion=payload.restock_suggestion,
            reorder_message=payload.reorder_message,
            priority=derive_priority(product.stock),
        )
        self.cache.store(product, result)
        return DashboardRecommendation(product, result)

    async def _dispatch(
        self,
        generation: int,
        cached_hits: List[DashboardRecommendation],
        needs_fetch: List[Product],
    ) -> None:
        total = len(needs_fetch)
        settled: List[DashboardRecommendation] = []

        def _on_settled(outcome: BatchOutcome) -> None:
            if outcome.success:
                recommendation = outcome.value
            else:
                product = outcome.item
                logger.warning(
                    "Failed to get recommendation for product %s (%s): %s",
                    product.id,
                    product.name,
                    outcome.error,
                )
                self.metrics.record_fallback(generation)
                recommendation = DashboardRecommendation(product, fallback_result(product))

            settled.append(recommendation)
            self._publish(
                generation,
                phase="dispatching",
                recommendations=tuple(sort_recommendations([*cached_hits, *settled])),
                loading=len(settled) < total,
                progress=PROGRESS_CACHE_SPLIT
                + len(settled) / total * (PROGRESS_DISPATCH_END - PROGRESS_CACHE_SPLIT),
            )

        await self.batch_processor.process_batch(
            needs_fetch, self._fetch_recommendation, on_settled=_on_settled
        )

    def _finish(self, generation: int, outcome: str, message: str, severity: str) -> None:
        if generation != self._generation:
            self.metrics.finish_cycle(generation, "superseded")
            logger.info("Restock cycle %s superseded by cycle %s", generation, self._generation)
            return
        summary = self.metrics.finish_cycle(generation, outcome)
        logger.info(
            "Restock cycle %s %s in %sms",
            generation,
            outcome,
            summary.get("total_duration_ms"),
        )
        self.notify(message, severity)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait for fired debounce callbacks and background cycles to finish."""
        await self._trigger.drain()
        while self._cycles:
            await asyncio.gather(*list(self._cycles), return_exceptions=True)

    async def shutdown(self) -> None:
        self._trigger.cancel()
        await self.wait_idle()


@lru_cache(maxsize=1)
def get_restock_dashboard() -> RestockDashboard:
    """Process-wide dashboard used by the API layer."""
    return RestockDashboard.from_settings()


__all__ = [
    "RestockDashboard",
    "get_restock_dashboard",
    "fallback_result",
    "completion_message",
    "WELL_STOCKED_MESSAGE",
    "FAILURE_MESSAGE",
]
