"""
Restock candidate selection and priority helpers.

Everything here is pure and synchronous; the dashboard recomputes it from
scratch on every cycle.
"""
from __future__ import annotations

from typing import Iterable, List, Sequence

from schemas import DashboardRecommendation, DashboardSummary, Priority, Product

CANDIDATE_LIMIT = 15
ALERT_FLOOR = 10
CRITICAL_STOCK = 5
HIGH_STOCK = 10


def alert_threshold(product: Product, alert_floor: int = ALERT_FLOOR) -> int:
    return max(product.reorder_point or 0, alert_floor)


def select_restock_candidates(
    products: Iterable[Product],
    limit: int = CANDIDATE_LIMIT,
    alert_floor: int = ALERT_FLOOR,
) -> List[Product]:
    """
    Products at or below their alert threshold, most depleted first,
    truncated to ``limit``.
    """
    flagged = [p for p in products if p.stock <= alert_threshold(p, alert_floor)]
    flagged.sort(key=lambda p: p.stock)
    return flagged[:limit]


def derive_priority(stock: int) -> Priority:
    if stock <= CRITICAL_STOCK:
        return "critical"
    if stock <= HIGH_STOCK:
        return "high"
    return "medium"


def summarize_candidates(products: Sequence[Product], candidates: Sequence[Product]) -> DashboardSummary:
    critical = sum(1 for p in candidates if p.stock <= CRITICAL_STOCK)
    high = sum(1 for p in candidates if CRITICAL_STOCK < p.stock <= HIGH_STOCK)
    return DashboardSummary(
        total_products=len(products),
        needs_restock=len(candidates),
        critical_items=critical,
        weekly_priority=critical + high,
    )


def sort_recommendations(recommendations: Iterable[DashboardRecommendation]) -> List[DashboardRecommendation]:
    """Priority rank first (critical < high < medium), then ascending stock."""
    return sorted(recommendations, key=lambda rec: rec.sort_key())


__all__ = [
    "CANDIDATE_LIMIT",
    "ALERT_FLOOR",
    "alert_threshold",
    "select_restock_candidates",
    "derive_priority",
    "summarize_candidates",
    "sort_recommendations",
]
