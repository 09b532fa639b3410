"""
Restock Schemas
===============

Canonical data structures shared by the restock dashboard pipeline.

PRODUCT (input, read-only):
---------------------------
id, name, sku, category, stock (>= 0), reorder_point (optional),
price (integer minor-currency units, e.g. cents)

PRIORITY:
---------
- critical: stock <= 5
- high:     stock <= 10
- medium:   everything else

Recommendation lists are ALWAYS ordered by priority rank, then ascending stock.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple, TypedDict, Literal, get_args
from dataclasses import dataclass, field, replace
from datetime import datetime

from pydantic import BaseModel, ConfigDict

Priority = Literal["critical", "high", "medium"]
PRIORITY_RANK: Dict[str, int] = {priority: rank for rank, priority in enumerate(get_args(Priority))}

DEFAULT_CATEGORY = "General"


# =============================================================================
# TYPE DEFINITIONS
# =============================================================================

class ProductDict(TypedDict, total=False):
    id: str
    name: str
    sku: Optional[str]
    category: Optional[str]
    stock: int
    reorder_point: Optional[int]
    price: int


class RecommendationDict(TypedDict, total=False):
    analyzer_summary: str
    restock_suggestion: str
    reorder_message: str
    priority: str


class SummaryDict(TypedDict):
    totalProducts: int
    needsRestock: int
    criticalItems: int
    weeklyPriority: int


class CacheStatsDict(TypedDict):
    totalCached: int
    expired: int


# =============================================================================
# DATACLASS DEFINITIONS
# =============================================================================

@dataclass(frozen=True)
class Product:
    """Inventory product as observed by the dashboard."""
    id: str
    name: str
    stock: int
    sku: Optional[str] = None
    category: Optional[str] = None
    reorder_point: Optional[int] = None
    price: int = 0

    def __post_init__(self):
        if self.stock < 0:
            raise ValueError(f"stock must be >= 0 for product {self.id}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Product":
        reorder_point = data.get("reorder_point")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            stock=int(data.get("stock") or 0),
            sku=data.get("sku") or None,
            category=data.get("category") or None,
            reorder_point=int(reorder_point) if reorder_point is not None else None,
            price=int(data.get("price") or 0),
        )

    def to_dict(self) -> ProductDict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "stock": self.stock,
            "reorder_point": self.reorder_point,
            "price": self.price,
        }


@dataclass(frozen=True)
class RecommendationRequest:
    """Payload sent to the recommendation service for one product."""
    product_name: str
    sku: str
    category: str
    quantity: int

    @classmethod
    def from_product(cls, product: Product) -> "RecommendationRequest":
        return cls(
            product_name=product.name,
            sku=product.sku or f"SKU-{product.id}",
            category=product.category or DEFAULT_CATEGORY,
            quantity=product.stock or 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_name": self.product_name,
            "sku": self.sku,
            "category": self.category,
            "quantity": self.quantity,
        }


@dataclass(frozen=True)
class RecommendationResult:
    """Service payload plus the priority derived from stock."""
    analyzer_summary: str
    restock_suggestion: str
    reorder_message: str
    priority: Priority = "medium"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RecommendationResult":
        priority = data.get("priority") or "medium"
        if priority not in PRIORITY_RANK:
            raise ValueError(f"Unknown priority: {priority!r}")
        return cls(
            analyzer_summary=str(data["analyzer_summary"]),
            restock_suggestion=str(data["restock_suggestion"]),
            reorder_message=str(data["reorder_message"]),
            priority=priority,
        )

    def to_dict(self) -> RecommendationDict:
        return {
            "analyzer_summary": self.analyzer_summary,
            "restock_suggestion": self.restock_suggestion,
            "reorder_message": self.reorder_message,
            "priority": self.priority,
        }


@dataclass(frozen=True)
class DashboardRecommendation:
    """One visible row: product, its recommendation and where it came from."""
    product: Product
    result: RecommendationResult
    from_cache: bool = False

    @property
    def priority(self) -> str:
        return self.result.priority

    def sort_key(self) -> Tuple[int, int]:
        return (PRIORITY_RANK[self.result.priority], self.product.stock)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"product": self.product.to_dict()}
        payload.update(self.result.to_dict())
        payload["fromCache"] = self.from_cache
        return payload


@dataclass(frozen=True)
class DashboardSummary:
    total_products: int
    needs_restock: int
    critical_items: int
    weekly_priority: int

    def to_dict(self) -> SummaryDict:
        return {
            "totalProducts": self.total_products,
            "needsRestock": self.needs_restock,
            "criticalItems": self.critical_items,
            "weeklyPriority": self.weekly_priority,
        }


@dataclass(frozen=True)
class CacheStats:
    valid: int = 0
    expired: int = 0

    def to_dict(self) -> CacheStatsDict:
        return {"totalCached": self.valid, "expired": self.expired}


@dataclass(frozen=True)
class DashboardSnapshot:
    """Immutable published state of one generation cycle.

    Snapshots are never mutated; every publish swaps in a new instance built
    with ``evolve``.
    """
    generation: int = 0
    phase: str = "idle"
    summary: Optional[DashboardSummary] = None
    recommendations: Tuple[DashboardRecommendation, ...] = ()
    loading: bool = False
    progress: float = 0.0
    message: Optional[str] = None
    error: Optional[str] = None
    last_generated: Optional[datetime] = None
    cache_stats: CacheStats = field(default_factory=CacheStats)

    def evolve(self, **changes: Any) -> "DashboardSnapshot":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generation": self.generation,
            "phase": self.phase,
            "summary": self.summary.to_dict() if self.summary else None,
            "recommendations": [rec.to_dict() for rec in self.recommendations],
            "loading": self.loading,
            "progress": round(self.progress, 2),
            "message": self.message,
            "error": self.error,
            "lastGenerated": self.last_generated.isoformat() if self.last_generated else None,
            "cacheStats": self.cache_stats.to_dict(),
        }


# =============================================================================
# SERVICE RESPONSE VALIDATION
# =============================================================================

class RestockSuggestionPayload(BaseModel):
    """Fields we rely on from the recommendation service; the rest is ignored."""

    model_config = ConfigDict(extra="ignore")

    analyzer_summary: str
    restock_suggestion: str
    reorder_message: str


def parse_products(raw: List[Mapping[str, Any]]) -> List[Product]:
    return [Product.from_dict(item) for item in raw]
