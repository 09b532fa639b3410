"""
Restock Schemas Package
Provides the data structures shared by the restock dashboard pipeline.
"""

from .restock_schemas import (
    # Inputs
    Product,
    ProductDict,
    RecommendationRequest,

    # Results
    RecommendationResult,
    RecommendationDict,
    RestockSuggestionPayload,

    # Published state
    DashboardRecommendation,
    DashboardSummary,
    DashboardSnapshot,
    CacheStats,

    # Ordering
    Priority,
    PRIORITY_RANK,
    DEFAULT_CATEGORY,

    # Helper functions
    parse_products,
)
