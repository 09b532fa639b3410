"""
Restock Advisor Service
Asks an LLM for restock advice on a single product.

The dashboard only depends on the ``RecommendationService`` protocol; any
object with an async ``get_restock_suggestion(request)`` returning a mapping
with ``analyzer_summary``, ``restock_suggestion`` and ``reorder_message``
will do.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol
import json
import logging
import time

from schemas import RecommendationRequest
from services.llm_utils import get_async_client, load_llm_settings, should_use_llm

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an inventory planning assistant for a small retailer. "
    "Given a product and its current stock, reply with a JSON object containing "
    "exactly these string fields: analyzer_summary (one sentence on the stock "
    "situation), restock_suggestion (how much to reorder and when), "
    "reorder_message (a short message that could be sent to the supplier)."
)


class RecommendationServiceError(RuntimeError):
    """The recommendation service could not produce advice for an item."""


class RecommendationService(Protocol):
    async def get_restock_suggestion(self, request: RecommendationRequest) -> Mapping[str, Any]: ...


class OpenAIRestockAdvisor:
    """Recommendation service backed by an OpenAI chat completion model."""

    def __init__(self, client: Optional[Any] = None) -> None:
        self._settings = load_llm_settings()
        self._client = client
        self.model = self._settings.completion_model
        self.max_tokens = self._settings.completion_max_tokens
        self.temperature = self._settings.completion_temperature

    @property
    def client(self):
        if self._client is None:
            self._client = get_async_client()
        return self._client

    def create_prompt(self, request: RecommendationRequest) -> str:
        return (
            f"Product: {request.product_name}\n"
            f"SKU: {request.sku}\n"
            f"Category: {request.category}\n"
            f"Units in stock: {request.quantity}\n"
            "Return the JSON object now."
        )

    async def get_restock_suggestion(self, request: RecommendationRequest) -> Dict[str, Any]:
        if self._client is None and not should_use_llm():
            raise RecommendationServiceError("OpenAI API key not configured")

        start_time = time.time()
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": self.create_prompt(request)},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )
        duration_ms = (time.time() - start_time) * 1000

        if not response.choices:
            raise RecommendationServiceError(f"Empty choices for {request.sku}")

        content = response.choices[0].message.content
        if not content:
            raise RecommendationServiceError(f"Empty content for {request.sku}")

        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise RecommendationServiceError(f"Non-JSON advice for {request.sku}: {exc}") from exc
        if not isinstance(payload, dict):
            raise RecommendationServiceError(f"Advice for {request.sku} is not an object")

        logger.info("Restock advice for %s received in %.0fms", request.sku, duration_ms)
        return payload


__all__ = [
    "RecommendationService",
    "RecommendationServiceError",
    "OpenAIRestockAdvisor",
]
