"""
Shared helpers for OpenAI-powered restock recommendations.

Environment variables:
    OPENAI_API_KEY                 → required for live calls
    LLM_COMPLETION_MODEL           → chat/completions model for restock advice
    LLM_COMPLETION_MAX_TOKENS      → token limit for completion calls
    LLM_COMPLETION_TEMPERATURE     → sampling temperature

Centralises configuration and client creation so the advisor and any future
LLM touchpoint behave consistently and can be tuned from the environment.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from openai import AsyncOpenAI

from settings import _env_float, _env_int

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LLMSettings:
    """Resolved configuration for all LLM touchpoints."""

    api_key: str
    completion_model: str
    completion_max_tokens: int
    completion_temperature: float


@lru_cache(maxsize=1)
def load_llm_settings() -> LLMSettings:
    """Load and cache LLM configuration from environment variables."""

    raw_key = (os.getenv("OPENAI_API_KEY") or "").strip()
    if not raw_key:
        logger.warning("OPENAI_API_KEY not configured; restock advice will fallback")

    return LLMSettings(
        api_key=raw_key,
        completion_model=os.getenv("LLM_COMPLETION_MODEL", "gpt-4o-mini"),
        completion_max_tokens=_env_int("LLM_COMPLETION_MAX_TOKENS", 400),
        completion_temperature=_env_float("LLM_COMPLETION_TEMPERATURE", 0.3),
    )


@lru_cache(maxsize=1)
def get_async_client() -> AsyncOpenAI:
    """Return a singleton AsyncOpenAI client shared across services."""

    settings = load_llm_settings()
    return AsyncOpenAI(api_key=settings.api_key or None)


def should_use_llm() -> bool:
    """Quick check to see if we have an API key configured."""

    return bool(load_llm_settings().api_key)
