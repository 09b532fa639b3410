import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas import Product, RecommendationRequest
from services import llm_utils
from services.restock_advisor import OpenAIRestockAdvisor, RecommendationServiceError


class FakeCompletions:
    def __init__(self, content, choices=True):
        self.content = content
        self.choices = choices
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if not self.choices:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(content, choices=True):
    completions = FakeCompletions(content, choices)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


REQUEST = RecommendationRequest.from_product(Product(id="42", name="Oat Milk", stock=3, category="Dairy"))


@pytest.fixture(autouse=True)
def _fresh_llm_settings():
    llm_utils.load_llm_settings.cache_clear()
    yield
    llm_utils.load_llm_settings.cache_clear()


def test_returns_parsed_json_payload():
    client, completions = _client(
        '{"analyzer_summary": "Low", "restock_suggestion": "Order 30", "reorder_message": "Ship 30"}'
    )
    advisor = OpenAIRestockAdvisor(client=client)

    payload = asyncio.run(advisor.get_restock_suggestion(REQUEST))

    assert payload["restock_suggestion"] == "Order 30"
    call = completions.calls[0]
    assert call["response_format"] == {"type": "json_object"}
    assert "Oat Milk" in call["messages"][1]["content"]
    assert "SKU: SKU-42" in call["messages"][1]["content"]
    assert "Units in stock: 3" in call["messages"][1]["content"]


@pytest.mark.parametrize(
    "content, choices",
    [
        ("not json at all", True),
        ("[1, 2, 3]", True),
        ("", True),
        ("{}", False),
    ],
)
def test_bad_responses_raise_service_error(content, choices):
    client, _ = _client(content, choices)
    advisor = OpenAIRestockAdvisor(client=client)

    with pytest.raises(RecommendationServiceError):
        asyncio.run(advisor.get_restock_suggestion(REQUEST))


def test_missing_api_key_raises_without_network(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    advisor = OpenAIRestockAdvisor()

    with pytest.raises(RecommendationServiceError):
        asyncio.run(advisor.get_restock_suggestion(REQUEST))


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("LLM_COMPLETION_MODEL", "gpt-test")
    monkeypatch.setenv("LLM_COMPLETION_MAX_TOKENS", "not-a-number")

    advisor = OpenAIRestockAdvisor(client=object())

    assert advisor.model == "gpt-test"
    assert advisor.max_tokens == 400
