from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List

import httpx
import pytest

from intake_flow.cms import SanityClient
from intake_flow.config import SanitySettings
from intake_flow.eligibility import check_eligibility
from intake_flow.funnels import FUNNELS
from intake_flow.llm import _parse_structured_response
from intake_flow.recommendations import (
    NO_PRODUCTS,
    fetch_products,
    find_best_product_match,
    recommend,
)
from intake_flow.schemas import FunnelId


PRODUCTS: List[Dict[str, Any]] = [
    {
        "_id": "prod-oral",
        "title": "Oral Minoxidil",
        "description": "A daily tablet for thinning hair across the crown.",
        "productType": "prescription",
        "administrationType": "oral",
    },
    {
        "_id": "prod-topical",
        "title": "Topical Finasteride Spray",
        "description": "Spray applied to the hairline and temples.",
        "productType": "prescription",
        "administrationType": "topical",
    },
]


class FakeCompletions:
    def __init__(self, content: str) -> None:
        self.content = content
        self.calls: List[Dict[str, Any]] = []

    def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _fake_client(payload: Any) -> SimpleNamespace:
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(content)))


@pytest.fixture
def no_openai_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


@pytest.mark.parametrize(
    ("funnel_id", "responses", "eligible"),
    [
        (FunnelId.MENTAL_HEALTH, {"age-group": "under-18"}, False),
        (FunnelId.MENTAL_HEALTH, {"medical-history": ["bipolar"]}, False),
        (FunnelId.MENTAL_HEALTH, {"suicidal-thoughts": "yes"}, False),
        (FunnelId.MENTAL_HEALTH, {"age-group": "25-34"}, True),
        (FunnelId.CONSULTATION, {"medical-conditions": ["heart-disease"]}, False),
        (FunnelId.CONSULTATION, {"medical-conditions": ["none"]}, True),
        (FunnelId.WEIGHT_LOSS, {"pregnant": "yes"}, True),
        (FunnelId.SKIN, {}, True),
    ],
)
def test_check_eligibility(funnel_id: FunnelId, responses: Dict[str, Any], eligible: bool) -> None:
    assert check_eligibility(funnel_id, responses).eligible is eligible


def test_weight_loss_eating_disorder_note_takes_precedence() -> None:
    result = check_eligibility(
        FunnelId.WEIGHT_LOSS,
        {"pregnant": "yes", "eating-disorder": "yes", "medical-conditions": ["heart-disease"]},
    )

    assert result.eligible is True
    assert "eating disorders" in result.reason


def test_weight_loss_flags_underweight_bmi() -> None:
    result = check_eligibility(
        FunnelId.WEIGHT_LOSS,
        {"current-weight": "95", "height": {"feet": 5, "inches": 8}},
    )

    assert "underweight" in result.reason


def test_find_best_product_match_scores_answer_overlap() -> None:
    match = find_best_product_match({"hair-loss-area": "temples", "preference": "spray"}, PRODUCTS)

    assert match.product["_id"] == "prod-topical"
    assert match.score == 2


def test_find_best_product_match_needs_products() -> None:
    with pytest.raises(ValueError):
        find_best_product_match({}, [])


def test_recommend_uses_model_choice() -> None:
    client = _fake_client({"eligible": True, "productId": "prod-oral", "explanation": "Tablets suit you."})

    result = recommend(FUNNELS[FunnelId.HAIR_LOSS], {"age-group": "25-34"}, PRODUCTS, client=client)

    assert result.recommended_product_id == "prod-oral"
    assert result.explanation == "Tablets suit you."
    call = client.chat.completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["max_tokens"] == 150
    assert call["temperature"] == 0.5
    assert call["response_format"] == {"type": "json_object"}


def test_recommend_honours_model_ineligibility() -> None:
    client = _fake_client({"eligible": False, "productId": None, "explanation": "Please see a doctor."})

    result = recommend(FUNNELS[FunnelId.HAIR_LOSS], {}, PRODUCTS, client=client)

    assert result.eligible is False
    assert result.recommended_product_id is None


@pytest.mark.parametrize(("flag", "eligible"), [("false", False), (" FALSE ", False), ("true", True)])
def test_recommend_reads_string_eligibility_flags(flag: str, eligible: bool) -> None:
    client = _fake_client({"eligible": flag, "productId": "prod-oral", "explanation": "Model says so."})

    result = recommend(FUNNELS[FunnelId.HAIR_LOSS], {}, PRODUCTS, client=client)

    assert result.eligible is eligible
    assert result.explanation == "Model says so."
    assert result.recommended_product_id == ("prod-oral" if eligible else None)


@pytest.mark.parametrize(
    "payload",
    [
        "not json at all",
        {"eligible": "maybe", "productId": "prod-oral", "explanation": "Unclear."},
        {"eligible": 0, "productId": "prod-oral", "explanation": "Unclear."},
        {"eligible": True, "productId": "prod-unknown", "explanation": "Invented product."},
        {"productId": "prod-oral"},
    ],
)
def test_recommend_falls_back_on_unusable_model_output(payload: Any) -> None:
    client = _fake_client(payload)

    result = recommend(FUNNELS[FunnelId.HAIR_LOSS], {"preference": "spray"}, PRODUCTS, client=client)

    assert result.eligible is True
    assert result.recommended_product_id == "prod-topical"


def test_recommend_without_api_key_uses_fallback(no_openai_key: None) -> None:
    result = recommend(FUNNELS[FunnelId.HAIR_LOSS], {"preference": "oral tablet"}, PRODUCTS)

    assert result.recommended_product_id == "prod-oral"


def test_ineligible_answers_skip_the_model() -> None:
    client = _fake_client({"eligible": True, "productId": "prod-oral", "explanation": "x"})

    result = recommend(FUNNELS[FunnelId.MENTAL_HEALTH], {"age-group": "under-18"}, PRODUCTS, client=client)

    assert result.eligible is False
    assert client.chat.completions.calls == []


def test_no_products_is_eligible_without_recommendation() -> None:
    result = recommend(FUNNELS[FunnelId.SKIN], {}, [])

    assert result.eligible is True
    assert result.recommended_product_id is None
    assert result.explanation == NO_PRODUCTS


def test_parse_structured_response_strips_code_fence() -> None:
    raw = '```json\n{"eligible": true, "productId": "prod-oral", "explanation": "ok"}\n```'

    assert _parse_structured_response(raw) == {"eligible": True, "productId": "prod-oral", "explanation": "ok"}
    assert _parse_structured_response("[1, 2]") is None


def test_fetch_products_queries_category() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"result": PRODUCTS + [{"title": "Draft without id"}]})

    cms = SanityClient(
        SanitySettings(project_id="abc123", token="sk-token"),
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    products = fetch_products(cms, "hair-loss")

    assert [item["_id"] for item in products] == ["prod-oral", "prod-topical"]
    request = seen[0]
    assert request.url.host == "abc123.api.sanity.io"
    assert request.url.path == "/v2024-01-01/data/query/production"
    assert request.url.params["$category"] == '"hair-loss"'
    assert request.headers["Authorization"] == "Bearer sk-token"


def test_fetch_products_tolerates_cms_outage(caplog: pytest.LogCaptureFixture) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    cms = SanityClient(SanitySettings(project_id="abc123"), client=httpx.Client(transport=httpx.MockTransport(handler)))

    assert fetch_products(cms, "hair-loss") == []
    assert "Could not load hair-loss products" in caplog.text
    assert fetch_products(None, "hair-loss") == []
