"""Product recommendations for completed questionnaires."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence

from openai import OpenAI

from .cms import CMSError, SanityClient
from .eligibility import check_eligibility
from .funnels import FunnelDefinition
from .llm import get_client, recommend_product_structured
from .schemas import RecommendationResponse

logger = logging.getLogger(__name__)

MAX_PROMPT_PRODUCTS = 10
SUMMARY_CHARS = 160

PRODUCTS_BY_CATEGORY_QUERY = """
*[_type == "product" && references(*[_type == "productCategory" && slug.current == $category]._id)] {
  _id,
  title,
  slug,
  price,
  description,
  productType,
  administrationType
}
"""

NO_PRODUCTS = "No products are currently available for this assessment. Please check back later."


@dataclass(frozen=True)
class ProductMatch:
    product: Dict[str, Any]
    score: int
    reason: str


def fetch_products(cms: SanityClient | None, category: str) -> List[Dict[str, Any]]:
    """Load the category's products; an unavailable CMS yields an empty catalogue."""

    if cms is None:
        return []
    try:
        result = cms.fetch(PRODUCTS_BY_CATEGORY_QUERY, {"category": category})
    except CMSError as exc:
        logger.warning("Could not load %s products: %s", category, exc)
        return []
    return [item for item in result or [] if isinstance(item, dict) and item.get("_id")]


def _condense(description: Any) -> str:
    text = re.sub(r"\s+", " ", str(description or "")).strip()
    if len(text) <= SUMMARY_CHARS:
        return text
    return text[:SUMMARY_CHARS].rsplit(" ", 1)[0] + "..."


def _prompt_products(products: Sequence[Mapping[str, Any]]) -> List[Dict[str, str]]:
    return [
        {
            "id": str(product["_id"]),
            "title": str(product.get("title", "")),
            "type": str(product.get("productType") or "Not specified"),
            "method": str(product.get("administrationType") or "Not specified"),
            "summary": _condense(product.get("description")),
        }
        for product in list(products)[:MAX_PROMPT_PRODUCTS]
    ]


def _answer_terms(responses: Mapping[str, Any]) -> set[str]:
    terms: set[str] = set()
    for value in responses.values():
        values = value if isinstance(value, list) else [value]
        for item in values:
            if isinstance(item, str):
                terms.update(word for word in re.split(r"[^a-z0-9]+", item.lower()) if len(word) > 2)
    terms.discard("yes")
    return terms


def find_best_product_match(responses: Mapping[str, Any], products: Sequence[Mapping[str, Any]]) -> ProductMatch:
    """Deterministic fallback: score products by overlap with the answers."""

    terms = _answer_terms(responses)
    best: ProductMatch | None = None
    for product in products:
        haystack = " ".join(
            str(product.get(key) or "")
            for key in ("title", "description", "productType", "administrationType")
        ).lower()
        matched = sorted(term for term in terms if term in haystack)
        if best is None or len(matched) > best.score:
            if matched:
                reason = (
                    f"{product.get('title', 'This product')} fits what you told us about "
                    f"{', '.join(matched[:3])}."
                )
            else:
                reason = f"{product.get('title', 'This product')} is our most popular option for this assessment."
            best = ProductMatch(product=dict(product), score=len(matched), reason=reason)
    if best is None:
        raise ValueError("find_best_product_match needs at least one product")
    return best


def _as_flag(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _fallback(responses: Mapping[str, Any], products: Sequence[Mapping[str, Any]]) -> RecommendationResponse:
    match = find_best_product_match(responses, products)
    return RecommendationResponse(
        eligible=True,
        recommended_product_id=str(match.product["_id"]),
        explanation=match.reason,
        product=match.product,
    )


def recommend(
    funnel: FunnelDefinition,
    responses: Dict[str, Any],
    products: Sequence[Mapping[str, Any]],
    client: OpenAI | None = None,
) -> RecommendationResponse:
    """Screen eligibility, then pick a product with the LLM or the fallback scorer."""

    eligibility = check_eligibility(funnel.id, responses)
    if not eligibility.eligible:
        return RecommendationResponse(eligible=False, explanation=eligibility.reason)
    if not products:
        return RecommendationResponse(eligible=True, explanation=NO_PRODUCTS)

    client = client or get_client()
    if client is None:
        return _fallback(responses, products)

    structured = recommend_product_structured(
        client,
        funnel.label.lower(),
        responses,
        _prompt_products(products),
    )
    eligible = _as_flag(structured.get("eligible")) if structured else None
    if eligible is None or "explanation" not in structured:
        logger.info("Falling back to heuristic recommendation for %s", funnel.id.value)
        return _fallback(responses, products)

    explanation = str(structured["explanation"])
    if not eligible:
        return RecommendationResponse(eligible=False, explanation=explanation)

    by_id = {str(product["_id"]): product for product in products}
    chosen = by_id.get(str(structured.get("productId")))
    if chosen is None:
        logger.info("Model picked an unknown product for %s; using fallback", funnel.id.value)
        return _fallback(responses, products)
    return RecommendationResponse(
        eligible=True,
        recommended_product_id=str(chosen["_id"]),
        explanation=explanation,
        product=dict(chosen),
    )
