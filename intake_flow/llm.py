"""OpenAI-backed product recommendation for completed questionnaires."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from textwrap import dedent
from typing import Any, Dict, List

from openai import APIError, OpenAI

from .config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptSpec:
    """Container describing how to call the LLM."""

    system_prompt: str
    user_prompt: str
    model: str = "gpt-4o-mini"
    temperature: float = 0.5
    max_tokens: int = 150


ClientCache = tuple[str, OpenAI]
_client_cache: ClientCache | None = None


def get_client() -> OpenAI | None:
    """Return a cached OpenAI client when an API key is configured."""

    global _client_cache
    api_key = get_settings().openai_api_key
    if not api_key:
        return None
    if _client_cache and _client_cache[0] == api_key:
        return _client_cache[1]
    client = OpenAI(api_key=api_key)
    _client_cache = (api_key, client)
    return client


def _parse_structured_response(raw_text: str) -> Dict[str, Any] | None:
    """Attempt to coerce the model output into a JSON object."""

    text = raw_text.strip()
    if text.startswith("```"):
        lines = [line.rstrip() for line in text.splitlines()]
        if len(lines) >= 2:
            lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            text = "\n".join(lines).strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _invoke(client: OpenAI, spec: PromptSpec) -> Dict[str, Any] | None:
    try:
        response = client.chat.completions.create(
            model=spec.model,
            messages=[
                {"role": "system", "content": spec.system_prompt.strip()},
                {"role": "user", "content": spec.user_prompt.strip()},
            ],
            temperature=spec.temperature,
            max_tokens=spec.max_tokens,
            response_format={"type": "json_object"},
        )
    except APIError as exc:
        logger.warning("OpenAI recommendation call failed: %s", exc)
        return None

    message = response.choices[0].message.content if response.choices else None
    if not message:
        return None
    return _parse_structured_response(message)


def recommend_product_structured(
    client: OpenAI,
    topic: str,
    responses: Dict[str, Any],
    products: List[Dict[str, str]],
) -> Dict[str, Any] | None:
    """Ask the model to pick one product for the assessment, or none."""

    user_prompt = dedent(
        f"""
        User assessment: {json.dumps(responses, default=str)}

        Available products: {json.dumps(products)}

        Respond with ONLY a JSON object containing:
        1. eligible: true/false whether any product is suitable for this user
        2. productId: The ID of the recommended product, or null if no product is suitable
        3. explanation: A brief, personalized explanation (MAXIMUM 1 paragraph) explaining why this product is right for them OR why no product is suitable
        """
    )
    spec = PromptSpec(
        system_prompt=(
            f"You are a health consultant specializing in {topic}. Analyze the user's health "
            "profile, lifestyle needs, and preferences and recommend the single best product "
            "match. If no product is a suitable match, indicate they are not eligible."
        ),
        user_prompt=user_prompt,
    )
    return _invoke(client, spec)
