"""Rule-based eligibility screening per funnel."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

from .crm import calculate_bmi
from .schemas import FunnelId


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: str


EligibilityCheck = Callable[[Mapping[str, Any]], EligibilityResult]


def _listed(responses: Mapping[str, Any], field: str) -> list:
    value = responses.get(field)
    return value if isinstance(value, list) else []


def _bmi_from_responses(responses: Mapping[str, Any]) -> float | None:
    height = responses.get("height")
    if isinstance(height, str):
        try:
            height = json.loads(height)
        except json.JSONDecodeError:
            return None
    if not isinstance(height, Mapping):
        return None
    try:
        weight = float(responses.get("current-weight"))
        feet = int(height.get("feet") or 0)
        inches = int(height.get("inches") or 0)
    except (TypeError, ValueError):
        return None
    return calculate_bmi(weight, feet, inches)


def _weight_loss(responses: Mapping[str, Any]) -> EligibilityResult:
    """Everyone may proceed; the most specific caution wins."""

    reason = (
        "Based on your responses, you appear to be eligible for our weight loss products. "
        "Your safety is our priority, so we still recommend discussing with your healthcare "
        "provider before starting any new regimen."
    )
    if responses.get("age-group") == "under-18":
        reason = "Note: Weight loss products are not recommended for individuals under 18 years of age."
    if responses.get("gender") == "no":
        reason = (
            "Note: Our products are specifically designed for women. We recommend consulting "
            "with a healthcare provider for personalized weight management guidance."
        )
    bmi = _bmi_from_responses(responses)
    if bmi is not None and bmi < 18.5:
        reason = (
            "Note: Based on your BMI calculation, you are in the underweight category. Weight "
            "loss products are not recommended. Please consult with a healthcare provider."
        )
    if responses.get("pregnant") == "yes":
        reason = (
            "Note: Weight loss products are not recommended during pregnancy. Please consult "
            "with your healthcare provider for safe weight management during pregnancy."
        )
    if responses.get("breastfeeding") == "yes":
        reason = (
            "Note: Weight loss products are not recommended while breastfeeding. Please consult "
            "with your healthcare provider for safe weight management while breastfeeding."
        )
    conditions = _listed(responses, "medical-conditions")
    for condition, label in (
        ("type1-diabetes", "Type 1 Diabetes"),
        ("heart-disease", "heart disease"),
        ("kidney-liver-disease", "kidney or liver disease"),
    ):
        if condition in conditions:
            reason = (
                f"Note: Weight loss products may not be suitable for individuals with {label}. "
                "Please consult with your healthcare provider for personalized weight management options."
            )
    if responses.get("eating-disorder") == "yes":
        reason = (
            "Note: Weight loss products are not recommended for individuals with a history of "
            "eating disorders. Please consult with your healthcare provider for healthy weight "
            "management approaches."
        )
    return EligibilityResult(eligible=True, reason=reason)


def _hair_loss(responses: Mapping[str, Any]) -> EligibilityResult:
    if responses.get("age-group") == "under-18":
        return EligibilityResult(
            True,
            "While you are under 18, you can still proceed. However, we recommend consulting "
            "with a healthcare provider before starting any hair loss treatments.",
        )
    if responses.get("gender") == "no":
        return EligibilityResult(
            True,
            "While our products are designed for women's hair loss needs, you can still proceed. "
            "We recommend consulting with a healthcare provider for treatments best suited to your needs.",
        )
    if _listed(responses, "affected-areas") == ["no-noticeable-loss"]:
        return EligibilityResult(
            True,
            "While you may not notice significant hair loss, you can still proceed. We recommend "
            "monitoring your hair and consulting with a doctor if you notice changes.",
        )
    return EligibilityResult(
        True,
        "Based on your responses, you appear to be eligible for our hair loss treatments.",
    )


def _birth_control(responses: Mapping[str, Any]) -> EligibilityResult:
    if responses.get("bc-type") == "emergency":
        return EligibilityResult(
            True,
            "Based on your selection of emergency contraception, we recommend scheduling a "
            "consultation for timely guidance.",
        )
    return EligibilityResult(
        True,
        "Based on your responses, you appear to be eligible for our birth control options. Our "
        "healthcare providers can help you select the best option for your needs.",
    )


def _skin(responses: Mapping[str, Any]) -> EligibilityResult:
    return EligibilityResult(
        True,
        "Based on your responses, you appear to be eligible for our skin treatments. Your safety "
        "is our priority, so we still recommend discussing with your healthcare provider before "
        "starting any new regimen.",
    )


def _mental_health(responses: Mapping[str, Any]) -> EligibilityResult:
    if responses.get("age-group") == "under-18":
        return EligibilityResult(
            False,
            "Our mental health services are designed for adults 18 and older. We recommend "
            "speaking with a parent or guardian about seeking support from a mental health "
            "professional who specializes in working with adolescents.",
        )
    history = _listed(responses, "medical-history")
    if "bipolar" in history:
        return EligibilityResult(
            False,
            "Based on your responses, our standard anxiety treatment may not be the best fit for "
            "your needs. Bipolar disorder often requires specialized care. We recommend consulting "
            "with a psychiatrist for personalized treatment.",
        )
    if "substance-use" in history:
        return EligibilityResult(
            False,
            "Based on your responses, you may benefit from specialized care that addresses both "
            "substance use and anxiety. We recommend seeking care from a provider who specializes "
            "in dual diagnosis treatment.",
        )
    if responses.get("suicidal-thoughts") == "yes":
        return EligibilityResult(
            False,
            "Your safety is our top priority. Based on your responses, we recommend immediate "
            "consultation with a mental health professional or calling a crisis helpline for "
            "support. Our services are not designed for crisis intervention.",
        )
    return EligibilityResult(
        True,
        "Based on your responses, you appear to be eligible for our anxiety treatment options.",
    )


def _consultation(responses: Mapping[str, Any]) -> EligibilityResult:
    conditions = _listed(responses, "medical-conditions")
    if any(condition in conditions for condition in ("high-blood-pressure", "heart-disease")):
        return EligibilityResult(
            False,
            "Based on your medical history, we recommend consulting with a healthcare provider "
            "before proceeding with online treatment options.",
        )
    return EligibilityResult(
        True,
        "Based on your responses, you appear to be eligible for our consultation services. Your "
        "safety is our priority, so we still recommend discussing with your healthcare provider "
        "before starting any new treatment.",
    )


ELIGIBILITY_CHECKS: Dict[FunnelId, EligibilityCheck] = {
    FunnelId.WEIGHT_LOSS: _weight_loss,
    FunnelId.HAIR_LOSS: _hair_loss,
    FunnelId.BIRTH_CONTROL: _birth_control,
    FunnelId.SKIN: _skin,
    FunnelId.MENTAL_HEALTH: _mental_health,
    FunnelId.CONSULTATION: _consultation,
}


def check_eligibility(funnel_id: FunnelId, responses: Mapping[str, Any]) -> EligibilityResult:
    return ELIGIBILITY_CHECKS[funnel_id](responses)
