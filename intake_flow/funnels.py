"""Declarative catalogue of the intake funnels."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Tuple

from .registry import StepRegistry
from .schemas import FunnelDefinitionOut, FunnelId, ResumePolicy
from .validation import FieldRule, iso_date_not_in_future, one_of, positive_number


@dataclass(frozen=True)
class FunnelDefinition:
    """Everything the state machine needs to know about one funnel."""

    id: FunnelId
    label: str
    registry: StepRegistry
    policy: ResumePolicy
    storage_name: str
    lead_source: str
    product_category: str
    entry_delay_ms: int = 1000
    clear_on_submit: bool = False
    # Session-scoped entries and cookies written by older front-end code.
    legacy_storage_keys: Tuple[str, ...] = ()
    legacy_cookies: Tuple[str, ...] = ()
    field_rules: Mapping[str, FieldRule] = field(default_factory=dict)

    @property
    def entry_route(self) -> str:
        return f"/c/{self.id.value}"

    @property
    def results_route(self) -> str:
        return f"{self.entry_route}/results"

    @property
    def is_resumable(self) -> bool:
        return self.policy is ResumePolicy.RESUMABLE

    @property
    def terminal_step(self) -> str:
        return self.registry.last


def _steps(funnel: FunnelId, *slugs: str) -> StepRegistry:
    return StepRegistry.under(f"/c/{funnel.value}", slugs)


FUNNELS: Mapping[FunnelId, FunnelDefinition] = MappingProxyType(
    {
        FunnelId.WEIGHT_LOSS: FunnelDefinition(
            id=FunnelId.WEIGHT_LOSS,
            label="Weight loss",
            registry=_steps(
                FunnelId.WEIGHT_LOSS,
                "introduction",
                "your-goal",
                "your-goal-transition",
                "treatment-approach",
                "treatment-paths",
                "wayfind-build-profile",
                "submit",
            ),
            policy=ResumePolicy.RESUMABLE,
            storage_name="wm-form-storage",
            lead_source="Weight Loss Form",
            product_category="weight-loss",
            entry_delay_ms=2000,
            legacy_storage_keys=("finalResponses", "ineligibilityReason"),
            field_rules={
                "date-of-birth": iso_date_not_in_future,
                "current-weight": positive_number,
                "cravings": one_of(("sweet", "salty", "both", "none")),
            },
        ),
        FunnelId.HAIR_LOSS: FunnelDefinition(
            id=FunnelId.HAIR_LOSS,
            label="Hair loss",
            registry=_steps(FunnelId.HAIR_LOSS, "introduction", "hair-loss", "submit"),
            policy=ResumePolicy.NON_RESUMABLE,
            storage_name="hl-form-storage",
            lead_source="Hair Loss Form",
            product_category="hair-loss",
            legacy_storage_keys=("hairLossResponses", "finalHairLossResponses", "ineligibilityReason"),
        ),
        FunnelId.BIRTH_CONTROL: FunnelDefinition(
            id=FunnelId.BIRTH_CONTROL,
            label="Birth control",
            registry=_steps(FunnelId.BIRTH_CONTROL, "introduction", "birth-control", "submit"),
            policy=ResumePolicy.NON_RESUMABLE,
            storage_name="bc-form-storage",
            lead_source="Birth Control Form",
            product_category="sexual-health-and-birth-control",
            clear_on_submit=True,
            legacy_storage_keys=("birthControlResponses", "finalBCResponses", "ineligibilityReason"),
            legacy_cookies=("bc-form-storage",),
        ),
        FunnelId.SKIN: FunnelDefinition(
            id=FunnelId.SKIN,
            label="Skin assessment",
            registry=_steps(FunnelId.SKIN, "introduction", "skin", "submit"),
            policy=ResumePolicy.RESUMABLE,
            storage_name="aa-form-storage",
            lead_source="Skin Assessment Form",
            product_category="skin-care",
        ),
        FunnelId.MENTAL_HEALTH: FunnelDefinition(
            id=FunnelId.MENTAL_HEALTH,
            label="Mental health",
            registry=_steps(FunnelId.MENTAL_HEALTH, "introduction", "anxiety", "submit"),
            policy=ResumePolicy.RESUMABLE,
            storage_name="mh-form-storage",
            lead_source="Mental Health Form",
            product_category="mental-health",
        ),
        FunnelId.CONSULTATION: FunnelDefinition(
            id=FunnelId.CONSULTATION,
            label="Consultation",
            registry=_steps(FunnelId.CONSULTATION, "introduction", "consult", "submit"),
            policy=ResumePolicy.RESUMABLE,
            storage_name="consultation-form-storage",
            lead_source="Consultation Form",
            product_category="consultation",
        ),
    }
)


def get_funnel(funnel_id: FunnelId | str) -> FunnelDefinition:
    """Look up a funnel; raises ``ValueError`` for unknown ids."""

    return FUNNELS[FunnelId(funnel_id)]


def describe_funnel(funnel: FunnelDefinition) -> FunnelDefinitionOut:
    return FunnelDefinitionOut(
        id=funnel.id,
        label=funnel.label,
        policy=funnel.policy,
        entry_route=funnel.entry_route,
        results_route=funnel.results_route,
        steps=list(funnel.registry),
    )


def list_funnel_definitions() -> List[FunnelDefinitionOut]:
    """Return UI-friendly descriptors for all funnels."""

    return [describe_funnel(funnel) for funnel in FUNNELS.values()]
